from __future__ import annotations

import os
from decimal import Decimal
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseAppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "SmartRetail"
    ENV: str = "dev"
    DATABASE_URL: str | None = None
    # Seconds a SQLite writer waits for the database lock before giving up
    SQLITE_BUSY_TIMEOUT: float = 30.0

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "plain"
    AUDIT_LOG_FILE: str = "storage/audit.log"

    # Default rates in percent (1.0 means 1%), overridable per declaration
    TAX_DEFAULT_GTGT_RATE: Decimal = Decimal("1.0")
    TAX_DEFAULT_TNCN_RATE: Decimal = Decimal("0.5")
    DECLARATION_PAGE_LIMIT_MAX: int = 100

    PDF_WATERMARK_ENABLED: bool = False
    PDF_WATERMARK_TEXT: str = "SMARTRETAIL"

    CORS_ALLOW_ORIGINS: list[str] = ["*"]
    CORS_ALLOW_METHODS: list[str] = ["*"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True

    @field_validator("TAX_DEFAULT_GTGT_RATE", "TAX_DEFAULT_TNCN_RATE", mode="before")
    @classmethod
    def coerce_rate_to_decimal(cls, v):
        """Read rates through str() so env values never pass through float."""
        if isinstance(v, float):
            return Decimal(str(v))
        return v

    @model_validator(mode="after")
    def _validate_required_fields(self) -> BaseAppSettings:
        # Convert Heroku's postgres:// URL to postgresql://
        if self.DATABASE_URL and self.DATABASE_URL.startswith("postgres://"):
            self.DATABASE_URL = self.DATABASE_URL.replace("postgres://", "postgresql://", 1)

        if self.ENV.lower() == "prod" and not self.DATABASE_URL:
            raise ValueError("Missing required production settings: DATABASE_URL")
        if self.DECLARATION_PAGE_LIMIT_MAX < 1:
            raise ValueError("DECLARATION_PAGE_LIMIT_MAX must be >= 1")
        return self


class DevSettings(BaseAppSettings):
    ENV: str = "dev"
    DATABASE_URL: str = "sqlite:///./storage/dev.db"


class TestSettings(BaseAppSettings):
    ENV: str = "test"
    DATABASE_URL: str = "sqlite:///:memory:"
    AUDIT_LOG_FILE: str = "storage/test-audit.log"


class ProdSettings(BaseAppSettings):
    ENV: str = "prod"
    CORS_ALLOW_ORIGINS: list[str] = [
        "https://smartretail.vn",
        "https://app.smartretail.vn",
    ]
    LOG_FORMAT: str = "json"


_ENV_TO_SETTINGS: dict[str, type[BaseAppSettings]] = {
    "dev": DevSettings,
    "development": DevSettings,
    "test": TestSettings,
    "testing": TestSettings,
    "prod": ProdSettings,
    "production": ProdSettings,
}


@lru_cache
def get_settings() -> BaseAppSettings:
    env_name = os.getenv("APP_ENV") or os.getenv("ENV") or "dev"
    env = env_name.lower()
    settings_cls = _ENV_TO_SETTINGS.get(env, DevSettings)
    return settings_cls()


settings = get_settings()
