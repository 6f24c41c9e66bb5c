import logging

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from smartretail.api.routes_health import router as health_router
from smartretail.api.routes_tax import router as tax_router
from smartretail.core.config import settings
from smartretail.core.errors import register_error_handlers
from smartretail.core.logger import init_logging
from smartretail.db.session import init_db

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    init_logging()

    # Disable interactive docs in production
    is_production = settings.ENV.lower() == "prod"
    app = FastAPI(
        title=settings.APP_NAME,
        debug=False,
        docs_url=None if is_production else "/docs",
        redoc_url=None if is_production else "/redoc",
        openapi_url=None if is_production else "/openapi.json",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )
    register_error_handlers(app)
    app.include_router(tax_router)
    app.include_router(health_router)

    if settings.ENV.lower() == "dev":
        # Production schemas are managed by Alembic
        @app.on_event("startup")
        def create_dev_schema() -> None:
            init_db()
            logger.info("Development schema ready at %s", settings.DATABASE_URL)

    return app


app = create_app()
