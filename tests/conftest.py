from __future__ import annotations

import datetime as dt
import os
from decimal import Decimal

os.environ.setdefault("APP_ENV", "test")

import pytest  # noqa: E402

from smartretail.core.config import settings  # noqa: E402
from smartretail.core.rbac import TAX_PERMISSIONS, Actor  # noqa: E402
from smartretail.db import session as db_session  # noqa: E402
from smartretail.db.base_class import Base  # noqa: E402
from smartretail.db.session import SessionLocal, build_engine  # noqa: E402
from smartretail.models import Order, Store  # noqa: E402

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")

test_engine = build_engine(TEST_DATABASE_URL)

# Ensure application code uses the test engine
settings.DATABASE_URL = TEST_DATABASE_URL  # type: ignore[attr-defined]
settings.ENV = "test"  # type: ignore[attr-defined]
db_session.engine = test_engine  # type: ignore[assignment]
SessionLocal.configure(bind=test_engine)


@pytest.fixture(autouse=True)
def _reset_database_state():
    """Ensure each test sees a fresh database schema."""
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield


@pytest.fixture(autouse=True)
def _isolate_audit_log(tmp_path, monkeypatch):
    """Keep audit lines out of the working tree."""
    path = tmp_path / "audit.log"
    monkeypatch.setattr(settings, "AUDIT_LOG_FILE", str(path))
    return path


@pytest.fixture
def db_session():
    """Provide a database session for tests."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    finally:
        session.close()


@pytest.fixture
def store(db_session):
    shop = Store(name="Tap hoa Minh An", tax_code="0101234567", address="12 Hang Bac, Ha Noi")
    db_session.add(shop)
    db_session.commit()
    db_session.refresh(shop)
    return shop


@pytest.fixture
def add_order(db_session):
    """Factory inserting a committed order; defaults to a paid, receipted sale."""

    def _add(
        store_id: int,
        amount: str,
        paid_at: dt.datetime,
        status: str = "paid",
        printed: bool = True,
    ) -> Order:
        order = Order(
            store_id=store_id,
            total_amount=Decimal(amount),
            status=status,
            paid_at=paid_at,
            printed_at=paid_at if printed else None,
        )
        db_session.add(order)
        db_session.commit()
        return order

    return _add


@pytest.fixture
def manager() -> Actor:
    return Actor(id=1, role="manager")


@pytest.fixture
def staff() -> Actor:
    # Everything except delete, which is reserved for managers anyway
    return Actor(id=2, role="staff", permissions=TAX_PERMISSIONS - {"tax:delete"})


@pytest.fixture
def other_staff() -> Actor:
    return Actor(id=3, role="staff", permissions=TAX_PERMISSIONS - {"tax:delete"})


@pytest.fixture
def activities():
    """In-memory activity sink recording every call."""
    recorded: list[dict] = []

    def sink(actor_id, action, entity_type, entity_id, description, **metadata):
        recorded.append(
            {
                "actor_id": actor_id,
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "description": description,
                **metadata,
            }
        )

    sink.recorded = recorded  # type: ignore[attr-defined]
    return sink


# FastAPI TestClient fixture
from fastapi.testclient import TestClient  # noqa: E402
from smartretail.api.main import app  # noqa: E402


@pytest.fixture
def client():
    """Provide a FastAPI TestClient bound to the application."""
    return TestClient(app)


@pytest.fixture
def headers_for():
    """Gateway headers carrying an actor."""

    def _headers(actor: Actor) -> dict[str, str]:
        headers = {"X-Actor-Id": str(actor.id), "X-Actor-Role": actor.role}
        if actor.permissions:
            headers["X-Actor-Permissions"] = ",".join(sorted(actor.permissions))
        return headers

    return _headers
