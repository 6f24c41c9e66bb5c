"""Database engine setup.

Every mutating declaration operation must run serializably:

* SQLite: the driver's implicit transaction handling is switched off and each
  transaction is opened with ``BEGIN IMMEDIATE``, so writers queue on the
  database lock instead of failing with a deadlock on lock upgrade.
* PostgreSQL: the engine runs at ``SERIALIZABLE`` isolation.
"""

from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from smartretail.core.config import settings


def enable_sqlite_immediate_transactions(engine: Engine) -> Engine:
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": settings.SQLITE_BUSY_TIMEOUT}
        if ":memory:" in url:
            # One shared connection, otherwise every checkout sees an empty database.
            # Sessions share that connection, so it cannot open nested BEGINs.
            return create_engine(url, future=True, connect_args=connect_args, poolclass=StaticPool)
        engine = create_engine(url, future=True, connect_args=connect_args)
        return enable_sqlite_immediate_transactions(engine)
    if url.startswith("postgresql"):
        # Pool recycle: recycle connections after 1 hour to prevent stale connections
        # Pool pre-ping: verify connection health before using
        return create_engine(
            url,
            future=True,
            isolation_level="SERIALIZABLE",
            pool_size=5,
            max_overflow=10,
            pool_recycle=3600,
            pool_pre_ping=True,
        )
    return create_engine(url, future=True)


engine = build_engine(settings.DATABASE_URL or "sqlite:///./storage/dev.db")
SessionLocal = sessionmaker(bind=engine, class_=Session, expire_on_commit=False, autoflush=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create missing tables (development and tests; production uses Alembic)."""
    import os

    from smartretail.db.base_class import Base
    from smartretail import models  # noqa: F401  registers the mappers

    database = engine.url.database
    if engine.url.get_backend_name() == "sqlite" and database and database != ":memory:":
        os.makedirs(os.path.dirname(os.path.abspath(database)), exist_ok=True)
    Base.metadata.create_all(bind=engine)
