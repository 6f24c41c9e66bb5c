"""Concurrent writers against a file-backed SQLite database.

Every session gets its own connection, so writers really contend for the
database lock the way separate API workers would.
"""
from __future__ import annotations

import threading
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker

from smartretail.core.exceptions import ConcurrentModificationError, DuplicatePeriodError
from smartretail.core.rbac import Actor
from smartretail.db.base_class import Base
from smartretail.db.session import build_engine
from smartretail.db.transaction import is_serialization_failure, serializable_transaction
from smartretail.models import Store, TaxDeclaration, TaxDeclarationFamily
from smartretail.services.tax_declaration import TaxDeclarationService

WRITERS = 8


@pytest.fixture
def file_sessions(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'concurrency.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    with factory() as db:
        shop = Store(name="Concurrent shop")
        db.add(shop)
        db.commit()
        store_id = shop.id
    yield SimpleNamespace(factory=factory, store_id=store_id)
    engine.dispose()


def _run_concurrently(worker, count: int) -> list:
    barrier = threading.Barrier(count)
    results: list = [None] * count

    def run(index: int) -> None:
        barrier.wait()
        try:
            results[index] = worker(index)
        except Exception as exc:  # noqa: BLE001
            results[index] = exc

    threads = [threading.Thread(target=run, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return results


def test_concurrent_creates_yield_exactly_one_original(file_sessions):
    def create(index: int):
        actor = Actor(id=100 + index, role="manager")
        with file_sessions.factory() as db:
            service = TaxDeclarationService(db, activity_sink=lambda *a, **k: None)
            record = service.create_declaration(
                file_sessions.store_id, "month", str(1000 + index), actor, period_key="2024-03"
            )
            return record.id

    results = _run_concurrently(create, WRITERS)

    created = [r for r in results if isinstance(r, int)]
    failures = [r for r in results if not isinstance(r, int)]
    assert len(created) == 1
    assert all(isinstance(f, DuplicatePeriodError) for f in failures), failures
    with file_sessions.factory() as db:
        originals = db.execute(
            select(func.count()).select_from(TaxDeclaration).where(TaxDeclaration.is_clone.is_(False))
        ).scalar_one()
        assert originals == 1


def test_concurrent_clones_get_distinct_versions(file_sessions):
    manager = Actor(id=1, role="manager")
    with file_sessions.factory() as db:
        original = TaxDeclarationService(db, activity_sink=lambda *a, **k: None).create_declaration(
            file_sessions.store_id, "quarter", "500", manager, period_key="2024-Q1"
        )

    def clone(index: int):
        with file_sessions.factory() as db:
            service = TaxDeclarationService(db, activity_sink=lambda *a, **k: None)
            return service.clone_declaration(original.id, manager).version

    results = _run_concurrently(clone, WRITERS)

    assert sorted(results) == list(range(2, WRITERS + 2))
    with file_sessions.factory() as db:
        family = db.execute(select(TaxDeclarationFamily)).scalar_one()
        assert family.last_version == WRITERS + 1


def test_transaction_rolls_back_and_maps_conflicts(file_sessions):
    with file_sessions.factory() as db:
        with pytest.raises(DuplicatePeriodError):
            with serializable_transaction(
                db, on_conflict=lambda: DuplicatePeriodError(file_sessions.store_id, "year", "2024")
            ):
                for _ in range(2):
                    db.add(
                        TaxDeclarationFamily(
                            store_id=file_sessions.store_id, period_type="year", period_key="2024", last_version=0
                        )
                    )
                    db.flush()

        assert db.execute(select(func.count()).select_from(TaxDeclarationFamily)).scalar_one() == 0


def test_unmapped_integrity_error_is_a_concurrent_modification(file_sessions):
    with file_sessions.factory() as db:
        with pytest.raises(ConcurrentModificationError) as exc:
            with serializable_transaction(db):
                raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        assert exc.value.status_code == 409


def test_lock_timeouts_are_concurrent_modifications(file_sessions):
    with file_sessions.factory() as db:
        with pytest.raises(ConcurrentModificationError):
            with serializable_transaction(db):
                raise OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))


def test_serialization_failure_detection():
    pg_error = OperationalError("UPDATE", {}, SimpleNamespace(pgcode="40001"))
    other = OperationalError("SELECT", {}, Exception("no such table: orders"))
    assert is_serialization_failure(pg_error)
    assert not is_serialization_failure(other)


def test_uncommitted_changes_are_not_discarded(file_sessions):
    with file_sessions.factory() as db:
        shop = db.get(Store, file_sessions.store_id)
        shop.name = "Renamed before the transaction"
        with pytest.raises(RuntimeError):
            with serializable_transaction(db):
                pass
        assert shop in db.dirty

        db.flush()
        with pytest.raises(RuntimeError):
            with serializable_transaction(db):
                pass
        db.commit()

    with file_sessions.factory() as db:
        assert db.get(Store, file_sessions.store_id).name == "Renamed before the transaction"


def test_open_read_transaction_is_restarted(file_sessions):
    with file_sessions.factory() as db:
        assert db.get(Store, file_sessions.store_id) is not None
        assert db.in_transaction()
        with serializable_transaction(db):
            db.add(
                TaxDeclarationFamily(
                    store_id=file_sessions.store_id, period_type="year", period_key="2025", last_version=0
                )
            )
        assert db.execute(select(func.count()).select_from(TaxDeclarationFamily)).scalar_one() == 1
