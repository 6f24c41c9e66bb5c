from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from smartretail.core.exceptions import DeclarationNotFoundError, ForbiddenError
from smartretail.models import TaxDeclaration, TaxDeclarationFamily
from smartretail.services.tax_declaration import TaxDeclarationService


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def service(db_session, activities):
    return TaxDeclarationService(db_session, activity_sink=activities)


@pytest.fixture
def original(service, store, staff):
    return service.create_declaration(store.id, "month", "1000000", staff, period_key="2024-03")


def test_clone_copies_snapshot_and_bumps_version(service, original, add_order, store, other_staff):
    # Later orders must not change the copied snapshot
    add_order(store.id, "999999", utc(2024, 3, 15))

    clone = service.clone_declaration(original.id, other_staff)

    assert clone.is_clone is True
    assert clone.original_id == original.id
    assert clone.version == 2
    assert clone.status == "saved"
    assert clone.created_by == other_staff.id
    assert clone.system_revenue == original.system_revenue == Decimal("0.00")
    assert clone.declared_revenue == Decimal("1000000.00")
    assert clone.total_tax == Decimal("15000.00")


def test_clone_of_clone_points_at_the_original(service, original, staff):
    first = service.clone_declaration(original.id, staff)
    second = service.clone_declaration(first.id, staff)

    assert second.original_id == original.id
    assert second.version == 3


def test_clone_missing_declaration(service, staff):
    with pytest.raises(DeclarationNotFoundError):
        service.clone_declaration(404, staff)


def test_versions_are_never_reused_after_deleting_the_newest(service, original, staff, manager):
    service.clone_declaration(original.id, staff)
    newest = service.clone_declaration(original.id, staff)
    assert newest.version == 3

    service.delete_declaration(newest.id, manager)
    again = service.clone_declaration(original.id, staff)

    assert again.version == 4


def test_deleting_original_promotes_highest_version_clone(db_session, service, original, staff, manager, activities):
    c1 = service.clone_declaration(original.id, staff)
    c2 = service.clone_declaration(original.id, staff)

    result = service.delete_declaration(original.id, manager)

    assert result.deleted_id == original.id
    assert result.promoted_id == c2.id
    db_session.expire_all()
    assert db_session.get(TaxDeclaration, original.id) is None
    promoted = db_session.get(TaxDeclaration, c2.id)
    assert promoted.is_clone is False
    assert promoted.original_id is None
    assert promoted.version == 3
    survivor = db_session.get(TaxDeclaration, c1.id)
    assert survivor.is_clone is True
    assert survivor.version == 2
    assert survivor.original_id == c2.id
    assert [a["action"] for a in activities.recorded][-2:] == ["delete", "restore"]


def test_exactly_one_original_after_promotion(db_session, service, original, staff, manager):
    for _ in range(3):
        service.clone_declaration(original.id, staff)

    service.delete_declaration(original.id, manager)

    db_session.expire_all()
    originals = db_session.execute(
        select(TaxDeclaration).where(TaxDeclaration.is_clone.is_(False))
    ).scalars().all()
    assert len(originals) == 1
    assert originals[0].version == 4


def test_promotion_prefers_version_over_creation_time(db_session, service, original, staff, manager):
    older_version = service.clone_declaration(original.id, staff)
    newer_version = service.clone_declaration(original.id, staff)
    # Backdate the higher version so creation order disagrees with version order
    newer_version.created_at = utc(2020, 1, 1)
    db_session.commit()

    result = service.delete_declaration(original.id, manager)

    assert result.promoted_id == newer_version.id
    db_session.expire_all()
    assert db_session.get(TaxDeclaration, older_version.id).original_id == newer_version.id


def test_deleting_a_clone_leaves_the_original(db_session, service, original, staff, manager):
    clone = service.clone_declaration(original.id, staff)

    result = service.delete_declaration(clone.id, manager)

    assert result.was_clone is True
    assert result.promoted_id is None
    db_session.expire_all()
    assert db_session.get(TaxDeclaration, original.id).is_clone is False


def test_deleting_lone_original_empties_the_family(db_session, service, original, store, staff, manager):
    result = service.delete_declaration(original.id, manager)

    assert result.promoted_id is None
    assert service.list_declarations(store.id).total == 0
    family = db_session.execute(select(TaxDeclarationFamily)).scalar_one()
    assert family.last_version == 1

    # The period is free again, and the new original continues the numbering
    recreated = service.create_declaration(store.id, "month", "10", staff, period_key="2024-03")
    assert recreated.is_clone is False
    assert recreated.version == 2


def test_version_numbering_survives_promotion_and_deletion(service, original, store, staff, manager):
    c1 = service.clone_declaration(original.id, staff)
    service.delete_declaration(original.id, manager)
    service.delete_declaration(c1.id, manager)

    recreated = service.create_declaration(store.id, "month", "10", staff, period_key="2024-03")

    assert recreated.version == 3


def test_only_managers_may_delete(db_session, service, original, staff):
    with pytest.raises(ForbiddenError):
        service.delete_declaration(original.id, staff)
    db_session.expire_all()
    assert db_session.get(TaxDeclaration, original.id) is not None


def test_delete_missing_declaration(service, manager):
    with pytest.raises(DeclarationNotFoundError):
        service.delete_declaration(31337, manager)
