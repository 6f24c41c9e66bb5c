from decimal import Decimal

import pytest
from sqlalchemy import func, select

from smartretail.core.exceptions import DeclarationValidationError, ForbiddenError
from smartretail.models import (
    DeclarationCategoryRevenue,
    DeclarationEnvironmentalItem,
    DeclarationSpecialConsumptionItem,
    Store,
    TaxDeclaration,
)
from smartretail.services.tax_declaration import TaxDeclarationService, serialize_declaration
from smartretail.services.tax_declaration.line_items import (
    build_category_revenues,
    build_environmental_items,
    build_special_consumption_items,
    taxpayer_snapshot,
)

CATEGORIES = [
    {"category": "goods_distribution", "revenue": "700000", "gtgt_tax": "7000", "tncn_tax": "3500"},
    {"category": "service_construction", "revenue": "300000.50", "gtgt_tax": "15000.03", "tncn_tax": "6000.01"},
]
SPECIAL_CONSUMPTION = [
    {"item_name": "Beer", "unit": "can", "revenue": "200000", "tax_rate": "65", "tax_amount": "130000"},
    {"item_name": "Cigarettes", "unit": "pack", "revenue": "100000", "tax_rate": "75", "tax_amount": "75000"},
]
ENVIRONMENTAL = [
    {"type": "resource", "item_name": "Sand", "unit": "m3", "quantity": "2.5", "unit_price": "100000", "tax_rate": "10", "tax_amount": "25000"},
    {"type": "resource", "item_name": "Gravel", "unit": "m3", "quantity": "1", "unit_price": "80000", "tax_rate": "10", "tax_amount": "8000"},
    {"type": "environmental_fee", "item_name": "Waste water", "quantity": "12", "unit_price": "1500", "tax_amount": "18000"},
]


def _count(db, model) -> int:
    return db.execute(select(func.count()).select_from(model)).scalar_one()


@pytest.fixture
def registered_store(db_session):
    shop = Store(
        name="Tap hoa Minh An",
        tax_code="0101234567",
        address="12 Hang Bac, Ha Noi",
        owner_name="Nguyen Van An",
        business_sector="Retail groceries",
        bank_account="0011 0022 0033",
        phone="0912345678",
        email="an@example.vn",
    )
    db_session.add(shop)
    db_session.commit()
    return shop


def _create_itemised(db_session, store, actor, **kwargs):
    return TaxDeclarationService(db_session).create_declaration(
        store.id,
        "month",
        "1000000.50",
        actor,
        period_key="2024-03",
        revenue_by_category=CATEGORIES,
        special_consumption_tax=SPECIAL_CONSUMPTION,
        environmental_tax=ENVIRONMENTAL,
        **kwargs,
    )


def test_category_codes_follow_the_form():
    rows = build_category_revenues(
        [{"category": "other_business", "revenue": "5"}, {"category": "manufacturing_transport"}]
    )
    assert [(r.category_code, r.position) for r in rows] == [("[31]", 0), ("[30]", 1)]
    assert rows[0].revenue == Decimal("5.00")
    assert rows[1].revenue == Decimal("0.00")


@pytest.mark.parametrize(
    "items",
    [
        [{"category": "agriculture", "revenue": "1"}],
        [{"category": "goods_distribution"}, {"category": "Goods_Distribution"}],
        [{"revenue": "1"}],
    ],
)
def test_bad_categories_are_rejected(items):
    with pytest.raises(DeclarationValidationError) as exc:
        build_category_revenues(items)
    assert exc.value.details["field"] == "revenue_by_category"


def test_item_amounts_use_strict_money_parsing():
    with pytest.raises(DeclarationValidationError):
        build_special_consumption_items([{"item_name": "Beer", "revenue": "10.005"}])
    with pytest.raises(DeclarationValidationError):
        build_special_consumption_items([{"item_name": "Beer", "tax_rate": "101"}])
    with pytest.raises(DeclarationValidationError):
        build_environmental_items([{"type": "resource", "item_name": "Sand", "quantity": "0.0001"}])


def test_special_consumption_codes_run_through_the_alphabet():
    rows = build_special_consumption_items([{"item_name": f"Item {i}"} for i in range(3)])
    assert [r.item_code for r in rows] == ["[33a]", "[33b]", "[33c]"]

    with pytest.raises(DeclarationValidationError):
        build_special_consumption_items([{"item_name": f"Item {i}"} for i in range(27)])
    with pytest.raises(DeclarationValidationError):
        build_special_consumption_items([{"unit": "can"}])


def test_environmental_codes_are_lettered_per_tax_type():
    rows = build_environmental_items(ENVIRONMENTAL + [{"type": "environmental_tax", "item_name": "Petrol"}])
    assert [r.item_code for r in rows] == ["[34a]", "[34b]", "[36a]", "[35a]"]
    assert rows[0].quantity == Decimal("2.500")

    with pytest.raises(DeclarationValidationError):
        build_environmental_items([{"type": "carbon", "item_name": "Coal"}])


def test_taxpayer_snapshot_reads_store_details(registered_store):
    assert taxpayer_snapshot(registered_store) == {
        "name": "Nguyen Van An",
        "store_name": "Tap hoa Minh An",
        "tax_code": "0101234567",
        "bank_account": "0011 0022 0033",
        "business_sector": "Retail groceries",
        "business_address": "12 Hang Bac, Ha Noi",
        "phone": "0912345678",
        "email": "an@example.vn",
    }
    assert taxpayer_snapshot(Store(name="Bare"))["name"] == ""


def test_create_stores_line_items_and_taxpayer_snapshot(db_session, registered_store, staff):
    record = _create_itemised(db_session, registered_store, staff, is_first_time=False, supplement_number=2)

    assert record.is_first_time is False
    assert record.supplement_number == 2
    assert record.taxpayer_info["name"] == "Nguyen Van An"
    assert [r.category_code for r in record.category_revenues] == ["[28]", "[29]"]
    assert [r.item_code for r in record.special_consumption_items] == ["[33a]", "[33b]"]
    assert [r.item_code for r in record.environmental_items] == ["[34a]", "[34b]", "[36a]"]

    # Later edits to the store leave the filed snapshot alone
    registered_store.owner_name = "Someone Else"
    db_session.commit()
    db_session.expire_all()
    stored = db_session.get(TaxDeclaration, record.id)
    assert stored.taxpayer_info["name"] == "Nguyen Van An"

    body = serialize_declaration(stored)
    assert body["revenue_by_category"][1] == {
        "category": "service_construction",
        "category_code": "[29]",
        "category_name": "Services and construction without materials",
        "revenue": "300000.50",
        "gtgt_tax": "15000.03",
        "tncn_tax": "6000.01",
    }
    assert body["special_consumption_tax"][0]["tax_rate"] == "65.0"
    assert body["environmental_tax"][0]["quantity"] == "2.5"
    assert body["environmental_tax"][2]["type"] == "environmental_fee"
    assert body["environmental_tax"][2]["tax_rate"] == "0.0"


def test_invalid_line_items_write_nothing(db_session, registered_store, staff):
    with pytest.raises(DeclarationValidationError):
        TaxDeclarationService(db_session).create_declaration(
            registered_store.id,
            "month",
            "100",
            staff,
            period_key="2024-03",
            revenue_by_category=[{"category": "goods_distribution", "revenue": "-1"}],
        )
    assert _count(db_session, TaxDeclaration) == 0
    assert _count(db_session, DeclarationCategoryRevenue) == 0


def test_supplement_number_must_be_a_non_negative_integer(db_session, store, staff):
    service = TaxDeclarationService(db_session)
    for bad in (-1, True, "2"):
        with pytest.raises(DeclarationValidationError):
            service.create_declaration(store.id, "month", "100", staff, period_key="2024-03", supplement_number=bad)


def test_clone_copies_every_field_and_line_item(db_session, registered_store, staff, manager):
    service = TaxDeclarationService(db_session)
    original = _create_itemised(
        db_session, registered_store, manager, notes="filed late", internal_notes="call the owner"
    )

    clone = service.clone_declaration(original.id, staff)

    source_body = serialize_declaration(original)
    clone_body = serialize_declaration(clone)
    for key in (
        "declared_revenue",
        "system_revenue",
        "tax_rates",
        "tax_amounts",
        "is_first_time",
        "supplement_number",
        "taxpayer_info",
        "notes",
        "internal_notes",
        "revenue_by_category",
        "special_consumption_tax",
        "environmental_tax",
    ):
        assert clone_body[key] == source_body[key], key

    original_ids = {row.id for row in original.category_revenues}
    assert original_ids.isdisjoint({row.id for row in clone.category_revenues})
    assert _count(db_session, DeclarationCategoryRevenue) == 4
    assert _count(db_session, DeclarationSpecialConsumptionItem) == 4
    assert _count(db_session, DeclarationEnvironmentalItem) == 6


def test_clone_items_are_independent_copies(db_session, registered_store, staff, manager):
    service = TaxDeclarationService(db_session)
    original = _create_itemised(db_session, registered_store, staff)
    clone = service.clone_declaration(original.id, staff)

    service.update_declaration(clone.id, None, staff, special_consumption_tax=[{"item_name": "Wine"}])
    db_session.expire_all()
    assert [r.item_name for r in db_session.get(TaxDeclaration, original.id).special_consumption_items] == [
        "Beer",
        "Cigarettes",
    ]

    # Deleting the original keeps the promoted clone's items
    result = service.delete_declaration(original.id, manager)
    assert result.promoted_id == clone.id
    db_session.expire_all()
    promoted = db_session.get(TaxDeclaration, clone.id)
    assert [r.item_name for r in promoted.special_consumption_items] == ["Wine"]
    assert len(promoted.category_revenues) == 2
    assert _count(db_session, DeclarationSpecialConsumptionItem) == 1


def test_update_replaces_only_the_groups_given(db_session, registered_store, staff):
    service = TaxDeclarationService(db_session)
    record = _create_itemised(db_session, registered_store, staff)

    updated = service.update_declaration(
        record.id,
        None,
        staff,
        revenue_by_category=[{"category": "other_business", "revenue": "10"}],
        environmental_tax=[],
        is_first_time=False,
        supplement_number=1,
    )

    assert updated.declared_revenue == Decimal("1000000.50")
    assert updated.total_tax == Decimal("15000.01")
    assert [r.category_code for r in updated.category_revenues] == ["[31]"]
    assert len(updated.special_consumption_items) == 2
    assert updated.environmental_items == []
    assert updated.is_first_time is False
    assert updated.supplement_number == 1
    assert _count(db_session, DeclarationCategoryRevenue) == 1
    assert _count(db_session, DeclarationEnvironmentalItem) == 0


def test_staff_may_not_set_internal_notes(db_session, store, staff, manager):
    service = TaxDeclarationService(db_session)
    with pytest.raises(ForbiddenError) as exc:
        service.create_declaration(store.id, "month", "100", staff, period_key="2024-03", internal_notes="x")
    assert exc.value.status_code == 403
    assert _count(db_session, TaxDeclaration) == 0

    record = service.create_declaration(store.id, "month", "100", staff, period_key="2024-03")
    with pytest.raises(ForbiddenError):
        service.update_declaration(record.id, "200", staff, internal_notes="x")
    db_session.expire_all()
    stored = db_session.get(TaxDeclaration, record.id)
    assert stored.internal_notes is None
    assert stored.declared_revenue == Decimal("100.00")

    updated = service.update_declaration(record.id, None, manager, internal_notes="checked by manager")
    assert updated.internal_notes == "checked by manager"
    # Staff edits leave the manager's note untouched
    again = service.update_declaration(record.id, "300", staff, notes="public")
    assert again.internal_notes == "checked by manager"
