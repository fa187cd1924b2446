from datetime import date
from decimal import Decimal

import pytest
from catalog.tests.factories import ProductFactory
from django.db.models import Sum
from inventory.exceptions import ConflictError, DuplicateError, InsufficientStockError, NotFoundError, ValidationError
from inventory.models import Lot, LotConsumption, Movement
from inventory.services import delete_movement, edit_movement, record_load, record_unload


def load(product, quantity, price, day, doc=None):
    return record_load(product_id=product.id, quantity=quantity, unit_price=price, business_date=day, document_ref=doc)


def lot_of(result):
    return Lot.objects.get(id=result.lot_id)


def assert_conserved(product):
    lots = Lot.objects.filter(product=product).aggregate(i=Sum("initial_quantity"), r=Sum("remaining_quantity"))
    consumed = LotConsumption.objects.filter(lot__product=product).aggregate(c=Sum("quantity"))["c"] or Decimal("0")
    assert (lots["i"] or 0) - consumed == (lots["r"] or 0)


@pytest.fixture
def product():
    return ProductFactory()


@pytest.fixture
def two_lots(product):
    a = load(product, "10", "2.00", "2024-01-01", doc="DDT-A")
    b = load(product, "10", "3.00", "2024-01-02", doc="DDT-B")
    return a, b


@pytest.mark.django_db
def test_record_load_creates_movement_and_matching_lot(product):
    result = load(product, "12,5", "4.10", "2024-03-01", doc=" INV-7 ")

    movement = Movement.objects.get(id=result.movement_id)
    lot = lot_of(result)
    assert movement.kind == Movement.KIND_LOAD
    assert movement.total_value == Decimal("51.25")
    assert movement.document_ref == "INV-7"
    assert lot.movement_id == movement.id
    assert lot.initial_quantity == lot.remaining_quantity == Decimal("12.50")
    assert lot.unit_cost == Decimal("4.1000")
    assert lot.load_date == date(2024, 3, 1)
    assert lot.registered_at == movement.registered_at


@pytest.mark.django_db
def test_fifo_unload_scenario(product, two_lots):
    a, b = two_lots

    result = record_unload(product_id=product.id, quantity="15", business_date="2024-01-03")

    assert result.total_cost == Decimal("35.00")
    assert lot_of(a).remaining_quantity == Decimal("0.00")
    assert lot_of(b).remaining_quantity == Decimal("5.00")
    rows = list(LotConsumption.objects.filter(movement_id=result.movement_id).values_list("lot_id", "quantity"))
    assert rows == [(a.lot_id, Decimal("10.00")), (b.lot_id, Decimal("5.00"))]
    unload = Movement.objects.get(id=result.movement_id)
    assert unload.unit_price is None
    assert unload.average_unit_cost == Decimal("2.3333")
    assert_conserved(product)


@pytest.mark.django_db
def test_fifo_tie_break_uses_registration_order(product):
    first = load(product, "5", "1.00", "2024-01-01", doc="1")
    load(product, "5", "9.00", "2024-01-01", doc="2")

    result = record_unload(product_id=product.id, quantity="5", business_date="2024-01-01")

    assert result.total_cost == Decimal("5.00")
    assert lot_of(first).remaining_quantity == Decimal("0.00")


@pytest.mark.django_db
def test_unload_shortfall_is_rejected_without_side_effects(product, two_lots):
    before = list(Lot.objects.order_by("id").values_list("remaining_quantity", flat=True))

    with pytest.raises(InsufficientStockError) as exc:
        record_unload(product_id=product.id, quantity="25", business_date="2024-01-05")

    assert exc.value.shortfall == Decimal("5.00")
    assert exc.value.available == Decimal("20.00")
    assert Movement.objects.filter(kind=Movement.KIND_UNLOAD).count() == 0
    assert list(Lot.objects.order_by("id").values_list("remaining_quantity", flat=True)) == before


@pytest.mark.django_db
def test_unload_ignores_lots_loaded_after_its_business_date(product):
    # Registered first but dated later: not available to an earlier unload
    load(product, "10", "2.00", "2024-01-10")
    with pytest.raises(InsufficientStockError) as exc:
        record_unload(product_id=product.id, quantity="5", business_date="2024-01-05")
    assert exc.value.available == Decimal("0.00")

    early = load(product, "10", "7.00", "2024-01-01")
    result = record_unload(product_id=product.id, quantity="5", business_date="2024-01-05")

    assert result.total_cost == Decimal("35.00")
    assert lot_of(early).remaining_quantity == Decimal("5.00")


@pytest.mark.django_db
def test_unloads_are_never_treated_as_duplicates(product, two_lots):
    record_unload(product_id=product.id, quantity="2", business_date="2024-01-03", document_ref="OUT-1")
    record_unload(product_id=product.id, quantity="2", business_date="2024-01-03", document_ref="OUT-1")

    assert Movement.objects.filter(kind=Movement.KIND_UNLOAD).count() == 2


@pytest.mark.django_db
def test_duplicate_load_requires_confirmation(product):
    first = load(product, "10", "2.00", "2024-01-01", doc="DDT-1")

    with pytest.raises(DuplicateError) as exc:
        load(product, "10.00", "2.50", "2024-01-01", doc="DDT-1")
    assert exc.value.existing_id == first.movement_id

    # Blank references compare equal
    load(product, "3", "1.00", "2024-01-01")
    with pytest.raises(DuplicateError):
        load(product, "3", "1.00", "2024-01-01", doc="")

    confirmed = record_load(
        product_id=product.id,
        quantity="10",
        unit_price="2.00",
        business_date="2024-01-01",
        document_ref="DDT-1",
        confirm_duplicate=True,
    )
    assert confirmed.movement_id != first.movement_id
    # A different document is a different load
    load(product, "10", "2.00", "2024-01-01", doc="DDT-2")
    assert Movement.objects.filter(kind=Movement.KIND_LOAD).count() == 4


@pytest.mark.django_db
@pytest.mark.parametrize(
    "kwargs",
    [
        {"quantity": "abc"},
        {"quantity": "0"},
        {"quantity": "-3"},
        {"quantity": "NaN"},
        {"unit_price": "inf"},
        {"unit_price": None},
        {"business_date": "2024-02-30"},
        {"product_id": "x"},
    ],
)
def test_record_load_rejects_invalid_input(product, kwargs):
    data = {"product_id": product.id, "quantity": "1", "unit_price": "1", "business_date": "2024-01-01", **kwargs}

    with pytest.raises(ValidationError):
        record_load(**data)
    assert not Movement.objects.exists()
    assert not Lot.objects.exists()


@pytest.mark.django_db
def test_unknown_product_is_not_found():
    with pytest.raises(NotFoundError):
        record_load(product_id=999999, quantity="1", unit_price="1", business_date="2024-01-01")
    with pytest.raises(NotFoundError):
        record_unload(product_id=999999, quantity="1", business_date="2024-01-01")


@pytest.mark.django_db
def test_delete_untouched_load_round_trips(product, two_lots):
    _, b = two_lots

    delete_movement(movement_id=b.movement_id)

    assert not Movement.objects.filter(id=b.movement_id).exists()
    assert not Lot.objects.filter(id=b.lot_id).exists()
    assert Lot.objects.filter(product=product).count() == 1


@pytest.mark.django_db
def test_delete_consumed_load_conflicts(product, two_lots):
    a, _ = two_lots
    record_unload(product_id=product.id, quantity="4", business_date="2024-01-03")

    with pytest.raises(ConflictError) as exc:
        delete_movement(movement_id=a.movement_id)

    assert "4.00" in exc.value.message
    assert Lot.objects.filter(id=a.lot_id).exists()


@pytest.mark.django_db
def test_delete_unload_restores_the_lots_it_drew_from(product, two_lots):
    a, b = two_lots
    unload = record_unload(product_id=product.id, quantity="15", business_date="2024-01-03")
    record_unload(product_id=product.id, quantity="2", business_date="2024-01-04")

    delete_movement(movement_id=unload.movement_id)

    assert lot_of(a).remaining_quantity == Decimal("10.00")
    assert lot_of(b).remaining_quantity == Decimal("8.00")
    assert not LotConsumption.objects.filter(movement_id=unload.movement_id).exists()
    assert_conserved(product)


@pytest.mark.django_db
def test_delete_unknown_movement_is_not_found():
    with pytest.raises(NotFoundError):
        delete_movement(movement_id=424242)


@pytest.mark.django_db
def test_delete_legacy_unload_refills_latest_registered_lots(product, two_lots):
    a, b = two_lots
    # Unload recorded without a consumption plan that took 4 from lot A
    legacy = Movement.objects.create(
        product=product, kind=Movement.KIND_UNLOAD, quantity=Decimal("4.00"), business_date=date(2024, 1, 3)
    )
    Lot.objects.filter(id=a.lot_id).update(remaining_quantity=Decimal("6.00"))

    delete_movement(movement_id=legacy.id)

    # B is newer but has no untracked consumption, so A gets the stock back
    assert lot_of(a).remaining_quantity == Decimal("10.00")
    assert lot_of(b).remaining_quantity == Decimal("10.00")


@pytest.mark.django_db
def test_delete_legacy_unload_conflicts_when_stock_cannot_be_attributed(product, two_lots):
    legacy = Movement.objects.create(
        product=product, kind=Movement.KIND_UNLOAD, quantity=Decimal("4.00"), business_date=date(2024, 1, 3)
    )

    with pytest.raises(ConflictError):
        delete_movement(movement_id=legacy.id)
    assert Movement.objects.filter(id=legacy.id).exists()


@pytest.mark.django_db
def test_edit_unload_replans_against_restored_lots(product, two_lots):
    a, b = two_lots
    unload = record_unload(product_id=product.id, quantity="15", business_date="2024-01-03")

    result = edit_movement(movement_id=unload.movement_id, quantity="18")

    assert result.total_cost == Decimal("44.00")
    assert lot_of(a).remaining_quantity == Decimal("0.00")
    assert lot_of(b).remaining_quantity == Decimal("2.00")
    movement = Movement.objects.get(id=unload.movement_id)
    assert movement.quantity == Decimal("18.00")
    assert movement.total_value == Decimal("44.00")
    assert_conserved(product)


@pytest.mark.django_db
def test_edit_unload_shortfall_leaves_previous_state(product, two_lots):
    a, b = two_lots
    unload = record_unload(product_id=product.id, quantity="15", business_date="2024-01-03")

    with pytest.raises(InsufficientStockError):
        edit_movement(movement_id=unload.movement_id, quantity="21")
    # Moving before lot B was loaded leaves only lot A
    with pytest.raises(InsufficientStockError):
        edit_movement(movement_id=unload.movement_id, business_date="2024-01-01")

    assert lot_of(a).remaining_quantity == Decimal("0.00")
    assert lot_of(b).remaining_quantity == Decimal("5.00")
    assert Movement.objects.get(id=unload.movement_id).total_value == Decimal("35.00")
    assert LotConsumption.objects.filter(movement_id=unload.movement_id).count() == 2


@pytest.mark.django_db
def test_edit_unload_date_and_quantity_together(product, two_lots):
    a, b = two_lots
    unload = record_unload(product_id=product.id, quantity="15", business_date="2024-01-03")

    result = edit_movement(movement_id=unload.movement_id, quantity="5", business_date="2024-01-01")

    assert result.total_cost == Decimal("10.00")
    assert lot_of(a).remaining_quantity == Decimal("5.00")
    assert lot_of(b).remaining_quantity == Decimal("10.00")


@pytest.mark.django_db
def test_edit_unload_rejects_price_and_unknown_fields(product, two_lots):
    unload = record_unload(product_id=product.id, quantity="1", business_date="2024-01-03")

    with pytest.raises(ValidationError):
        edit_movement(movement_id=unload.movement_id, unit_price="5")
    with pytest.raises(ValidationError):
        edit_movement(movement_id=unload.movement_id, product_id=123)


@pytest.mark.django_db
def test_edit_load_quantity_respects_consumption(product, two_lots):
    a, _ = two_lots
    record_unload(product_id=product.id, quantity="15", business_date="2024-01-03")

    with pytest.raises(ConflictError):
        edit_movement(movement_id=a.movement_id, quantity="9")

    edit_movement(movement_id=a.movement_id, quantity="12")
    lot = lot_of(a)
    assert lot.initial_quantity == Decimal("12.00")
    assert lot.remaining_quantity == Decimal("2.00")
    assert Movement.objects.get(id=a.movement_id).total_value == Decimal("24.00")
    assert_conserved(product)


@pytest.mark.django_db
def test_edit_load_price_restates_unloads_drawn_from_it(product, two_lots):
    a, _ = two_lots
    unload = record_unload(product_id=product.id, quantity="15", business_date="2024-01-03")

    edit_movement(movement_id=a.movement_id, unit_price="2.50")

    assert lot_of(a).unit_cost == Decimal("2.5000")
    assert Movement.objects.get(id=unload.movement_id).total_value == Decimal("40.00")
    costs = set(LotConsumption.objects.filter(lot_id=a.lot_id).values_list("unit_cost", flat=True))
    assert costs == {Decimal("2.5000")}


@pytest.mark.django_db
def test_edit_load_date_cannot_jump_past_unloads_that_used_it(product, two_lots):
    a, _ = two_lots
    record_unload(product_id=product.id, quantity="3", business_date="2024-01-03")

    with pytest.raises(ConflictError):
        edit_movement(movement_id=a.movement_id, business_date="2024-01-05")

    edit_movement(movement_id=a.movement_id, business_date="2024-01-02")
    assert lot_of(a).load_date == date(2024, 1, 2)


@pytest.mark.django_db
def test_edit_load_into_existing_identity_is_a_duplicate(product, two_lots):
    a, b = two_lots

    with pytest.raises(DuplicateError) as exc:
        edit_movement(movement_id=b.movement_id, business_date="2024-01-01", document_ref="DDT-A")
    assert exc.value.existing_id == a.movement_id

    edit_movement(movement_id=b.movement_id, business_date="2024-01-01", document_ref="DDT-A", confirm_duplicate=True)
    assert lot_of(b).load_date == date(2024, 1, 1)


@pytest.mark.django_db
def test_edit_load_refs_only_skips_duplicate_guard(product):
    first = load(product, "10", "2.00", "2024-01-01")
    load(product, "10", "2.00", "2024-01-01", doc="X")
    record_load(
        product_id=product.id, quantity="10", unit_price="2.00", business_date="2024-01-01", confirm_duplicate=True
    )

    edit_movement(movement_id=first.movement_id, counterparty_ref="Supplier SpA")

    assert lot_of(first).counterparty_ref == "Supplier SpA"


@pytest.mark.django_db
def test_unload_walks_lots_oldest_first_across_three_lots(product):
    # Registered newest-date first to show the business date drives FIFO
    c = load(product, "5", "4.00", "2024-01-03")
    b = load(product, "5", "3.00", "2024-01-02")
    a = load(product, "5", "2.00", "2024-01-01")

    result = record_unload(product_id=product.id, quantity="7", business_date="2024-01-04")

    assert result.total_cost == Decimal("16.00")
    assert [lot_of(r).remaining_quantity for r in (a, b, c)] == [Decimal("0.00"), Decimal("3.00"), Decimal("5.00")]


@pytest.mark.django_db
@pytest.mark.parametrize(
    "quantity,price",
    [("1e30", "2"), ("1000000000000000", "2"), ("999999999999", "9999999999")],
)
def test_record_load_rejects_amounts_beyond_column_size(product, quantity, price):
    with pytest.raises(ValidationError):
        record_load(product_id=product.id, quantity=quantity, unit_price=price, business_date="2024-01-01")
    assert not Movement.objects.exists()


@pytest.mark.django_db
def test_edit_load_rejects_oversized_value(product):
    result = load(product, "999999999999", "1.00", "2024-01-01")

    with pytest.raises(ValidationError):
        edit_movement(movement_id=result.movement_id, unit_price="9999999999")
    assert lot_of(result).unit_cost == Decimal("1.0000")
