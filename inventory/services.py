"""Inventory services: the FIFO lot ledger.

Every mutation runs in one ``transaction.atomic`` block and starts by locking
the product row, so writers on the same product are serialized and the
shortfall check cannot be raced. Any error rolls the whole operation back.
Change notifications are queued with ``on_commit`` and only leave after a
successful commit.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from catalog.models import Product
from common.choices import LedgerEventKind
from django.db import transaction
from django.db.models import Min, Sum
from django.utils import timezone

from .allocator import COST_PLACES, ZERO, Allocation, allocate, fifo_sort_key, round2, to_date, to_decimal
from .events import LedgerEvent, publish
from .exceptions import ConflictError, DuplicateError, InsufficientStockError, NotFoundError, ValidationError
from .models import Lot, LotConsumption, Movement

LOAD_EDITABLE_FIELDS = {"quantity", "unit_price", "business_date", "document_ref", "counterparty_ref"}
UNLOAD_EDITABLE_FIELDS = {"quantity", "business_date", "document_ref", "counterparty_ref"}


@dataclass(frozen=True)
class LoadResult:
    movement_id: int
    lot_id: int


@dataclass(frozen=True)
class UnloadResult:
    movement_id: int
    total_cost: Decimal


@dataclass(frozen=True)
class EditResult:
    movement_id: int
    total_cost: Optional[Decimal] = None


def _clean_ref(value) -> str:
    return str(value).strip() if value is not None else ""


def _lock_product(product_id) -> Product:
    try:
        pk = int(product_id)
    except (TypeError, ValueError):
        raise ValidationError("product_id must be an integer.")
    try:
        return Product.objects.select_for_update().get(id=pk)
    except Product.DoesNotExist:
        raise NotFoundError(f"Product {pk} not found.")


def _lock_movement(movement_id) -> Movement:
    """Lock the owning product first, then the movement itself."""

    try:
        pk = int(movement_id)
    except (TypeError, ValueError):
        raise ValidationError("movement_id must be an integer.")
    product_id = Movement.objects.filter(id=pk).values_list("product_id", flat=True).first()
    if product_id is None:
        raise NotFoundError(f"Movement {pk} not found.")
    _lock_product(product_id)
    movement = Movement.objects.select_for_update().filter(id=pk).first()
    if movement is None:
        raise NotFoundError(f"Movement {pk} not found.")
    return movement


def _guard_duplicate_load(
    *, product_id: int, quantity: Decimal, business_date: date, document_ref: str, exclude_id=None
):
    qs = Movement.objects.filter(
        product_id=product_id,
        kind=Movement.KIND_LOAD,
        quantity=quantity,
        business_date=business_date,
        document_ref=document_ref,
    )
    if exclude_id is not None:
        qs = qs.exclude(id=exclude_id)
    existing_id = qs.values_list("id", flat=True).first()
    if existing_id is not None:
        raise DuplicateError(
            f"A load of {quantity} on {business_date.isoformat()} with document '{document_ref}' already exists.",
            existing_id=existing_id,
        )


class _LotBook:
    """Locked lots of one product, changed in memory and written back once.

    Restoring and re-consuming the same lot during an edit therefore nets to a
    single update, and nothing is written if planning fails.
    """

    def __init__(self, product_id: int):
        lots = Lot.objects.select_for_update().filter(product_id=product_id)
        self.lots = {lot.id: lot for lot in lots}
        self._before = {lot_id: lot.remaining_quantity for lot_id, lot in self.lots.items()}

    def eligible(self, business_date: date):
        """Open lots loaded on or before ``business_date``, in FIFO order."""
        open_lots = [
            lot for lot in self.lots.values() if lot.load_date <= business_date and lot.remaining_quantity > 0
        ]
        return sorted(open_lots, key=fifo_sort_key)

    def draw(self, allocation: Allocation) -> None:
        for d in allocation.plan:
            lot = self.lots[d.lot_id]
            lot.remaining_quantity = round2(lot.remaining_quantity - d.quantity)

    def restore(self, movement: Movement) -> None:
        """Give back what ``movement`` (an unload) took from the lots."""

        consumptions = list(movement.consumptions.all())
        if consumptions:
            for c in consumptions:
                lot = self.lots.get(c.lot_id)
                if lot is None:
                    raise ConflictError(f"Lot {c.lot_id} drawn by movement {movement.id} no longer exists.")
                restored = round2(lot.remaining_quantity + c.quantity)
                if restored > lot.initial_quantity:
                    raise ConflictError(
                        f"Restoring {c.quantity} into lot {lot.id} would exceed its initial quantity."
                    )
                lot.remaining_quantity = restored
            return
        self._restore_untracked(movement)

    def _restore_untracked(self, movement: Movement) -> None:
        # Unloads recorded without a consumption plan: refill the most recently
        # registered lots first, only up to space no tracked unload accounts for.
        tracked = dict(
            LotConsumption.objects.filter(lot_id__in=self.lots.keys())
            .order_by()
            .values("lot_id")
            .annotate(total=Sum("quantity"))
            .values_list("lot_id", "total")
        )
        to_restore = movement.quantity
        candidates = sorted(
            (lot for lot in self.lots.values() if lot.load_date <= movement.business_date),
            key=lambda lot: (lot.registered_at, lot.id),
            reverse=True,
        )
        for lot in candidates:
            if to_restore <= 0:
                break
            space = lot.initial_quantity - lot.remaining_quantity - tracked.get(lot.id, ZERO)
            if space <= 0:
                continue
            give = min(to_restore, space)
            lot.remaining_quantity = round2(lot.remaining_quantity + give)
            to_restore = round2(to_restore - give)
        if to_restore > 0:
            raise ConflictError(
                f"Cannot restore {to_restore} of {movement.quantity}: the consumed stock was reused by later "
                "movements or its lots were removed."
            )

    def flush(self) -> None:
        for lot_id, lot in self.lots.items():
            if lot.remaining_quantity == self._before[lot_id]:
                continue
            if lot.remaining_quantity < 0 or lot.remaining_quantity > lot.initial_quantity:
                raise ConflictError(f"Lot {lot_id} would end with an invalid remaining quantity.")
            lot.save(update_fields=["remaining_quantity", "updated_at"])
            self._before[lot_id] = lot.remaining_quantity


def _record_consumptions(movement: Movement, allocation: Allocation) -> None:
    LotConsumption.objects.bulk_create(
        [
            LotConsumption(movement=movement, lot_id=d.lot_id, quantity=d.quantity, unit_cost=d.unit_cost)
            for d in allocation.plan
        ]
    )


def _load_total(quantity: Decimal, unit_price: Decimal) -> Decimal:
    total = round2(quantity * unit_price)
    # Movement.total_value holds 16 digits
    if len(total.as_tuple().digits) > 16:
        raise ValidationError(f"Load value {total} is too large.")
    return total


def consumption_cost(consumptions) -> Decimal:
    # Same step-wise rounding as the allocator so restated totals match
    total = ZERO
    for c in consumptions:
        total = round2(total + c.quantity * c.unit_cost)
    return total


@transaction.atomic
def record_load(
    *,
    product_id: int,
    quantity,
    unit_price,
    business_date,
    document_ref: Optional[str] = None,
    counterparty_ref: Optional[str] = None,
    confirm_duplicate: bool = False,
) -> LoadResult:
    """Record a load: one movement and one new lot holding the same quantity.

    Raises DuplicateError when an identical load (product, quantity, business
    date, document reference) exists, unless ``confirm_duplicate`` is set.
    """

    qty = to_decimal(quantity, field_name="quantity")
    price = to_decimal(unit_price, field_name="unit_price", places=COST_PLACES)
    day = to_date(business_date)
    doc = _clean_ref(document_ref)
    party = _clean_ref(counterparty_ref)

    product = _lock_product(product_id)
    if not confirm_duplicate:
        _guard_duplicate_load(product_id=product.id, quantity=qty, business_date=day, document_ref=doc)

    now = timezone.now()
    movement = Movement.objects.create(
        product=product,
        kind=Movement.KIND_LOAD,
        quantity=qty,
        unit_price=price,
        total_value=_load_total(qty, price),
        business_date=day,
        registered_at=now,
        document_ref=doc,
        counterparty_ref=party,
    )
    lot = Lot.objects.create(
        product=product,
        movement=movement,
        initial_quantity=qty,
        remaining_quantity=qty,
        unit_cost=price,
        load_date=day,
        registered_at=now,
        document_ref=doc,
        counterparty_ref=party,
    )
    publish(LedgerEvent(LedgerEventKind.MOVEMENT_RECORDED, product.id, movement.id))
    return LoadResult(movement_id=movement.id, lot_id=lot.id)


@transaction.atomic
def record_unload(
    *,
    product_id: int,
    quantity,
    business_date,
    document_ref: Optional[str] = None,
    counterparty_ref: Optional[str] = None,
) -> UnloadResult:
    """Record an unload valued by FIFO over lots loaded on or before its date.

    Stock loaded after ``business_date`` never satisfies it, even if it was
    registered earlier. Raises InsufficientStockError with the shortfall.
    """

    qty = to_decimal(quantity, field_name="quantity")
    day = to_date(business_date)

    product = _lock_product(product_id)
    book = _LotBook(product.id)
    allocation = allocate(book.eligible(day), qty)
    if not allocation.satisfied:
        raise InsufficientStockError(shortfall=allocation.shortfall, available=allocation.available)

    movement = Movement.objects.create(
        product=product,
        kind=Movement.KIND_UNLOAD,
        quantity=qty,
        unit_price=None,
        total_value=allocation.total_cost,
        business_date=day,
        registered_at=timezone.now(),
        document_ref=_clean_ref(document_ref),
        counterparty_ref=_clean_ref(counterparty_ref),
    )
    book.draw(allocation)
    book.flush()
    _record_consumptions(movement, allocation)
    publish(LedgerEvent(LedgerEventKind.MOVEMENT_RECORDED, product.id, movement.id))
    return UnloadResult(movement_id=movement.id, total_cost=allocation.total_cost)


@transaction.atomic
def delete_movement(*, movement_id: int) -> None:
    """Reverse a movement and remove it from the log.

    A load can only go while its lot is untouched. An unload gives its stock
    back to the lots it drew from.
    """

    movement = _lock_movement(movement_id)
    product_id = movement.product_id
    # delete() clears the pk on the instance
    pk = movement.id

    if movement.is_load:
        lot = Lot.objects.select_for_update().filter(movement=movement).first()
        if lot is not None:
            if lot.remaining_quantity != lot.initial_quantity:
                raise ConflictError(
                    f"Cannot delete load {movement.id}: {lot.consumed_quantity} of {lot.initial_quantity} "
                    "units have already been unloaded."
                )
            lot.delete()
        movement.delete()
    else:
        book = _LotBook(product_id)
        book.restore(movement)
        book.flush()
        movement.delete()

    publish(LedgerEvent(LedgerEventKind.MOVEMENT_DELETED, product_id, pk))


@transaction.atomic
def edit_movement(*, movement_id: int, confirm_duplicate: bool = False, **changes) -> EditResult:
    """Change a committed movement by reversing its lot effects and reapplying them.

    Either every write lands or none does; a failed re-allocation leaves the
    previous state untouched.
    """

    movement = _lock_movement(movement_id)
    allowed = LOAD_EDITABLE_FIELDS if movement.is_load else UNLOAD_EDITABLE_FIELDS
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError(f"Cannot change {', '.join(sorted(unknown))} on a {movement.kind} movement.")

    if movement.is_load:
        result = _edit_load(movement, changes, confirm_duplicate=confirm_duplicate)
    else:
        result = _edit_unload(movement, changes)
    publish(LedgerEvent(LedgerEventKind.MOVEMENT_UPDATED, movement.product_id, movement.id))
    return result


def _edit_load(movement: Movement, changes: dict, *, confirm_duplicate: bool) -> EditResult:
    qty = to_decimal(changes.get("quantity", movement.quantity), field_name="quantity")
    price = to_decimal(changes.get("unit_price", movement.unit_price), field_name="unit_price", places=COST_PLACES)
    day = to_date(changes.get("business_date", movement.business_date))
    doc = _clean_ref(changes.get("document_ref", movement.document_ref))
    party = _clean_ref(changes.get("counterparty_ref", movement.counterparty_ref))

    lot = Lot.objects.select_for_update().filter(movement=movement).first()
    if lot is None:
        raise ConflictError(f"Load {movement.id} has no lot to update.")

    consumed = lot.consumed_quantity
    if qty < consumed:
        raise ConflictError(f"Cannot reduce load {movement.id} to {qty}: {consumed} units have already been unloaded.")

    if consumed > 0 and day > lot.load_date:
        tracked = LotConsumption.objects.filter(lot=lot).aggregate(total=Sum("quantity"))["total"] or ZERO
        earliest = Movement.objects.filter(consumptions__lot=lot).aggregate(first=Min("business_date"))["first"]
        if tracked < consumed or (earliest is not None and day > earliest):
            raise ConflictError(
                f"Cannot move load {movement.id} to {day.isoformat()}: unloads dated earlier already drew from it."
            )

    identity_changed = (qty, day, doc) != (movement.quantity, movement.business_date, movement.document_ref)
    if identity_changed and not confirm_duplicate:
        _guard_duplicate_load(
            product_id=movement.product_id, quantity=qty, business_date=day, document_ref=doc, exclude_id=movement.id
        )

    price_changed = price != lot.unit_cost

    movement.quantity = qty
    movement.unit_price = price
    movement.total_value = _load_total(qty, price)
    movement.business_date = day
    movement.document_ref = doc
    movement.counterparty_ref = party
    movement.save()

    lot.initial_quantity = qty
    lot.remaining_quantity = round2(qty - consumed)
    lot.unit_cost = price
    lot.load_date = day
    lot.document_ref = doc
    lot.counterparty_ref = party
    lot.save()

    if price_changed and consumed > 0:
        _restate_unloads_for_lot(lot)
    return EditResult(movement_id=movement.id, total_cost=movement.total_value)


def _restate_unloads_for_lot(lot: Lot) -> None:
    """Revalue unloads that drew from ``lot`` after its unit cost changed."""

    LotConsumption.objects.filter(lot=lot).update(unit_cost=lot.unit_cost, updated_at=timezone.now())
    movement_ids = set(LotConsumption.objects.filter(lot=lot).values_list("movement_id", flat=True))
    rows = defaultdict(list)
    for c in LotConsumption.objects.filter(movement_id__in=movement_ids).order_by("movement_id", "id"):
        rows[c.movement_id].append(c)
    for unload in Movement.objects.select_for_update().filter(id__in=movement_ids):
        unload.total_value = consumption_cost(rows[unload.id])
        unload.save(update_fields=["total_value", "updated_at"])


def _edit_unload(movement: Movement, changes: dict) -> EditResult:
    qty = to_decimal(changes.get("quantity", movement.quantity), field_name="quantity")
    day = to_date(changes.get("business_date", movement.business_date))

    book = _LotBook(movement.product_id)
    book.restore(movement)
    allocation = allocate(book.eligible(day), qty)
    if not allocation.satisfied:
        raise InsufficientStockError(shortfall=allocation.shortfall, available=allocation.available)
    book.draw(allocation)
    book.flush()

    movement.consumptions.all().delete()
    _record_consumptions(movement, allocation)

    movement.quantity = qty
    movement.business_date = day
    movement.total_value = allocation.total_cost
    movement.document_ref = _clean_ref(changes.get("document_ref", movement.document_ref))
    movement.counterparty_ref = _clean_ref(changes.get("counterparty_ref", movement.counterparty_ref))
    movement.save()
    return EditResult(movement_id=movement.id, total_cost=allocation.total_cost)


# EOF
