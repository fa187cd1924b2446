"""FIFO allocation over an ordered sequence of lots.

Pure functions only: nothing here touches the database, so the same code
values new unloads, re-plans edited ones and replays history in memory.
Lots are duck-typed: anything with ``id``, ``remaining_quantity`` and
``unit_cost`` works (model instances or :class:`ReplayLot`).
"""

import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Optional, Tuple

from .exceptions import ValidationError

CENT = Decimal("0.01")
COST_PLACES = Decimal("0.0001")
ZERO = Decimal("0.00")


def round2(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(
    value, *, field_name: str, places: Decimal = CENT, max_digits: int = 14, positive: bool = True
) -> Decimal:
    """Parse user numeric input into a rounded Decimal.

    Accepts Decimal, int, float or strings (a decimal comma is tolerated).
    Missing, malformed, NaN and infinite values raise ValidationError, as do
    non-positive values when ``positive`` is set and values with more than
    ``max_digits`` digits once rounded to ``places``.
    """

    if value is None or value == "":
        raise ValidationError(f"{field_name} is required.")
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number.")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(f"{field_name} must be a finite number.")
    try:
        number = Decimal(str(value).strip().replace(",", "."))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number.")
    if not number.is_finite():
        raise ValidationError(f"{field_name} must be a finite number.")
    try:
        number = number.quantize(places, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"{field_name} is too large.")
    if len(number.as_tuple().digits) > max_digits:
        raise ValidationError(f"{field_name} is too large (at most {max_digits} digits).")
    if positive and number <= 0:
        raise ValidationError(f"{field_name} must be greater than zero.")
    return number


def to_date(value, *, field_name: str = "business_date") -> date:
    """Parse an ISO ``YYYY-MM-DD`` calendar date."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        raise ValidationError(f"{field_name} is required (YYYY-MM-DD).")
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(f"{field_name} is not a valid date (YYYY-MM-DD).")


def fifo_sort_key(lot):
    """Ordering key defining FIFO: load date, then registration time, then id."""
    return (lot.load_date, lot.registered_at, lot.id or 0)


@dataclass(frozen=True)
class Draw:
    lot_id: int
    quantity: Decimal
    unit_cost: Decimal

    @property
    def cost(self) -> Decimal:
        return round2(self.quantity * self.unit_cost)


@dataclass(frozen=True)
class Allocation:
    plan: Tuple[Draw, ...]
    total_cost: Decimal
    shortfall: Decimal
    available: Decimal

    @property
    def satisfied(self) -> bool:
        return self.shortfall <= 0

    @property
    def quantity_drawn(self) -> Decimal:
        return sum((d.quantity for d in self.plan), ZERO)


def allocate(open_lots: Iterable, quantity_needed: Decimal) -> Allocation:
    """Consume ``quantity_needed`` from ``open_lots`` in the order given.

    The caller sorts; this function never reorders. ``available`` is the total
    remaining across the lots, reported so rejections can show it.
    """

    needed = round2(Decimal(quantity_needed))
    total_cost = ZERO
    available = ZERO
    plan = []

    for lot in open_lots:
        remaining = round2(Decimal(lot.remaining_quantity))
        if remaining <= 0:
            continue
        available = round2(available + remaining)
        if needed <= 0:
            continue
        take = min(needed, remaining)
        plan.append(Draw(lot_id=lot.id, quantity=take, unit_cost=Decimal(lot.unit_cost)))
        total_cost = round2(total_cost + take * Decimal(lot.unit_cost))
        needed = round2(needed - take)

    shortfall = needed if needed > 0 else ZERO
    return Allocation(plan=tuple(plan), total_cost=total_cost, shortfall=shortfall, available=available)


@dataclass
class ReplayLot:
    """In-memory lot used when re-planning or replaying without touching the DB."""

    id: int
    product_id: int
    initial_quantity: Decimal
    remaining_quantity: Decimal
    unit_cost: Decimal
    load_date: date
    registered_at: datetime
    document_ref: str = ""
    counterparty_ref: str = ""

    @classmethod
    def from_lot(cls, lot, *, remaining: Optional[Decimal] = None) -> "ReplayLot":
        return cls(
            id=lot.id,
            product_id=lot.product_id,
            initial_quantity=lot.initial_quantity,
            remaining_quantity=lot.remaining_quantity if remaining is None else remaining,
            unit_cost=lot.unit_cost,
            load_date=lot.load_date,
            registered_at=lot.registered_at,
            document_ref=lot.document_ref,
            counterparty_ref=lot.counterparty_ref,
        )

    @property
    def remaining_value(self) -> Decimal:
        return round2(self.remaining_quantity * self.unit_cost)

    def draw(self, quantity: Decimal) -> None:
        self.remaining_quantity = round2(self.remaining_quantity - quantity)


# EOF
