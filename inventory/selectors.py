"""Selectors for the inventory domain: open lots, history and valuation.

Read-only. Current figures come straight from lot remaining quantities;
point-in-time figures are rebuilt by replaying movements in memory because
persisted remaining quantities only describe "now".
"""

from collections import defaultdict
from decimal import Decimal
from typing import Optional

from catalog.models import Product
from django.db.models import DecimalField, QuerySet, Sum, Value
from django.db.models.functions import Coalesce

from .allocator import ZERO, ReplayLot, allocate, fifo_sort_key, round2, to_date
from .models import Lot, Movement


def list_open_lots(product_id: int) -> QuerySet[Lot]:
    """Lots of a product with stock left, oldest first (FIFO order)."""

    return Lot.objects.filter(product_id=product_id, remaining_quantity__gt=0).order_by(
        "load_date", "registered_at", "id"
    )


def list_movements(
    *, product_id: Optional[int] = None, kind: Optional[str] = None, until=None
) -> QuerySet[Movement]:
    """Movement log, newest registration first.

    With ``until`` only movements dated on or before it are returned, ordered by
    business date (newest first) for historical review.
    """

    qs = Movement.objects.select_related("product")
    if product_id is not None:
        qs = qs.filter(product_id=product_id)
    if kind:
        qs = qs.filter(kind=kind)
    if until is not None:
        day = to_date(until, field_name="until")
        return qs.filter(business_date__lte=day).order_by("-business_date", "-registered_at", "-id")
    return qs.order_by("-registered_at", "-id")


def product_stock_summary() -> QuerySet[Product]:
    """Every product annotated with its on-hand quantity as ``stock``."""

    return (
        Product.objects.select_related("brand")
        .annotate(
            stock=Coalesce(
                Sum("lots__remaining_quantity"),
                Value(Decimal("0.00")),
                output_field=DecimalField(max_digits=14, decimal_places=2),
            )
        )
        .order_by("name")
    )


def _summarize(products, lots_by_product) -> dict:
    rows = []
    total_quantity = ZERO
    total_value = ZERO
    for product in products:
        open_lots = [lot for lot in lots_by_product.get(product.id, []) if lot.remaining_quantity > 0]
        quantity = sum((lot.remaining_quantity for lot in open_lots), ZERO)
        value = sum((lot.remaining_value for lot in open_lots), ZERO)
        rows.append(
            {
                "product_id": product.id,
                "product_name": product.name,
                "quantity": quantity,
                "value": value,
                "lots": sorted(open_lots, key=fifo_sort_key),
            }
        )
        total_quantity += quantity
        total_value += value
    return {"products": rows, "total_quantity": total_quantity, "total_value": round2(total_value)}


def current_valuation(product_id: Optional[int] = None) -> dict:
    """On-hand quantity and FIFO value per product, plus grand totals."""

    products = Product.objects.order_by("name")
    lots = Lot.objects.filter(remaining_quantity__gt=0)
    if product_id is not None:
        products = products.filter(id=product_id)
        lots = lots.filter(product_id=product_id)
    lots_by_product = defaultdict(list)
    for lot in lots:
        lots_by_product[lot.product_id].append(lot)
    return _summarize(products, lots_by_product)


def valuation_as_of(as_of, product_id: Optional[int] = None) -> dict:
    """Stock and FIFO value per product at the end of business day ``as_of``.

    Loads and unloads dated up to ``as_of`` are replayed in registration order
    against in-memory copies of the lots. Unloads with a recorded consumption
    plan replay it exactly; older unloads without one are re-simulated with the
    FIFO allocator over the lots eligible at their date.
    """

    day = to_date(as_of, field_name="date")

    products = Product.objects.order_by("name")
    lots = Lot.objects.filter(load_date__lte=day)
    unloads = Movement.objects.filter(kind=Movement.KIND_UNLOAD, business_date__lte=day)
    if product_id is not None:
        products = products.filter(id=product_id)
        lots = lots.filter(product_id=product_id)
        unloads = unloads.filter(product_id=product_id)

    book = {lot.id: ReplayLot.from_lot(lot, remaining=lot.initial_quantity) for lot in lots}

    for unload in unloads.prefetch_related("consumptions").order_by("registered_at", "id"):
        consumptions = list(unload.consumptions.all())
        if consumptions:
            for c in consumptions:
                lot = book.get(c.lot_id)
                if lot is not None:
                    lot.draw(c.quantity)
            continue
        eligible = sorted(
            (
                lot
                for lot in book.values()
                if lot.product_id == unload.product_id
                and lot.load_date <= unload.business_date
                and lot.registered_at <= unload.registered_at
            ),
            key=fifo_sort_key,
        )
        for draw in allocate(eligible, unload.quantity).plan:
            book[draw.lot_id].draw(draw.quantity)

    lots_by_product = defaultdict(list)
    for lot in book.values():
        lots_by_product[lot.product_id].append(lot)
    summary = _summarize(products, lots_by_product)
    summary["date"] = day
    return summary


# EOF
