"""Inventory models (single-location, FIFO lots).

Lots hold the stock received by one load movement. Movements are the audit
trail users see. Lot consumptions record which lots an unload drew from so
that reversals restore exactly what was taken.
"""

from decimal import Decimal

from common.choices import MovementKind
from django.db import models
from django.utils import timezone


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Movement(TimeStampedModel):
    KIND_LOAD = MovementKind.LOAD
    KIND_UNLOAD = MovementKind.UNLOAD
    KIND_CHOICES = MovementKind.choices

    product = models.ForeignKey("catalog.Product", related_name="movements", on_delete=models.PROTECT)
    kind = models.CharField(max_length=16, choices=KIND_CHOICES)
    quantity = models.DecimalField(max_digits=14, decimal_places=2)
    # Unit price is only known for loads; unloads are valued from lots
    unit_price = models.DecimalField(max_digits=14, decimal_places=4, null=True, blank=True)
    total_value = models.DecimalField(max_digits=16, decimal_places=2, default=Decimal("0.00"))
    business_date = models.DateField(db_index=True)
    registered_at = models.DateTimeField(default=timezone.now, db_index=True)
    document_ref = models.CharField(max_length=120, blank=True)
    counterparty_ref = models.CharField(max_length=120, blank=True)

    class Meta:
        ordering = ["-registered_at", "-id"]
        constraints = [
            models.CheckConstraint(name="movement_quantity_positive", condition=models.Q(quantity__gt=0)),
            models.CheckConstraint(
                name="movement_load_has_price",
                condition=models.Q(kind=MovementKind.UNLOAD) | models.Q(unit_price__gt=0),
            ),
        ]
        indexes = [
            models.Index(fields=["product", "kind", "business_date"], name="movement_product_kind_date_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.kind} {self.quantity} of {self.product_id} on {self.business_date}"

    @property
    def is_load(self) -> bool:
        return self.kind == MovementKind.LOAD

    @property
    def average_unit_cost(self):
        """Average cost per unit of an unload, None for loads."""
        if self.is_load or not self.quantity:
            return None
        return (self.total_value / self.quantity).quantize(Decimal("0.0001"))


class Lot(TimeStampedModel):
    """FIFO lot created from exactly one load movement."""

    product = models.ForeignKey("catalog.Product", related_name="lots", on_delete=models.PROTECT)
    movement = models.OneToOneField(Movement, related_name="lot", on_delete=models.CASCADE)
    initial_quantity = models.DecimalField(max_digits=14, decimal_places=2)
    remaining_quantity = models.DecimalField(max_digits=14, decimal_places=2)
    unit_cost = models.DecimalField(max_digits=14, decimal_places=4)
    load_date = models.DateField(db_index=True)
    registered_at = models.DateTimeField(default=timezone.now)
    document_ref = models.CharField(max_length=120, blank=True)
    counterparty_ref = models.CharField(max_length=120, blank=True)

    class Meta:
        # FIFO order: oldest business date first, registration breaks ties
        ordering = ["load_date", "registered_at", "id"]
        constraints = [
            models.CheckConstraint(name="lot_initial_positive", condition=models.Q(initial_quantity__gt=0)),
            models.CheckConstraint(name="lot_remaining_non_negative", condition=models.Q(remaining_quantity__gte=0)),
            models.CheckConstraint(
                name="lot_remaining_le_initial",
                condition=models.Q(remaining_quantity__lte=models.F("initial_quantity")),
            ),
            models.CheckConstraint(name="lot_unit_cost_positive", condition=models.Q(unit_cost__gt=0)),
        ]
        indexes = [
            models.Index(fields=["product", "load_date", "registered_at"], name="lot_product_fifo_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Lot<{self.product_id}> {self.remaining_quantity}/{self.initial_quantity} @ {self.unit_cost}"

    @property
    def consumed_quantity(self) -> Decimal:
        return self.initial_quantity - self.remaining_quantity

    @property
    def remaining_value(self) -> Decimal:
        return (self.remaining_quantity * self.unit_cost).quantize(Decimal("0.01"))


class LotConsumption(TimeStampedModel):
    """Quantity an unload movement drew from a lot, with the cost it was valued at."""

    movement = models.ForeignKey(Movement, related_name="consumptions", on_delete=models.CASCADE)
    lot = models.ForeignKey(Lot, related_name="consumptions", on_delete=models.PROTECT)
    quantity = models.DecimalField(max_digits=14, decimal_places=2)
    unit_cost = models.DecimalField(max_digits=14, decimal_places=4)

    class Meta:
        ordering = ["movement_id", "id"]
        constraints = [
            models.CheckConstraint(name="consumption_quantity_positive", condition=models.Q(quantity__gt=0)),
            models.UniqueConstraint(fields=["movement", "lot"], name="unique_consumption_per_movement_lot"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Consumption<{self.movement_id}> {self.quantity} from lot {self.lot_id}"


# EOF
