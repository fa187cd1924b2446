from collections import defaultdict

from django.core.management.base import BaseCommand, CommandError
from django.db.models import Sum
from inventory.allocator import ZERO, round2
from inventory.models import Lot, LotConsumption, Movement
from inventory.services import consumption_cost


class Command(BaseCommand):
    help = "Check lot quantities and unload valuations for consistency; exits non-zero when problems are found."

    def handle(self, *args, **options):
        problems = []

        for lot in Lot.objects.filter(remaining_quantity__lt=0):
            problems.append(f"Lot {lot.id}: remaining {lot.remaining_quantity} is negative")
        for lot in Lot.objects.all():
            if lot.remaining_quantity > lot.initial_quantity:
                problems.append(
                    f"Lot {lot.id}: remaining {lot.remaining_quantity} exceeds initial {lot.initial_quantity}"
                )

        initial = defaultdict(lambda: ZERO)
        remaining = defaultdict(lambda: ZERO)
        for row in Lot.objects.order_by().values("product_id").annotate(
            initial=Sum("initial_quantity"), remaining=Sum("remaining_quantity")
        ):
            initial[row["product_id"]] = round2(row["initial"])
            remaining[row["product_id"]] = round2(row["remaining"])

        consumed = defaultdict(lambda: ZERO)
        for row in LotConsumption.objects.order_by().values("lot__product_id").annotate(total=Sum("quantity")):
            consumed[row["lot__product_id"]] = round2(row["total"])

        # Unloads without a consumption plan still took their quantity from the lots
        untracked = defaultdict(lambda: ZERO)
        unloads = Movement.objects.filter(kind=Movement.KIND_UNLOAD).prefetch_related("consumptions")
        for unload in unloads:
            rows = list(unload.consumptions.all())
            if not rows:
                untracked[unload.product_id] = round2(untracked[unload.product_id] + unload.quantity)
                continue
            drawn = sum((c.quantity for c in rows), ZERO)
            if drawn != unload.quantity:
                problems.append(f"Unload {unload.id}: consumptions cover {drawn} of {unload.quantity}")
            cost = consumption_cost(rows)
            if cost != unload.total_value:
                problems.append(f"Unload {unload.id}: total {unload.total_value} but consumptions cost {cost}")

        for product_id in sorted(initial):
            expected = round2(initial[product_id] - consumed[product_id] - untracked[product_id])
            if expected != remaining[product_id]:
                problems.append(
                    f"Product {product_id}: lots hold {remaining[product_id]} but movements leave {expected}"
                )

        if problems:
            for line in problems:
                self.stderr.write(self.style.ERROR(line))
            raise CommandError(f"Lot audit found {len(problems)} problem(s).")
        self.stdout.write(self.style.SUCCESS(f"Lot audit passed for {len(initial)} product(s)."))
