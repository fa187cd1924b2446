from django.core.management.base import BaseCommand, CommandError
from inventory.exceptions import LedgerError
from inventory.selectors import current_valuation, valuation_as_of


class Command(BaseCommand):
    help = "Print on-hand quantity and FIFO value per product, now or at the end of a business date."

    def add_arguments(self, parser):
        parser.add_argument("--date", dest="as_of", help="Business date (YYYY-MM-DD); defaults to current stock.")
        parser.add_argument("--product", dest="product_id", type=int, help="Limit to one product id.")

    def handle(self, *args, **options):
        try:
            if options.get("as_of"):
                data = valuation_as_of(options["as_of"], product_id=options.get("product_id"))
                heading = f"Stock valuation as of {data['date'].isoformat()}"
            else:
                data = current_valuation(product_id=options.get("product_id"))
                heading = "Current stock valuation"
        except LedgerError as exc:
            raise CommandError(exc.message)

        self.stdout.write(heading)
        for row in data["products"]:
            self.stdout.write(
                f"  [{row['product_id']}] {row['product_name']}: qty={row['quantity']} value={row['value']}"
                f" lots={len(row['lots'])}"
            )
        self.stdout.write(
            self.style.SUCCESS(f"Total quantity: {data['total_quantity']}  Total value: {data['total_value']}")
        )
