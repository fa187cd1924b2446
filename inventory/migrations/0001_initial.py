import django.db.models.deletion
import django.utils.timezone
from decimal import Decimal

from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Movement",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("kind", models.CharField(choices=[("load", "Load"), ("unload", "Unload")], max_length=16)),
                ("quantity", models.DecimalField(decimal_places=2, max_digits=14)),
                ("unit_price", models.DecimalField(blank=True, decimal_places=4, max_digits=14, null=True)),
                ("total_value", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=16)),
                ("business_date", models.DateField(db_index=True)),
                ("registered_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("document_ref", models.CharField(blank=True, max_length=120)),
                ("counterparty_ref", models.CharField(blank=True, max_length=120)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="movements", to="catalog.product"
                    ),
                ),
            ],
            options={
                "ordering": ["-registered_at", "-id"],
                "indexes": [
                    models.Index(fields=["product", "kind", "business_date"], name="movement_product_kind_date_idx")
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("quantity__gt", 0)), name="movement_quantity_positive"),
                    models.CheckConstraint(
                        condition=models.Q(("kind", "unload"), ("unit_price__gt", 0), _connector="OR"),
                        name="movement_load_has_price",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Lot",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("initial_quantity", models.DecimalField(decimal_places=2, max_digits=14)),
                ("remaining_quantity", models.DecimalField(decimal_places=2, max_digits=14)),
                ("unit_cost", models.DecimalField(decimal_places=4, max_digits=14)),
                ("load_date", models.DateField(db_index=True)),
                ("registered_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("document_ref", models.CharField(blank=True, max_length=120)),
                ("counterparty_ref", models.CharField(blank=True, max_length=120)),
                (
                    "movement",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE, related_name="lot", to="inventory.movement"
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="lots", to="catalog.product"
                    ),
                ),
            ],
            options={
                "ordering": ["load_date", "registered_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["product", "load_date", "registered_at"], name="lot_product_fifo_idx"
                    )
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("initial_quantity__gt", 0)), name="lot_initial_positive"
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("remaining_quantity__gte", 0)), name="lot_remaining_non_negative"
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("remaining_quantity__lte", models.F("initial_quantity"))),
                        name="lot_remaining_le_initial",
                    ),
                    models.CheckConstraint(condition=models.Q(("unit_cost__gt", 0)), name="lot_unit_cost_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="LotConsumption",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("quantity", models.DecimalField(decimal_places=2, max_digits=14)),
                ("unit_cost", models.DecimalField(decimal_places=4, max_digits=14)),
                (
                    "lot",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="consumptions", to="inventory.lot"
                    ),
                ),
                (
                    "movement",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="consumptions",
                        to="inventory.movement",
                    ),
                ),
            ],
            options={
                "ordering": ["movement_id", "id"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("quantity__gt", 0)), name="consumption_quantity_positive"
                    ),
                    models.UniqueConstraint(fields=("movement", "lot"), name="unique_consumption_per_movement_lot"),
                ],
            },
        ),
    ]
