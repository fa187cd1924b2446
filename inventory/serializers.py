"""Serializers for the inventory domain.

Read serializers expose lots, movements and valuation snapshots. Write
serializers only shape and type-check input; the ledger rules live in
``inventory.services``.
"""

from catalog.models import Product
from rest_framework import serializers

from .models import Lot, Movement
from .services import edit_movement, record_load, record_unload


class LotSerializer(serializers.ModelSerializer):
    """Read-only representation of a lot in FIFO order."""

    remaining_value = serializers.DecimalField(max_digits=16, decimal_places=2, read_only=True)

    class Meta:
        model = Lot
        fields = [
            "id",
            "product",
            "movement",
            "initial_quantity",
            "remaining_quantity",
            "unit_cost",
            "remaining_value",
            "load_date",
            "registered_at",
            "document_ref",
            "counterparty_ref",
        ]
        read_only_fields = fields


class MovementSerializer(serializers.ModelSerializer):
    """Read-only representation of a movement.

    ``average_unit_cost`` is the FIFO cost per unit of an unload.
    """

    product_name = serializers.CharField(source="product.name", read_only=True)
    average_unit_cost = serializers.DecimalField(max_digits=14, decimal_places=4, read_only=True)

    class Meta:
        model = Movement
        fields = [
            "id",
            "product",
            "product_name",
            "kind",
            "quantity",
            "unit_price",
            "total_value",
            "average_unit_cost",
            "business_date",
            "registered_at",
            "document_ref",
            "counterparty_ref",
        ]
        read_only_fields = fields


class ProductStockSerializer(serializers.ModelSerializer):
    brand_name = serializers.CharField(source="brand.name", read_only=True, default=None)
    stock = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = Product
        fields = ["id", "name", "brand", "brand_name", "description", "stock"]
        read_only_fields = fields


class SnapshotLotSerializer(serializers.Serializer):
    """Lot as seen in a valuation snapshot (persisted or replayed)."""

    id = serializers.IntegerField()
    remaining_quantity = serializers.DecimalField(max_digits=14, decimal_places=2)
    unit_cost = serializers.DecimalField(max_digits=14, decimal_places=4)
    remaining_value = serializers.DecimalField(max_digits=16, decimal_places=2)
    load_date = serializers.DateField()
    document_ref = serializers.CharField()
    counterparty_ref = serializers.CharField()


class ProductValuationSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    product_name = serializers.CharField()
    quantity = serializers.DecimalField(max_digits=14, decimal_places=2)
    value = serializers.DecimalField(max_digits=16, decimal_places=2)
    lots = SnapshotLotSerializer(many=True)


class ValuationSerializer(serializers.Serializer):
    date = serializers.DateField(required=False)
    products = ProductValuationSerializer(many=True)
    total_quantity = serializers.DecimalField(max_digits=16, decimal_places=2)
    total_value = serializers.DecimalField(max_digits=18, decimal_places=2)


class RecordLoadSerializer(serializers.Serializer):
    """Write serializer for a load. Amounts stay strings; the ledger parses them."""

    product_id = serializers.IntegerField()
    quantity = serializers.CharField()
    unit_price = serializers.CharField()
    business_date = serializers.CharField()
    document_ref = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=120)
    counterparty_ref = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=120)
    confirm_duplicate = serializers.BooleanField(required=False, default=False)

    def create(self, validated_data):  # type: ignore[override]
        return record_load(**validated_data)


class RecordUnloadSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    quantity = serializers.CharField()
    business_date = serializers.CharField()
    document_ref = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=120)
    counterparty_ref = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=120)

    def create(self, validated_data):  # type: ignore[override]
        return record_unload(**validated_data)


class EditMovementSerializer(serializers.Serializer):
    """Partial update of a movement; only the provided fields change."""

    quantity = serializers.CharField(required=False)
    unit_price = serializers.CharField(required=False)
    business_date = serializers.CharField(required=False)
    document_ref = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=120)
    counterparty_ref = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=120)
    confirm_duplicate = serializers.BooleanField(required=False, default=False)

    def update(self, instance, validated_data):  # type: ignore[override]
        confirm = validated_data.pop("confirm_duplicate", False)
        return edit_movement(movement_id=instance.id, confirm_duplicate=confirm, **validated_data)


# EOF
