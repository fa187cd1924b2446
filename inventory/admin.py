"""Admin registrations for inventory app.

Lots and movements are read-only here: every change must go through the
ledger services so lots and movements stay consistent.
"""

from django.contrib import admin

from .models import Lot, LotConsumption, Movement


class ReadOnlyAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class LotConsumptionInline(admin.TabularInline):
    model = LotConsumption
    extra = 0
    can_delete = False
    readonly_fields = ("lot", "quantity", "unit_cost")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Movement)
class MovementAdmin(ReadOnlyAdmin):
    list_display = ("id", "product", "kind", "quantity", "unit_price", "total_value", "business_date", "registered_at")
    list_filter = ("kind", "business_date")
    search_fields = ("product__name", "document_ref", "counterparty_ref")
    inlines = [LotConsumptionInline]


@admin.register(Lot)
class LotAdmin(ReadOnlyAdmin):
    list_display = (
        "id",
        "product",
        "initial_quantity",
        "remaining_quantity",
        "unit_cost",
        "load_date",
        "registered_at",
    )
    list_filter = ("load_date",)
    search_fields = ("product__name", "document_ref")


# EOF
