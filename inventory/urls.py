from django.urls import path

from .views import (
    InventoryHealthView,
    MovementDetailView,
    MovementHistoryView,
    MovementListView,
    OpenLotListView,
    ProductStockListView,
    RecordLoadView,
    RecordUnloadView,
    ValuationAsOfView,
    ValuationView,
)

urlpatterns = [
    path("health/", InventoryHealthView.as_view(), name="inventory-health"),
    # Movement log and ledger mutations
    path("movements/", MovementListView.as_view(), name="movement-list"),
    path("movements/history/", MovementHistoryView.as_view(), name="movement-history"),
    path("movements/loads/", RecordLoadView.as_view(), name="movement-load"),
    path("movements/unloads/", RecordUnloadView.as_view(), name="movement-unload"),
    path("movements/<int:movement_id>/", MovementDetailView.as_view(), name="movement-detail"),
    # Read-only stock views
    path("lots/<int:product_id>/", OpenLotListView.as_view(), name="open-lot-list"),
    path("products/", ProductStockListView.as_view(), name="product-stock-list"),
    path("valuation/", ValuationView.as_view(), name="valuation"),
    path("valuation/<str:as_of>/", ValuationAsOfView.as_view(), name="valuation-as-of"),
]

# EOF
