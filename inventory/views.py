"""DRF views for the inventory ledger.

Views stay thin: they parse input, call a service or selector and map ledger
errors to HTTP statuses.
"""

from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema, inline_serializer
from rest_framework import generics, status
from rest_framework import serializers as rf_serializers
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import (
    ConflictError,
    DuplicateError,
    InsufficientStockError,
    LedgerError,
    NotFoundError,
    ValidationError,
)
from .filters import MovementFilter
from .models import Movement
from .selectors import current_valuation, list_movements, list_open_lots, product_stock_summary, valuation_as_of
from .serializers import (
    EditMovementSerializer,
    LotSerializer,
    MovementSerializer,
    ProductStockSerializer,
    RecordLoadSerializer,
    RecordUnloadSerializer,
    ValuationSerializer,
)
from .services import delete_movement

ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    DuplicateError: status.HTTP_409_CONFLICT,
    ConflictError: status.HTTP_409_CONFLICT,
    InsufficientStockError: status.HTTP_422_UNPROCESSABLE_ENTITY,
}

LedgerErrorResponse = inline_serializer(
    name="LedgerErrorResponse",
    fields={"detail": rf_serializers.CharField(), "code": rf_serializers.CharField()},
)


def ledger_error_response(exc: LedgerError) -> Response:
    return Response(exc.as_dict(), status=ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST))


class InventoryHealthView(APIView):
    throttle_classes = []

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="Inventory health",
        description="Simple healthcheck endpoint for the inventory app",
        examples=[OpenApiExample("Health OK", value={"status": "ok", "app": "inventory"})],
    )
    def get(self, request):
        return Response({"status": "ok", "app": "inventory"})


class MovementListView(generics.ListAPIView):
    throttle_classes = []
    serializer_class = MovementSerializer
    filterset_class = MovementFilter
    ordering_fields = ["registered_at", "business_date", "quantity", "total_value"]
    search_fields = ["document_ref", "counterparty_ref", "product__name"]

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="List movements",
        description="Movement log, newest first. Filters: product, kind, date_from, date_to, document_ref.",
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        return list_movements()


class MovementHistoryView(generics.ListAPIView):
    throttle_classes = []
    serializer_class = MovementSerializer
    filter_backends = []

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="Movements up to a date",
        description="Movements dated on or before ``until`` (YYYY-MM-DD), newest business date first.",
        parameters=[OpenApiParameter(name="until", required=True, type=str)],
    )
    def get(self, request, *args, **kwargs):
        try:
            return super().get(request, *args, **kwargs)
        except LedgerError as exc:
            return ledger_error_response(exc)

    def get_queryset(self):
        until = self.request.query_params.get("until")
        if not until:
            raise ValidationError("until is required (YYYY-MM-DD).")
        product_id = self.request.query_params.get("product")
        if product_id and not product_id.isdigit():
            raise ValidationError("product must be an integer.")
        return list_movements(product_id=int(product_id) if product_id else None, until=until)


class RecordLoadView(APIView):
    throttle_scope = "inventory_write"

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="Record a load",
        description="Registers received stock and opens a new FIFO lot at the given unit price.",
        request=RecordLoadSerializer,
        responses={
            201: inline_serializer(
                name="LoadRecordedResponse",
                fields={"movement_id": rf_serializers.IntegerField(), "lot_id": rf_serializers.IntegerField()},
            ),
            400: LedgerErrorResponse,
            404: LedgerErrorResponse,
            409: LedgerErrorResponse,
        },
        examples=[OpenApiExample("Recorded", value={"movement_id": 12, "lot_id": 7})],
    )
    def post(self, request):
        serializer = RecordLoadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = serializer.save()
        except LedgerError as exc:
            return ledger_error_response(exc)
        return Response({"movement_id": result.movement_id, "lot_id": result.lot_id}, status=status.HTTP_201_CREATED)


class RecordUnloadView(APIView):
    throttle_scope = "inventory_write"

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="Record an unload",
        description="Ships stock out, consuming the oldest lots loaded on or before the business date.",
        request=RecordUnloadSerializer,
        responses={
            201: inline_serializer(
                name="UnloadRecordedResponse",
                fields={
                    "movement_id": rf_serializers.IntegerField(),
                    "total_cost": rf_serializers.DecimalField(max_digits=16, decimal_places=2),
                },
            ),
            400: LedgerErrorResponse,
            404: LedgerErrorResponse,
            422: LedgerErrorResponse,
        },
        examples=[
            OpenApiExample("Recorded", value={"movement_id": 13, "total_cost": "35.00"}),
            OpenApiExample(
                "Insufficient stock",
                value={"detail": "Insufficient stock", "code": "insufficient_stock", "shortfall": "5.00"},
            ),
        ],
    )
    def post(self, request):
        serializer = RecordUnloadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = serializer.save()
        except LedgerError as exc:
            return ledger_error_response(exc)
        return Response(
            {"movement_id": result.movement_id, "total_cost": str(result.total_cost)},
            status=status.HTTP_201_CREATED,
        )


class MovementDetailView(APIView):
    throttle_scope = "inventory_write"

    def get_throttles(self):
        # Reads are not rate limited; only edits and deletes use the write scope
        if self.request.method in ("GET", "HEAD", "OPTIONS"):
            return []
        return super().get_throttles()

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="Get movement",
        responses={200: MovementSerializer, 404: LedgerErrorResponse},
    )
    def get(self, request, movement_id: int):
        movement = Movement.objects.select_related("product").filter(id=movement_id).first()
        if movement is None:
            return ledger_error_response(NotFoundError(f"Movement {movement_id} not found."))
        return Response(MovementSerializer(movement).data)

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="Edit movement",
        description="Reverses the movement's lot effects and reapplies them with the new values, atomically.",
        request=EditMovementSerializer,
        responses={
            200: inline_serializer(
                name="MovementEditedResponse",
                fields={
                    "movement_id": rf_serializers.IntegerField(),
                    "total_cost": rf_serializers.DecimalField(max_digits=16, decimal_places=2, allow_null=True),
                },
            ),
            400: LedgerErrorResponse,
            404: LedgerErrorResponse,
            409: LedgerErrorResponse,
            422: LedgerErrorResponse,
        },
    )
    def patch(self, request, movement_id: int):
        movement = Movement.objects.filter(id=movement_id).first()
        if movement is None:
            return ledger_error_response(NotFoundError(f"Movement {movement_id} not found."))
        serializer = EditMovementSerializer(instance=movement, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        try:
            result = serializer.save()
        except LedgerError as exc:
            return ledger_error_response(exc)
        total = str(result.total_cost) if result.total_cost is not None else None
        return Response({"movement_id": result.movement_id, "total_cost": total}, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="Delete movement",
        description="Deletes an untouched load with its lot, or reverses an unload back into its lots.",
        responses={204: None, 404: LedgerErrorResponse, 409: LedgerErrorResponse},
    )
    def delete(self, request, movement_id: int):
        try:
            delete_movement(movement_id=movement_id)
        except LedgerError as exc:
            return ledger_error_response(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)


class OpenLotListView(generics.ListAPIView):
    throttle_classes = []
    serializer_class = LotSerializer
    pagination_class = None
    filter_backends = []

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="List open lots",
        description="Lots of a product with stock left, in FIFO order (oldest first).",
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        return list_open_lots(self.kwargs["product_id"])


class ProductStockListView(generics.ListAPIView):
    throttle_classes = []
    serializer_class = ProductStockSerializer
    filter_backends = []

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="Products with stock",
        description="Every product with its on-hand quantity across open lots.",
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        return product_stock_summary()


class ValuationView(APIView):
    throttle_classes = []

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="Current stock valuation",
        description="On-hand quantity and FIFO value per product. Optional filter: product_id.",
        parameters=[OpenApiParameter(name="product_id", required=False, type=int)],
        responses={200: ValuationSerializer},
    )
    def get(self, request):
        product_id = request.query_params.get("product_id")
        if product_id and not product_id.isdigit():
            return ledger_error_response(ValidationError("product_id must be an integer."))
        data = current_valuation(product_id=int(product_id) if product_id else None)
        return Response(ValuationSerializer(data).data)


class ValuationAsOfView(APIView):
    throttle_classes = []

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="Historical stock valuation",
        description="Stock and FIFO value per product at the end of the given business date (YYYY-MM-DD).",
        responses={200: ValuationSerializer, 400: LedgerErrorResponse},
    )
    def get(self, request, as_of: str):
        try:
            data = valuation_as_of(as_of)
        except LedgerError as exc:
            return ledger_error_response(exc)
        return Response(ValuationSerializer(data).data)


# EOF
