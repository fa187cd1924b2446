"""Query filters for inventory list endpoints."""

from django_filters import rest_framework as filters

from .models import Movement


class MovementFilter(filters.FilterSet):
    product = filters.NumberFilter(field_name="product_id")
    kind = filters.ChoiceFilter(choices=Movement.KIND_CHOICES)
    date_from = filters.DateFilter(field_name="business_date", lookup_expr="gte")
    date_to = filters.DateFilter(field_name="business_date", lookup_expr="lte")
    document_ref = filters.CharFilter(lookup_expr="iexact")

    class Meta:
        model = Movement
        fields = ["product", "kind", "date_from", "date_to", "document_ref"]


# EOF
