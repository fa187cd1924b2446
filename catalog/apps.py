"""Django app configuration for catalog reference data."""

from django.apps import AppConfig


class CatalogConfig(AppConfig):
    """Brands and products that lots and movements point at."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "catalog"
    verbose_name = "Catalog"
