"""Django app configuration for the inventory ledger."""

from django.apps import AppConfig


class InventoryConfig(AppConfig):
    """AppConfig for the FIFO lot ledger (lots, movements, valuation)."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "inventory"
