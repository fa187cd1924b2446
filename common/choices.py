"""Shared enumerations and choices used across apps."""

from django.db import models


class MovementKind(models.TextChoices):
    LOAD = "load", "Load"
    UNLOAD = "unload", "Unload"


class LedgerEventKind(models.TextChoices):
    """Kinds of change notifications published after a ledger commit."""

    MOVEMENT_RECORDED = "movement_recorded", "Movement recorded"
    MOVEMENT_UPDATED = "movement_updated", "Movement updated"
    MOVEMENT_DELETED = "movement_deleted", "Movement deleted"
