"""Post-commit change notifications for the inventory ledger.

Listeners (a websocket bridge, cache invalidation, ...) connect to
``ledger_changed``. Delivery is best-effort: events are sent only after the
surrounding transaction commits and a failing receiver never affects the
ledger.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger("lotledger.inventory")

# Receivers get ``event`` (a LedgerEvent) as keyword argument
ledger_changed = Signal()


@dataclass(frozen=True)
class LedgerEvent:
    kind: str
    product_id: int
    movement_id: Optional[int] = None


def _dispatch(event: LedgerEvent) -> None:
    logger.info(
        event.kind,
        extra={"event": event.kind, "product_id": event.product_id, "movement_id": event.movement_id},
    )
    for receiver, result in ledger_changed.send_robust(sender=LedgerEvent, event=event):
        if isinstance(result, Exception):
            logger.error(
                "inventory.notification_failed",
                exc_info=(type(result), result, result.__traceback__),
                extra={"event": "inventory.notification_failed", "receiver": repr(receiver), **asdict(event)},
            )


def publish(event: LedgerEvent) -> None:
    """Queue ``event`` for delivery once the current transaction commits."""

    transaction.on_commit(lambda: _dispatch(event), robust=True)


# EOF
