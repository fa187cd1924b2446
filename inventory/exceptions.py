"""Typed errors raised by the inventory ledger.

Views translate these into HTTP responses; services never catch them.
"""

from decimal import Decimal


class LedgerError(Exception):
    """Base class for ledger failures. ``code`` is a stable machine-readable tag."""

    code = "ledger_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or self.code

    def as_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationError(LedgerError):
    """Malformed or missing input."""

    code = "invalid"


class DuplicateError(LedgerError):
    """An identical load has already been recorded."""

    code = "duplicate"

    def __init__(self, message: str = "", *, existing_id=None):
        super().__init__(message)
        self.existing_id = existing_id

    def as_dict(self) -> dict:
        return {**super().as_dict(), "existing_id": self.existing_id}


class InsufficientStockError(LedgerError):
    """Eligible lots cannot cover the requested quantity."""

    code = "insufficient_stock"

    def __init__(self, message: str = "", *, shortfall: Decimal, available: Decimal):
        super().__init__(message or f"Insufficient stock: missing {shortfall} (available {available}).")
        self.shortfall = shortfall
        self.available = available

    def as_dict(self) -> dict:
        return {**super().as_dict(), "shortfall": str(self.shortfall), "available": str(self.available)}


class ConflictError(LedgerError):
    """The operation would break lot consumption invariants."""

    code = "conflict"


class NotFoundError(LedgerError):
    """Referenced movement, lot or product does not exist."""

    code = "not_found"


# EOF
