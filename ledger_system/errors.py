# ledger_system/errors.py
"""
Ledger error taxonomy.

Services raise these inside a transaction and translate them into
{"success": False, "message": ...} results at their public boundary.
"""


class LedgerError(Exception):
    """Base class for all ledger errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(LedgerError):
    """Referenced user, admin, receipt or record does not exist."""
    pass


class ConflictError(LedgerError):
    """Operation is not allowed in the current state (terminal status, no-op, duplicate)."""
    pass


class ValidationError(LedgerError):
    """Caller supplied invalid input."""
    pass


class TransientError(LedgerError):
    """Contention or temporary unavailability - safe to retry."""
    pass


class StorageError(LedgerError):
    """
    Receipt image storage failure.

    kind is one of: permission_denied, transient, invalid
    """

    PERMISSION_DENIED = "permission_denied"
    TRANSIENT = "transient"
    INVALID = "invalid"

    def __init__(self, kind: str, message: str):
        super().__init__(message)
        self.kind = kind
