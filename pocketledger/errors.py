"""Typed failures surfaced by the ledger core."""


class LedgerError(Exception):
    """Base class for every error raised by the ledger core."""


class PersistenceError(LedgerError):
    """The store rejected a write or failed on I/O."""


class NotFoundError(LedgerError):
    """A transaction or method referenced by the caller does not exist."""


class CorruptDataError(LedgerError):
    """A stored value could not be interpreted."""


class ValidationError(LedgerError):
    """User input did not pass verification.

    ``suggestion`` holds the auto-corrected text the UI should re-display.
    """

    def __init__(self, field: str, message: str, suggestion: str = "") -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message
        self.suggestion = suggestion
