from typing import Optional


class LedgerError(Exception):
    """Base class for failures surfaced by the ledger engine."""


class StoreUnavailable(LedgerError):
    """The entry store could not complete a call (backend or network failure)."""


class Unauthenticated(LedgerError):
    """A mutation was attempted without a valid session."""


class Forbidden(LedgerError):
    """The current user may not modify the targeted entry."""


class ValidationFailed(LedgerError, ValueError):
    """Input rejected before it reached the store."""


class NotFound(LedgerError, ValueError):
    pass


class EmptyExport(LedgerError):
    """A CSV export was requested over zero entries."""

    def __init__(self, message: str = "No hay movimientos para exportar") -> None:
        super().__init__(message)


class QueryFailed(LedgerError):
    def __init__(self, cause: BaseException, message: Optional[str] = None) -> None:
        super().__init__(message or f"Query failed: {cause}")
        self.cause = cause
