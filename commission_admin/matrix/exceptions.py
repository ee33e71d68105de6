# ==============================================================================
# commission_admin/matrix/exceptions.py
# ------------------------------------------------------------------------------
# Errors raised by the commission matrix editor and its store.
# ==============================================================================


class MatrixError(Exception):
    """Base class for every error raised by the matrix editor."""


class MatrixValidationError(MatrixError, ValueError):
    """A term, year, role or rate is outside its allowed range."""


class MatrixFullError(MatrixError):
    """Every commission year of a premium term is already in use."""


class UnknownTermError(MatrixError):
    """The premium term has neither persisted records nor local cells."""


class BulkEntryError(MatrixError):
    """A bulk-entry draft operation was rejected."""


class EditSessionError(MatrixError):
    """The operation is not allowed in the session's current mode."""


class SaveInProgressError(EditSessionError):
    """Another save, delete or bulk commit is still running."""


class StoreError(MatrixError):
    """
    A commission store operation failed.

    `status` follows HTTP semantics so callers can tell validation (400),
    missing records (404), conflicts (409) and transport/database
    failures (503) apart. When the failure ends a save, `summary` carries the
    SaveSummary of the requests that were already sent.
    """

    def __init__(self, message, status=503):
        super().__init__(message)
        self.message = message
        self.status = status
        self.summary = None

    def __str__(self):
        return f"{self.status}: {self.message}"
