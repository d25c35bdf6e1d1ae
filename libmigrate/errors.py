"""Exception hierarchy for migration runs."""

from typing import Optional


class MigrationError(Exception):
    """Base class for all migration errors."""


class InvalidSourceError(MigrationError):
    """The legacy source file could not be opened or is not a SQLite database."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid source database {path}: {reason}")


class EmptySourceError(MigrationError):
    """The source has no tables, or a required table has no rows."""


class StoreError(MigrationError):
    """Raised when the target store rejects or fails an operation."""

    def __init__(self, message: str, table: Optional[str] = None, status_code: Optional[int] = None):
        self.table = table
        self.status_code = status_code
        super().__init__(message)


class StepError(MigrationError):
    """A structural failure that aborts one orchestrator step."""

    def __init__(self, step: str, message: str):
        self.step = step
        super().__init__(f"Step '{step}' failed: {message}")
