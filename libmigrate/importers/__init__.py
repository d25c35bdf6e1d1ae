"""Entity importers."""

from .base import BaseImporter
from .categories import CategoryImporter
from .books import BookImporter
from .students import StudentImporter
from .borrowings import BorrowingImporter
from .fines import (
    DAILY_FINE_RATE,
    LOST_BOOK_FINE,
    FineGenerator,
    ReconcileResult,
    derive_fine,
    reconcile_book_status,
)

__all__ = [
    "BaseImporter",
    "CategoryImporter",
    "BookImporter",
    "StudentImporter",
    "BorrowingImporter",
    "DAILY_FINE_RATE",
    "LOST_BOOK_FINE",
    "FineGenerator",
    "ReconcileResult",
    "derive_fine",
    "reconcile_book_status",
]
