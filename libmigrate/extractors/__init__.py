"""Source extractors for legacy databases."""

from .base import BaseExtractor
from .sqlite_extractor import SQLiteExtractor, SQLITE_MAGIC, check_header

__all__ = [
    "BaseExtractor",
    "SQLiteExtractor",
    "SQLITE_MAGIC",
    "check_header",
]
