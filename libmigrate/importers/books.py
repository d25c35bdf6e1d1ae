"""Book importer: one book plus one physical copy per legacy row."""

import logging
from typing import Any, Dict, Optional

from .base import BaseImporter
from ..models.record import Outcome, SourceRecord
from ..services.transformer import (
    generate_book_code,
    generate_tracking_code,
    is_available,
    numeric_id,
    parse_int,
)

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Book"
DEFAULT_AUTHOR = "Unknown Author"
MAX_CODE_ATTEMPTS = 5


class BookImporter(BaseImporter):
    """
    Imports books, deduplicated by (title, author).

    Each new book gets a single copy whose status comes from the legacy
    availability flag. The book mapping is registered once the book row
    exists in the store.
    """

    entity = "books"

    def import_record(self, record: SourceRecord) -> Outcome:
        legacy_id = self.legacy_id(record)
        title = str(self.value(record, "title", DEFAULT_TITLE))
        author = str(self.value(record, "author", DEFAULT_AUTHOR))

        existing = self.store.find_one("books", title=title, author=author)
        if existing is not None:
            self.resolver.register(self.entity, legacy_id, existing["id"])
            return self.existing(existing["id"], title=title)

        copy_status = self._copy_status(record)
        legacy_number = numeric_id(legacy_id)
        isbn = self.value(record, "isbn")
        description = self.value(record, "description")
        legacy_code = self.value(record, "book_code", legacy_id)

        book = self.store.insert("books", {
            "title": title,
            "author": author,
            "isbn": str(isbn) if isbn is not None else None,
            "publisher": self.value(record, "publisher"),
            "publication_year": parse_int(self.value(record, "publication_year")),
            "category_id": self._resolve_category(record),
            "description": str(description) if description is not None else None,
            "book_code": generate_book_code(str(legacy_code)),
            "total_copies": 1,
            "available_copies": 1 if copy_status == "available" else 0,
            "status": "available",
            "legacy_book_id": legacy_number,
            "notes": self.annotation(legacy_id),
        })
        self.resolver.register(self.entity, legacy_id, book["id"])

        copy = self._create_copy(book, legacy_id, legacy_number, copy_status)
        logger.debug(f"Created book {title} ({book['id']}) with copy {copy['tracking_code']}")
        return self.created(book["id"], title=title, copy_id=copy["id"])

    def _copy_status(self, record: SourceRecord) -> str:
        if not self.mapping.has_field("available"):
            return "available"
        return "available" if is_available(self.value(record, "available")) else "borrowed"

    def _resolve_category(self, record: SourceRecord) -> Optional[str]:
        reference = self.value(record, "category")
        if reference is None:
            return None
        category_id = self.resolver.resolve_reference("categories", reference, ("name", "id"))
        if category_id is None:
            logger.debug(f"Category {reference!r} not found for book row {record.row_number}")
        return category_id

    def _next_copy_number(self, book_id: str) -> int:
        copies = self.store.find("book_copies", {"book_id": book_id})
        numbers = [c.get("copy_number") or 0 for c in copies]
        return max(numbers, default=0) + 1

    def _unique_tracking_code(self, legacy_id: str) -> str:
        code = generate_tracking_code(legacy_id, self.config.generate_new_tracking_codes)
        for _ in range(MAX_CODE_ATTEMPTS):
            if self.store.find_one("book_copies", tracking_code=code) is None:
                return code
            logger.debug(f"Tracking code {code} already used, regenerating")
            code = generate_tracking_code(legacy_id, True)
        return code

    def _create_copy(
        self,
        book: Dict[str, Any],
        legacy_id: str,
        legacy_number: Optional[int],
        status: str
    ) -> Dict[str, Any]:
        notes = None
        if self.config.store_legacy_ids_as_metadata:
            notes = f"Imported from legacy system - Book ID: {legacy_id}"

        return self.store.insert("book_copies", {
            "book_id": book["id"],
            "book_code": book["book_code"],
            "copy_number": self._next_copy_number(book["id"]),
            "tracking_code": self._unique_tracking_code(legacy_id),
            "condition": "good",
            "status": status,
            "legacy_book_id": legacy_number,
            "notes": notes,
        })
