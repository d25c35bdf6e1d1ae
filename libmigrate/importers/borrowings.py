"""Borrowing importer for active and historical loan tables."""

import json
import logging
from typing import Any, Dict, List, Optional

from .base import BaseImporter
from ..loaders.base import BaseStore
from ..models.migration import MigrationConfig
from ..models.record import FailureReason, Outcome, SourceRecord
from ..models.schema import TableMapping
from ..services.resolver import EntityResolver
from ..services.transformer import (
    parse_amount,
    parse_bool,
    resolve_loan_dates,
    to_iso,
)

logger = logging.getLogger(__name__)


class BorrowingImporter(BaseImporter):
    """
    Imports borrowings from one source table.

    Student and book references go through the resolver; a reference
    that does not resolve is a skip with a named reason. Active loans
    flip their copy to borrowed. Historical rows carrying a legacy fine
    also get a paid late-return fine.
    """

    entity = "borrowings"

    def __init__(
        self,
        store: BaseStore,
        resolver: EntityResolver,
        config: MigrationConfig,
        mapping: TableMapping,
        historical: bool = False
    ):
        """
        Initialize the importer.

        Args:
            store: Target store
            resolver: Shared legacy id resolver
            config: Migration configuration
            mapping: Probe result for the source table
            historical: True for a returned-loans table
        """
        super().__init__(store, resolver, config, mapping)
        self.historical = historical
        self.fines_created = 0

    @property
    def status(self) -> str:
        return "returned" if self.historical else "active"

    def import_record(self, record: SourceRecord) -> Outcome:
        student_ref = self.value(record, "student_ref")
        book_ref = self.value(record, "book_ref")

        student_id = self.resolver.resolve("students", student_ref)
        if student_id is None:
            return Outcome.skipped(
                FailureReason.STUDENT_NOT_FOUND.value,
                f"no student for legacy id {student_ref}",
                legacy_id=student_ref,
            )

        book_id = self.resolver.resolve("books", book_ref)
        if book_id is None:
            return Outcome.skipped(
                FailureReason.BOOK_NOT_FOUND.value,
                f"no book for legacy id {book_ref}",
                legacy_id=book_ref,
            )

        copy = self._pick_copy(book_id)
        if copy is None:
            return Outcome.skipped(FailureReason.COPY_NOT_FOUND.value, f"book {book_id} has no copies")

        existing = self.store.find_one(
            "borrowings",
            student_id=student_id,
            book_id=book_id,
            book_copy_id=copy["id"],
            status=self.status,
        )
        if existing is not None:
            return self.existing(existing["id"], status=self.status)

        borrowed_date, due_date, returned_date = resolve_loan_dates(
            self.value(record, "borrowed_date"),
            self.value(record, "due_date"),
            self.value(record, "returned_date"),
            historical=self.historical,
        )
        is_lost = parse_bool(self.value(record, "is_lost"))
        fine_amount = parse_amount(self.value(record, "fine"))
        condition = self.value(record, "condition")
        issue_id = self.value(record, "legacy_id") or f"{book_ref}_{student_ref}"

        borrowing = self.store.insert("borrowings", {
            "student_id": student_id,
            "book_id": book_id,
            "book_copy_id": copy["id"],
            "tracking_code": copy.get("tracking_code"),
            "borrowed_date": to_iso(borrowed_date),
            "due_date": to_iso(due_date),
            "returned_date": to_iso(returned_date) if self.historical else None,
            "status": self.status,
            "is_lost": is_lost,
            "condition_at_return": str(condition) if condition is not None else None,
            "fine_amount": fine_amount,
            "notes": f"Imported from legacy system - Issue ID: {issue_id}",
            "legacy_data": json.dumps(record.data, default=str),
        })

        if is_lost:
            self.store.update_by_id("book_copies", copy["id"], {"status": "lost"})
        elif not self.historical:
            self.store.update_by_id("book_copies", copy["id"], {"status": "borrowed"})

        if self.historical and fine_amount > 0:
            self._create_legacy_fine(borrowing, fine_amount)

        return self.created(borrowing["id"], status=self.status)

    def _pick_copy(self, book_id: str) -> Optional[Dict[str, Any]]:
        """An available copy of the book, else any copy."""
        copies: List[Dict[str, Any]] = self.store.find("book_copies", {"book_id": book_id})
        if not copies:
            return None
        for copy in copies:
            if copy.get("status") == "available":
                return copy
        return copies[0]

    def _create_legacy_fine(self, borrowing: Dict[str, Any], amount: float) -> None:
        self.store.insert("fines", {
            "borrowing_id": borrowing["id"],
            "student_id": borrowing["student_id"],
            "amount": amount,
            "status": "paid",
            "fine_type": "late_return",
            "description": "Imported from legacy system - Fine for late return",
            "created_at": borrowing["returned_date"],
        })
        self.fines_created += 1
