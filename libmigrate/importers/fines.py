"""Post-import passes: fine derivation and book status reconciliation."""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from ..loaders.base import BaseStore
from ..models.record import BatchResult
from ..services.batch_importer import ProgressCallback
from ..services.transformer import days_between, parse_amount, parse_bool, parse_date

logger = logging.getLogger(__name__)

DAILY_FINE_RATE = 50
LOST_BOOK_FINE = 1500
FINE_BATCH_SIZE = 50


def derive_fine(borrowing: Dict[str, Any], today: Optional[date] = None) -> Optional[Dict[str, Any]]:
    """
    Compute the fine a borrowing owes, if any.

    Lost books are charged the borrowing's own fine amount or the fixed
    lost-book fine. Late returns and current overdues are charged per day.

    Args:
        borrowing: Stored borrowing record
        today: Reference date for current overdues

    Returns:
        Fine record ready to insert, or None
    """
    today = today or date.today()
    due_date = parse_date(borrowing.get("due_date"))
    returned_date = parse_date(borrowing.get("returned_date"))

    if parse_bool(borrowing.get("is_lost")):
        fine_type = "lost_book"
        own_amount = parse_amount(borrowing.get("fine_amount"))
        amount = own_amount if own_amount > 0 else LOST_BOOK_FINE
        description = f"Lost book fine for borrowing ID {borrowing['id']}"
    elif returned_date and due_date and returned_date > due_date:
        fine_type = "late_return"
        amount = days_between(returned_date, due_date) * DAILY_FINE_RATE
        description = f"Late return fine for borrowing ID {borrowing['id']}"
    elif returned_date is None and due_date and due_date < today:
        fine_type = "overdue"
        amount = days_between(today, due_date) * DAILY_FINE_RATE
        description = f"Overdue fine for borrowing ID {borrowing['id']}"
    else:
        return None

    now = datetime.utcnow().isoformat()
    return {
        "student_id": borrowing.get("student_id"),
        "borrowing_id": borrowing["id"],
        "fine_type": fine_type,
        "amount": amount,
        "description": description,
        "status": "unpaid",
        "created_at": now,
        "updated_at": now,
    }


class FineGenerator:
    """Creates fines for lost, late and overdue borrowings that have none yet."""

    def __init__(self, store: BaseStore, batch_size: int = FINE_BATCH_SIZE, today: Optional[date] = None):
        self.store = store
        self.batch_size = batch_size
        self.today = today

    def candidates(self) -> List[Dict[str, Any]]:
        """Fines to create, one per eligible borrowing without a fine."""
        fined = {f.get("borrowing_id") for f in self.store.find("fines")}
        fines = []
        for borrowing in self.store.find("borrowings"):
            if borrowing.get("id") in fined:
                continue
            fine = derive_fine(borrowing, self.today)
            if fine is not None:
                fines.append(fine)
        return fines

    def generate(self, on_progress: Optional[ProgressCallback] = None) -> BatchResult:
        """
        Insert derived fines in batches.

        A batch the store rejects is logged and counted as failed; the
        next batch still runs.
        """
        result = BatchResult(table="fines")
        result.started_at = datetime.utcnow()
        fines = self.candidates()
        result.total = len(fines)

        logger.info(f"Generating {len(fines)} fines")

        for start in range(0, len(fines), self.batch_size):
            chunk = fines[start:start + self.batch_size]
            try:
                inserted = self.store.insert_batch("fines", chunk)
                result.created += len(inserted)
            except Exception as e:
                logger.error(f"Failed to insert fines batch at {start}: {e}")
                result.failed += len(chunk)
                result.failures.extend({
                    "record_id": fine["borrowing_id"],
                    "table": "fines",
                    "status": "failed",
                    "reason": "exception",
                    "message": str(e),
                    "record": fine,
                } for fine in chunk)
            result.processed += len(chunk)

            if on_progress:
                on_progress(result.processed, result.total)

        if result.processed == 0 and on_progress:
            on_progress(0, 0)

        result.completed_at = datetime.utcnow()
        logger.info(f"Created {result.created} fines, {result.failed} failed")
        return result


@dataclass
class ReconcileResult:
    """Changes made by book status reconciliation."""
    copies_checked: int = 0
    copies_updated: int = 0
    copies_borrowed: int = 0
    books_checked: int = 0
    books_updated: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "copies_checked": self.copies_checked,
            "copies_updated": self.copies_updated,
            "copies_borrowed": self.copies_borrowed,
            "books_checked": self.books_checked,
            "books_updated": self.books_updated,
        }


def reconcile_book_status(store: BaseStore, on_progress: Optional[ProgressCallback] = None) -> ReconcileResult:
    """
    Bring copy and book availability in line with active borrowings.

    Non-lost copies become available unless an active borrowing holds
    them, and each book's available_copies becomes total_copies minus
    its borrowed and lost copies, never below zero.
    """
    result = ReconcileResult()
    on_loan = {b.get("book_copy_id") for b in store.find("borrowings", {"status": "active"})}
    copies = store.find("book_copies")
    books = store.find("books")
    total = len(copies) + len(books)

    borrowed_by_book: Dict[str, int] = {}
    lost_by_book: Dict[str, int] = {}
    copies_by_book: Dict[str, int] = {}

    for copy in copies:
        result.copies_checked += 1
        book_id = copy.get("book_id")
        copies_by_book[book_id] = copies_by_book.get(book_id, 0) + 1

        if copy.get("status") == "lost":
            lost_by_book[book_id] = lost_by_book.get(book_id, 0) + 1
            continue

        status = "borrowed" if copy["id"] in on_loan else "available"
        if status == "borrowed":
            result.copies_borrowed += 1
            borrowed_by_book[book_id] = borrowed_by_book.get(book_id, 0) + 1
        if copy.get("status") != status:
            store.update_by_id("book_copies", copy["id"], {"status": status})
            result.copies_updated += 1

    if on_progress:
        on_progress(len(copies), total)

    for book in books:
        result.books_checked += 1
        total_copies = book.get("total_copies")
        if total_copies is None:
            total_copies = copies_by_book.get(book["id"], 0)
        unavailable = borrowed_by_book.get(book["id"], 0) + lost_by_book.get(book["id"], 0)
        available = max(0, total_copies - unavailable)
        if book.get("available_copies") != available:
            store.update_by_id("books", book["id"], {"available_copies": available})
            result.books_updated += 1

    if on_progress:
        on_progress(total, total)

    logger.info(
        f"Reconciled {result.copies_checked} copies ({result.copies_borrowed} on loan) "
        f"and {result.books_checked} books"
    )
    return result
