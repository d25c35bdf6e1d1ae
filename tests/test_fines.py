"""Tests for fine derivation and book status reconciliation."""

from datetime import date

import pytest

from libmigrate.importers.fines import (
    DAILY_FINE_RATE,
    LOST_BOOK_FINE,
    FineGenerator,
    derive_fine,
    reconcile_book_status,
)
from libmigrate.loaders.memory_store import MemoryStore

TODAY = date(2024, 6, 1)


def borrowing(**fields):
    record = {"id": "b-1", "student_id": "s-1", "due_date": "2024-01-01", "returned_date": None, "is_lost": False}
    record.update(fields)
    return record


class TestDeriveFine:

    def test_late_return(self):
        fine = derive_fine(borrowing(returned_date="2024-01-11"), TODAY)

        assert fine["fine_type"] == "late_return"
        assert fine["amount"] == 10 * DAILY_FINE_RATE == 500
        assert fine["status"] == "unpaid"
        assert fine["borrowing_id"] == "b-1"
        assert fine["student_id"] == "s-1"

    def test_on_time_return(self):
        assert derive_fine(borrowing(returned_date="2023-12-30"), TODAY) is None
        assert derive_fine(borrowing(returned_date="2024-01-01"), TODAY) is None

    def test_overdue(self):
        fine = derive_fine(borrowing(due_date="2024-05-22"), TODAY)
        assert fine["fine_type"] == "overdue"
        assert fine["amount"] == 10 * DAILY_FINE_RATE

    def test_not_yet_due(self):
        assert derive_fine(borrowing(due_date="2024-06-10"), TODAY) is None

    def test_lost_book_default(self):
        fine = derive_fine(borrowing(is_lost=True, returned_date="2024-03-01"), TODAY)
        assert fine["fine_type"] == "lost_book"
        assert fine["amount"] == LOST_BOOK_FINE

    def test_lost_book_own_amount(self):
        fine = derive_fine(borrowing(is_lost=True, fine_amount=800), TODAY)
        assert fine["amount"] == 800


@pytest.fixture
def loans():
    store = MemoryStore()
    store.insert("borrowings", borrowing(id="late", returned_date="2024-01-11"))
    store.insert("borrowings", borrowing(id="overdue", due_date="2024-05-30"))
    store.insert("borrowings", borrowing(id="ok", returned_date="2023-12-20"))
    store.insert("borrowings", borrowing(id="fined", returned_date="2024-02-01"))
    store.insert("fines", {"borrowing_id": "fined", "amount": 250, "status": "paid"})
    return store


class FlakyStore(MemoryStore):
    """Rejects the first fines batch."""

    def __init__(self):
        super().__init__()
        self.batches = 0

    def insert_batch(self, table, rows):
        self.batches += 1
        if self.batches == 1:
            raise RuntimeError("store unavailable")
        return super().insert_batch(table, rows)


class TestFineGenerator:

    def test_candidates_skip_fined_borrowings(self, loans):
        candidates = FineGenerator(loans, today=TODAY).candidates()
        assert sorted(f["borrowing_id"] for f in candidates) == ["late", "overdue"]

    def test_generate(self, loans):
        progress = []
        result = FineGenerator(loans, today=TODAY).generate(lambda done, total: progress.append((done, total)))

        assert result.created == 2
        assert loans.count("fines") == 3
        assert progress[-1] == (2, 2)

    def test_generate_is_idempotent(self, loans):
        FineGenerator(loans, today=TODAY).generate()
        result = FineGenerator(loans, today=TODAY).generate()

        assert result.created == 0
        assert loans.count("fines") == 3

    def test_failed_batch_does_not_stop_the_rest(self):
        store = FlakyStore()
        for i in range(120):
            store.insert("borrowings", borrowing(id=f"b-{i}", returned_date="2024-01-05"))

        result = FineGenerator(store, batch_size=50, today=TODAY).generate()

        assert result.total == 120
        assert result.failed == 50
        assert result.created == 70
        assert len(result.failures) == 50
        assert store.count("fines") == 70

    def test_nothing_to_do(self):
        progress = []
        result = FineGenerator(MemoryStore(), today=TODAY).generate(lambda d, t: progress.append((d, t)))
        assert result.total == 0
        assert progress == [(0, 0)]


class TestReconcileBookStatus:

    @pytest.fixture
    def shelf(self):
        store = MemoryStore()
        store.insert("books", {"id": "book-a", "total_copies": 2, "available_copies": 2})
        store.insert("books", {"id": "book-b", "total_copies": 1, "available_copies": 0})
        store.insert("book_copies", {"id": "a1", "book_id": "book-a", "status": "available"})
        store.insert("book_copies", {"id": "a2", "book_id": "book-a", "status": "lost"})
        store.insert("book_copies", {"id": "b1", "book_id": "book-b", "status": "borrowed"})
        store.insert("borrowings", {"id": "loan", "book_copy_id": "a1", "status": "active"})
        store.insert("borrowings", {"id": "old", "book_copy_id": "b1", "status": "returned"})
        return store

    def test_reconcile(self, shelf):
        result = reconcile_book_status(shelf)

        assert shelf.find_one("book_copies", id="a1")["status"] == "borrowed"
        assert shelf.find_one("book_copies", id="a2")["status"] == "lost"
        assert shelf.find_one("book_copies", id="b1")["status"] == "available"
        assert shelf.find_one("books", id="book-a")["available_copies"] == 0
        assert shelf.find_one("books", id="book-b")["available_copies"] == 1
        assert result.copies_borrowed == 1
        assert result.copies_updated == 2
        assert result.books_updated == 2

    def test_available_never_negative(self):
        store = MemoryStore()
        store.insert("books", {"id": "book", "total_copies": 0})
        store.insert("book_copies", {"id": "c", "book_id": "book", "status": "available"})
        store.insert("borrowings", {"book_copy_id": "c", "status": "active"})

        reconcile_book_status(store)
        assert store.find_one("books", id="book")["available_copies"] == 0

    def test_lost_copies_are_not_available(self):
        store = MemoryStore()
        store.insert("books", {"id": "book", "total_copies": 3, "available_copies": 3})
        store.insert("book_copies", {"id": "c1", "book_id": "book", "status": "available"})
        store.insert("book_copies", {"id": "c2", "book_id": "book", "status": "lost"})
        store.insert("book_copies", {"id": "c3", "book_id": "book", "status": "lost"})

        result = reconcile_book_status(store)

        assert store.find_one("books", id="book")["available_copies"] == 1
        assert result.copies_borrowed == 0
        assert result.books_updated == 1
