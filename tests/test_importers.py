"""Tests for the entity importers against the legacy fixture database."""

import json
import sqlite3

import pytest

from libmigrate.extractors.sqlite_extractor import SQLiteExtractor
from libmigrate.importers.books import BookImporter
from libmigrate.importers.borrowings import BorrowingImporter
from libmigrate.importers.categories import CategoryImporter
from libmigrate.importers.students import StudentImporter
from libmigrate.models.migration import ConflictStrategy
from libmigrate.services.batch_importer import BatchImporter
from libmigrate.services.resolver import EntityResolver
from libmigrate.services.schema_prober import SchemaProber


@pytest.fixture
def batch(extractor):
    return BatchImporter(extractor, batch_size=2)


@pytest.fixture
def catalog(store, resolver, config, sources, batch):
    """Store with categories and books imported."""
    CategoryImporter(store, resolver, config, sources.categories).run(batch)
    BookImporter(store, resolver, config, sources.books).run(batch)
    return store


@pytest.fixture
def library(catalog, resolver, config, sources, batch):
    """Store with categories, books and students imported."""
    StudentImporter(catalog, resolver, config, sources.students).run(batch)
    return catalog


def book_by_title(store, title):
    return store.find_one("books", title=title)


class TestCategoryImporter:

    def test_import(self, store, resolver, config, sources, batch):
        result = CategoryImporter(store, resolver, config, sources.categories).run(batch)

        assert result.created == 3
        fiction = store.find_one("categories", name="Fiction")
        assert fiction["location"] == "A1"
        assert fiction["description"] == "Imported from legacy system"
        assert json.loads(fiction["notes"])["original_category_id"] == "1"
        assert resolver.resolve("categories", 1) == fiction["id"]

    def test_second_run_matches(self, store, resolver, config, sources, batch):
        CategoryImporter(store, resolver, config, sources.categories).run(batch)
        result = CategoryImporter(store, resolver, config, sources.categories).run(batch)

        assert result.created == 0
        assert result.matched == 3
        assert result.duplicates == 0
        assert store.count("categories") == 3

    def test_repeated_name_counts_as_imported(self, tmp_path, store, resolver, config):
        path = tmp_path / "categories.db"
        conn = sqlite3.connect(str(path))
        conn.execute("CREATE TABLE Categories (ID INTEGER PRIMARY KEY, Category TEXT, Shelf TEXT)")
        conn.executemany("INSERT INTO Categories VALUES (?, ?, ?)", [(1, "Fiction", "A1"), (2, "Fiction", "A2")])
        conn.commit()
        conn.close()

        with SQLiteExtractor(str(path)) as extractor:
            prober = SchemaProber()
            mapping = prober.select_sources(prober.probe(extractor).mappings).categories
            result = CategoryImporter(store, resolver, config, mapping).run(BatchImporter(extractor))

        assert (result.created, result.matched, result.duplicates) == (1, 1, 0)
        assert result.imported == 2
        assert store.count("categories") == 1
        assert resolver.resolve("categories", 2) == resolver.resolve("categories", 1)

    def test_unsupported_conflict_strategy_warns(self, store, resolver, config, sources, caplog):
        config.conflict_strategy = ConflictStrategy.OVERWRITE
        CategoryImporter(store, resolver, config, sources.categories)
        assert "not supported" in caplog.text


class TestBookImporter:

    def test_import(self, catalog, sources):
        assert catalog.count("books") == 4
        assert catalog.count("book_copies") == 4

    def test_duplicate_title_and_author(self, store, resolver, config, sources, batch):
        CategoryImporter(store, resolver, config, sources.categories).run(batch)
        result = BookImporter(store, resolver, config, sources.books).run(batch)

        assert result.created == 4
        assert result.duplicates == 1
        assert result.imported == 4
        first = book_by_title(store, "Things Fall Apart")
        assert resolver.resolve("books", 105) == first["id"]

    def test_book_fields(self, catalog, resolver):
        book = book_by_title(catalog, "Things Fall Apart")

        assert book["author"] == "Chinua Achebe"
        assert book["isbn"] == "9780385474542"
        assert book["publication_year"] == 1958
        assert book["category_id"] == catalog.find_one("categories", name="Fiction")["id"]
        assert book["book_code"].startswith("OLD-101-")
        assert book["legacy_book_id"] == 101
        assert book["total_copies"] == 1
        assert json.loads(book["notes"])["original_book_id"] == "101"

    def test_category_resolution(self, catalog):
        science = catalog.find_one("categories", name="Science")
        assert book_by_title(catalog, "A Brief History of Time")["category_id"] == science["id"]
        assert book_by_title(catalog, "Blossoms of the Savannah")["category_id"] is None

    def test_blank_isbn_stored_as_none(self, catalog):
        assert book_by_title(catalog, "The River Between")["isbn"] is None

    @pytest.mark.parametrize("title,status,available", [
        ("Things Fall Apart", "available", 1),
        ("A Brief History of Time", "borrowed", 0),
        ("The River Between", "available", 1),
        ("Blossoms of the Savannah", "available", 1),
    ])
    def test_copy_status(self, catalog, title, status, available):
        book = book_by_title(catalog, title)
        copy = catalog.find_one("book_copies", book_id=book["id"])

        assert copy["status"] == status
        assert book["available_copies"] == available
        assert copy["copy_number"] == 1
        assert copy["condition"] == "good"
        assert copy["tracking_code"].startswith("BOOK-")
        assert copy["notes"] == f"Imported from legacy system - Book ID: {book['legacy_book_id']}"

    def test_legacy_tracking_codes(self, store, resolver, config, sources, batch):
        config.generate_new_tracking_codes = False
        config.store_legacy_ids_as_metadata = False
        BookImporter(store, resolver, config, sources.books).run(batch)

        copy = store.find_one("book_copies", legacy_book_id=101)
        assert copy["tracking_code"].startswith("OLD-101-")
        assert copy["notes"] is None

    def test_copies_resolve_after_restart(self, catalog):
        fresh = EntityResolver(catalog)
        book = book_by_title(catalog, "The River Between")
        assert fresh.resolve("books", "103") == book["id"]


class TestStudentImporter:

    def test_import(self, store, resolver, config, sources, batch):
        result = StudentImporter(store, resolver, config, sources.students).run(batch)

        assert result.created == 3
        assert result.skipped == 1
        assert result.failures[0]["reason"] == "missing_name"

    def test_student_fields(self, library):
        john = library.find_one("students", admission_number="ADM001")
        assert (john["first_name"], john["last_name"]) == ("John", "Kamau")
        assert john["email"] == "john@example.com"
        assert john["date_of_birth"] == "2008-03-05"
        assert john["class_grade"] == "Form 3, Section A"
        assert john["status"] == "active"
        assert john["legacy_student_id"] == 1

        mary = library.find_one("students", admission_number="ADM002")
        assert (mary["first_name"], mary["last_name"]) == ("Mary", "Wanjiku Otieno")
        assert mary["date_of_birth"] == "2007-11-20"
        assert mary["class_grade"] == "Form 4, Section A"

    def test_fallback_admission_number(self, library):
        peter = library.find_one("students", admission_number="S3")
        assert peter["last_name"] == "Student"
        assert peter["date_of_birth"] is None
        assert peter["class_grade"] == "graduated"
        assert peter["status"] == "graduated"


class TestBorrowingImporter:

    def run_active(self, store, resolver, config, sources, batch):
        importer = BorrowingImporter(store, resolver, config, sources.borrowings)
        return importer, importer.run(batch)

    def run_historical(self, store, resolver, config, sources, batch):
        importer = BorrowingImporter(store, resolver, config, sources.historical_borrowings, historical=True)
        return importer, importer.run(batch)

    def test_active(self, library, resolver, config, sources, batch):
        _, result = self.run_active(library, resolver, config, sources, batch)

        assert result.created == 2
        assert result.skipped == 2
        assert sorted(f["reason"] for f in result.failures) == ["book_not_found", "student_not_found"]

        borrowings = library.find("borrowings", {"status": "active"})
        assert len(borrowings) == 2
        for borrowing in borrowings:
            assert borrowing["returned_date"] is None
            copy = library.find_one("book_copies", id=borrowing["book_copy_id"])
            assert copy["status"] == "borrowed"
            assert borrowing["tracking_code"] == copy["tracking_code"]

    def test_active_dates(self, library, resolver, config, sources, batch):
        self.run_active(library, resolver, config, sources, batch)
        book = book_by_title(library, "Blossoms of the Savannah")
        borrowing = library.find_one("borrowings", book_id=book["id"])

        assert borrowing["borrowed_date"] == "2025-01-10"
        assert borrowing["due_date"] == "2025-01-24"
        assert borrowing["notes"] == "Imported from legacy system - Issue ID: 2"
        assert json.loads(borrowing["legacy_data"])["IssueID"] == 2

    def test_historical(self, library, resolver, config, sources, batch):
        importer, result = self.run_historical(library, resolver, config, sources, batch)

        assert result.created == 3
        assert importer.fines_created == 1

        returned = library.find("borrowings", {"status": "returned"})
        assert {b["returned_date"] for b in returned} == {"2024-01-11", "2024-03-10", "2024-04-20"}

        fine = library.find("fines")[0]
        assert fine["amount"] == 250
        assert fine["status"] == "paid"
        assert fine["fine_type"] == "late_return"
        assert fine["created_at"] == "2024-04-20"

    def test_historical_does_not_flip_copies(self, library, resolver, config, sources, batch):
        self.run_historical(library, resolver, config, sources, batch)
        book = book_by_title(library, "The River Between")
        assert library.find_one("book_copies", book_id=book["id"])["status"] == "available"

    def test_rerun_is_deduplicated(self, library, resolver, config, sources, batch):
        self.run_active(library, resolver, config, sources, batch)
        _, result = self.run_active(library, resolver, config, sources, batch)

        assert result.created == 0
        assert result.matched == 2
        assert library.count("borrowings") == 2

    def test_missing_copy(self, library, resolver, config, sources, batch):
        resolver.register("books", 999, "ghost-book")

        _, result = self.run_active(library, resolver, config, sources, batch)

        assert "copy_not_found" in [f["reason"] for f in result.failures]