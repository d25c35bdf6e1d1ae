"""Tests for the read-only SQLite source handle."""

import sqlite3

import pytest

from libmigrate.errors import InvalidSourceError
from libmigrate.extractors.sqlite_extractor import SQLiteExtractor, check_header


class TestHeaderValidation:

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidSourceError, match="file not found"):
            SQLiteExtractor(str(tmp_path / "nope.db"))

    def test_short_file(self, tmp_path):
        path = tmp_path / "short.db"
        path.write_bytes(b"SQLite")
        with pytest.raises(InvalidSourceError, match="too short"):
            check_header(str(path))

    def test_magic_mismatch(self, tmp_path):
        path = tmp_path / "fake.db"
        path.write_bytes(b"This is definitely not a database file")
        with pytest.raises(InvalidSourceError, match="magic header mismatch"):
            SQLiteExtractor(str(path))

    def test_valid_header(self, legacy_db):
        check_header(legacy_db)


class TestSQLiteExtractor:

    def test_list_tables_excludes_system_tables(self, tmp_path):
        path = tmp_path / "auto.db"
        conn = sqlite3.connect(str(path))
        conn.execute("CREATE TABLE Books (id INTEGER PRIMARY KEY AUTOINCREMENT, title TEXT)")
        conn.execute("INSERT INTO Books (title) VALUES ('x')")
        conn.commit()
        conn.close()

        with SQLiteExtractor(str(path)) as extractor:
            assert extractor.list_tables() == ["Books"]

    def test_list_tables(self, extractor):
        assert extractor.list_tables() == [
            "BookDetails", "Categories", "IssueDetails", "MemberDetails", "SubmittedBooks",
        ]

    def test_describe_table(self, extractor):
        table = extractor.describe_table("BookDetails")
        assert table.row_count == 5
        assert table.column_names[:3] == ["BookID", "Title", "Author"]
        book_id = table.columns[0]
        assert book_id.is_primary_key
        assert book_id.declared_type == "INTEGER"

    def test_extract_batch_paging(self, extractor):
        first = extractor.extract_batch("Categories", offset=0, limit=2)
        second = extractor.extract_batch("Categories", offset=2, limit=2)

        assert [r.data["Category"] for r in first] == ["Fiction", "Science"]
        assert [r.id for r in first] == ["1", "2"]
        assert len(second) == 1
        assert second[0].row_number == 3
        assert second[0].table == "Categories"

    def test_stream(self, extractor):
        batches = list(extractor.stream("BookDetails", batch_size=2))
        assert [len(b) for b in batches] == [2, 2, 1]

    def test_quoted_identifiers(self, tmp_path):
        path = tmp_path / "quoted.db"
        conn = sqlite3.connect(str(path))
        conn.execute('CREATE TABLE "Book List" ("Book ""Title""" TEXT)')
        conn.execute('INSERT INTO "Book List" VALUES (\'Dune\')')
        conn.commit()
        conn.close()

        with SQLiteExtractor(str(path)) as extractor:
            assert extractor.count("Book List") == 1
            assert extractor.describe_table("Book List").column_names == ['Book "Title"']
            assert extractor.extract_batch("Book List")[0].data == {'Book "Title"': "Dune"}

    def test_read_only(self, extractor):
        with pytest.raises(sqlite3.OperationalError):
            extractor._conn.execute("DELETE FROM Categories")
