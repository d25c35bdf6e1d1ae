"""Tests for table recognition and column mapping."""

import sqlite3

import pytest

from libmigrate.errors import EmptySourceError
from libmigrate.extractors.sqlite_extractor import SQLiteExtractor
from libmigrate.models.schema import MappingStatus, SourceColumn, SourceTable
from libmigrate.services.schema_prober import SchemaProber


def make_table(name, columns, row_count=1):
    return SourceTable(name=name, columns=[SourceColumn(c) for c in columns], row_count=row_count)


@pytest.fixture
def prober():
    return SchemaProber()


class TestScoring:

    def test_issue_table_scores_as_borrowings(self, prober):
        table = make_table("IssueDetails", ["IssueID", "BookID", "MemberID", "IssueDate", "DueDate"])
        scores = prober.score_table(table)

        assert scores["borrowings"] > scores["books"]
        assert scores["borrowings"] > scores["students"]
        assert prober.match_table(table).target_entity == "borrowings"

    def test_exclude_pattern_zeroes_books(self, prober):
        table = make_table("SubmittedBooks", ["ID", "BookID", "MemberID", "SubmitDate", "Fine"])
        assert prober.score_table(table)["books"] == 0

        mapping = prober.match_table(table)
        assert mapping.target_entity == "borrowings"
        assert mapping.historical is True
        assert mapping.column_for("returned_date") == "SubmitDate"
        assert mapping.column_for("fine") == "Fine"

    def test_active_table_not_historical(self, prober):
        table = make_table("IssueDetails", ["IssueID", "BookID", "MemberID"])
        assert prober.match_table(table).historical is False

    def test_unrecognised_table_is_unmapped(self, prober):
        mapping = prober.match_table(make_table("Settings", ["key", "value"]))
        assert mapping.target_entity == "unmapped"
        assert mapping.status == MappingStatus.UNMAPPED
        assert not mapping.is_importable

    def test_ties_go_to_first_rule(self, prober):
        mapping = prober.match_table(make_table("Records", ["id"]))
        assert mapping.target_entity == "books"
        assert mapping.status == MappingStatus.PARTIAL


class TestColumnMapping:

    def test_exact_match_wins(self, prober):
        rule = prober.get_rule("students")
        mappings = prober.map_columns(rule, ["MemberID", "Name", "RollNo", "AdmissionYear", "Dob"])
        by_field = {m.target_field: m.source_column for m in mappings}

        assert by_field["legacy_id"] == "MemberID"
        assert by_field["name"] == "Name"
        assert by_field["admission_number"] == "RollNo"
        assert by_field["admission_year"] == "AdmissionYear"
        assert by_field["date_of_birth"] == "Dob"
        assert "first_name" not in by_field

    def test_contained_synonym(self, prober):
        rule = prober.get_rule("categories")
        mappings = prober.map_columns(rule, ["CategoryName", "ShelfNo"])
        by_field = {m.target_field: m.source_column for m in mappings}

        assert by_field["name"] == "CategoryName"
        assert by_field["location"] == "ShelfNo"

    def test_mapping_reads_through_columns(self, prober):
        mapping = prober.match_table(make_table("Categories", ["ID", "Category", "Shelf"]))
        row = {"ID": 4, "Category": "  Poetry ", "Shelf": ""}

        assert mapping.get(row, "name") == "Poetry"
        assert mapping.get(row, "location", "none") == "none"
        assert mapping.get(row, "description") is None


class TestProbe:

    def test_probe_legacy_database(self, prober, extractor):
        result = prober.probe(extractor)
        sources = prober.select_sources(result.mappings).to_dict()

        assert sources == {
            "categories": "Categories",
            "books": "BookDetails",
            "students": "MemberDetails",
            "borrowings": "IssueDetails",
            "historical_borrowings": "SubmittedBooks",
            "fines": None,
        }
        assert result.get_mapping("BookDetails").record_count == 5
        assert result.skipped == {}

    def test_empty_database(self, prober, tmp_path):
        path = tmp_path / "empty.db"
        conn = sqlite3.connect(str(path))
        conn.execute("CREATE TABLE scratch (x)")
        conn.execute("DROP TABLE scratch")
        conn.commit()
        conn.close()

        with SQLiteExtractor(str(path)) as extractor:
            with pytest.raises(EmptySourceError):
                prober.probe(extractor)

    def test_introspection_failure_is_skipped(self, prober, extractor, monkeypatch):
        describe = extractor.describe_table

        def flaky(name):
            if name == "Categories":
                raise RuntimeError("malformed table")
            return describe(name)

        monkeypatch.setattr(extractor, "describe_table", flaky)
        result = prober.probe(extractor)

        assert result.skipped == {"Categories": "malformed table"}
        assert result.get_mapping("Categories") is None
        assert prober.select_sources(result.mappings).categories is None

    def test_highest_score_selected(self, prober):
        weak = prober.match_table(make_table("BookList", ["BookID"]))
        strong = prober.match_table(make_table("BookDetails", ["BookID", "Title", "Author"]))

        selection = prober.select_sources([weak, strong])
        assert selection.books.source_table == "BookDetails"
