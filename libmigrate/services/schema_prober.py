"""Schema prober: recognise legacy tables and map their columns."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import EmptySourceError
from ..extractors.base import BaseExtractor
from ..models.schema import (
    ColumnMapping,
    DataKind,
    EntityType,
    FieldSpec,
    MappingStatus,
    RoleRule,
    SourceTable,
    TableMapping,
    UNMAPPED_ENTITY,
    normalize_name,
)

logger = logging.getLogger(__name__)

TABLE_PATTERN_SCORE = 10
COLUMN_MATCH_SCORE = 1


DEFAULT_RULES: List[RoleRule] = [
    RoleRule(
        entity=EntityType.BOOKS,
        table_patterns=["book", "books", "publication", "catalog"],
        exclude_patterns=["submit", "issue", "borrow", "return"],
        fields=[
            FieldSpec("legacy_id", ["bookid", "book_id", "id"], DataKind.REFERENCE, required=True),
            FieldSpec("title", ["title"], required=True),
            FieldSpec("author", ["author", "writer"]),
            FieldSpec("isbn", ["isbn"]),
            FieldSpec("publisher", ["publisher"]),
            FieldSpec("publication_year", ["publication_year", "year", "published"], DataKind.INTEGER),
            FieldSpec("category", ["category", "categoryid", "cat_id", "genre", "subject"],
                      DataKind.REFERENCE, needs_transform=True),
            FieldSpec("description", ["description", "desc"]),
            FieldSpec("book_code", ["bookno", "book_code", "code", "accession"]),
            FieldSpec("available", ["available", "avail", "status"], DataKind.BOOLEAN, needs_transform=True),
        ],
    ),
    RoleRule(
        entity=EntityType.STUDENTS,
        table_patterns=["student", "students", "member", "members", "user", "users", "pupil"],
        fields=[
            FieldSpec("legacy_id", ["memberid", "studentid", "member_id", "student_id", "id"],
                      DataKind.REFERENCE, required=True),
            FieldSpec("name", ["name", "fullname", "full_name", "studentname"], needs_transform=True),
            FieldSpec("first_name", ["first_name", "firstname", "fname"]),
            FieldSpec("last_name", ["last_name", "lastname", "surname", "lname"]),
            FieldSpec("admission_number", ["admissionnumber", "admissionno", "admno", "rollno", "roll",
                                           "regno", "registration"]),
            FieldSpec("class", ["class", "form", "grade", "stream"]),
            FieldSpec("email", ["email", "mail"]),
            FieldSpec("phone", ["phone", "mobile", "tel", "contact"]),
            FieldSpec("date_of_birth", ["dob", "dateofbirth", "birth", "birthdate"], DataKind.DATE,
                      needs_transform=True),
            FieldSpec("address", ["address"]),
            FieldSpec("admission_year", ["admissionyear", "admission_year", "yearofadmission", "year"],
                      DataKind.INTEGER, needs_transform=True),
        ],
    ),
    RoleRule(
        entity=EntityType.BORROWINGS,
        table_patterns=["borrowing", "borrowings", "borrow", "issue", "issues", "checkout", "loan", "loans",
                        "submit", "return", "history"],
        historical_patterns=["submit", "return", "history"],
        fields=[
            FieldSpec("legacy_id", ["issueid", "submissionid", "submitid", "borrowingid", "loanid", "id"],
                      DataKind.REFERENCE),
            FieldSpec("student_ref", ["memberid", "studentid", "member_id", "student_id", "member", "student",
                                      "borrower"], DataKind.REFERENCE, required=True),
            FieldSpec("book_ref", ["bookid", "book_id", "book"], DataKind.REFERENCE, required=True),
            FieldSpec("borrowed_date", ["issuedate", "issue_date", "borroweddate", "borrowdate", "dateissued",
                                        "issued", "borrow"], DataKind.DATE, needs_transform=True),
            FieldSpec("due_date", ["duedate", "due_date", "due"], DataKind.DATE, needs_transform=True),
            FieldSpec("returned_date", ["submitdate", "returndate", "returned_date", "returneddate",
                                        "datereturned", "submitted", "returned", "return"],
                      DataKind.DATE, needs_transform=True),
            FieldSpec("status", ["status"], DataKind.ENUM),
            FieldSpec("fine", ["fine", "fineamount", "amount", "penalty"], DataKind.NUMERIC),
            FieldSpec("is_lost", ["lost", "islost"], DataKind.BOOLEAN, needs_transform=True),
            FieldSpec("condition", ["condition"]),
        ],
    ),
    RoleRule(
        entity=EntityType.CATEGORIES,
        table_patterns=["category", "categories", "genre", "genres", "subject", "subjects", "classification"],
        fields=[
            FieldSpec("legacy_id", ["categoryid", "category_id", "catid", "cat_id", "id"], DataKind.REFERENCE),
            FieldSpec("name", ["name", "category", "cat", "genre", "subject"], required=True),
            FieldSpec("description", ["description", "desc"]),
            FieldSpec("location", ["shelf", "location"]),
        ],
    ),
    RoleRule(
        entity=EntityType.FINES,
        table_patterns=["fine", "fines", "penalty", "penalties"],
        fields=[
            FieldSpec("student_ref", ["memberid", "studentid", "member_id", "student_id", "student"],
                      DataKind.REFERENCE),
            FieldSpec("amount", ["amount", "fine", "fineamount"], DataKind.NUMERIC),
            FieldSpec("reason", ["reason", "description", "type"]),
            FieldSpec("date", ["date", "finedate", "created"], DataKind.DATE),
        ],
    ),
]


@dataclass
class SourceSelection:
    """The source table chosen for each entity role."""
    categories: Optional[TableMapping] = None
    books: Optional[TableMapping] = None
    students: Optional[TableMapping] = None
    borrowings: Optional[TableMapping] = None
    historical_borrowings: Optional[TableMapping] = None
    fines: Optional[TableMapping] = None

    def get(self, entity: str) -> Optional[TableMapping]:
        return getattr(self, entity, None)

    def to_dict(self) -> Dict[str, Optional[str]]:
        """Convert to entity -> table name."""
        return {
            "categories": self.categories.source_table if self.categories else None,
            "books": self.books.source_table if self.books else None,
            "students": self.students.source_table if self.students else None,
            "borrowings": self.borrowings.source_table if self.borrowings else None,
            "historical_borrowings": (
                self.historical_borrowings.source_table if self.historical_borrowings else None
            ),
            "fines": self.fines.source_table if self.fines else None,
        }


@dataclass
class ProbeResult:
    """Everything learned about a source database."""
    tables: List[SourceTable] = field(default_factory=list)
    mappings: List[TableMapping] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)  # table -> introspection error

    def get_mapping(self, table: str) -> Optional[TableMapping]:
        for mapping in self.mappings:
            if mapping.source_table == table:
                return mapping
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "tables": [t.to_dict() for t in self.tables],
            "mappings": [m.to_dict() for m in self.mappings],
            "skipped": self.skipped,
        }


class SchemaProber:
    """
    Infers which legacy tables hold which entities.

    Supports:
    - Scoring tables against entity role rules by name and columns
    - Resolving one source column per target field
    - Choosing the source table for each role, including active and
      historical borrowings
    """

    def __init__(self, rules: Optional[List[RoleRule]] = None):
        """
        Initialize the prober.

        Args:
            rules: Role rules in priority order (defaults to DEFAULT_RULES)
        """
        self.rules = rules if rules is not None else DEFAULT_RULES

    def get_rule(self, entity: str) -> Optional[RoleRule]:
        """Get the rule for an entity type."""
        for rule in self.rules:
            if rule.entity.value == entity:
                return rule
        return None

    def probe(self, extractor: BaseExtractor) -> ProbeResult:
        """
        Probe every table of a source.

        Args:
            extractor: Open source handle

        Returns:
            ProbeResult with one TableMapping per introspected table

        Raises:
            EmptySourceError: If the source has no user tables
        """
        table_names = extractor.list_tables()
        if not table_names:
            raise EmptySourceError("Source database contains no tables")

        logger.info(f"Probing {len(table_names)} tables")
        result = ProbeResult()

        for name in table_names:
            try:
                table = extractor.describe_table(name)
            except Exception as e:
                logger.warning(f"Skipping table {name}: introspection failed: {e}")
                result.skipped[name] = str(e)
                continue

            mapping = self.match_table(table)
            result.tables.append(table)
            result.mappings.append(mapping)
            logger.info(
                f"Table {name} -> {mapping.target_entity} "
                f"({mapping.status.value}, score {mapping.score}, {mapping.record_count} rows)"
            )

        return result

    def score_rule(self, rule: RoleRule, table: SourceTable) -> int:
        """
        Score a table against one rule.

        10 per table-name pattern found in the table name, plus 1 per
        column that loosely matches any of the rule's field synonyms.
        A table name containing an exclude pattern scores 0.
        """
        table_name = normalize_name(table.name)
        if any(normalize_name(p) in table_name for p in rule.exclude_patterns):
            return 0

        score = TABLE_PATTERN_SCORE * sum(
            1 for p in rule.table_patterns if normalize_name(p) in table_name
        )

        synonyms = [s for spec in rule.fields for s in spec.normalized_synonyms]
        for column in table.column_names:
            col = normalize_name(column)
            if col and any(s in col or col in s for s in synonyms):
                score += COLUMN_MATCH_SCORE

        return score

    def score_table(self, table: SourceTable) -> Dict[str, int]:
        """Score a table against every rule."""
        return {rule.entity.value: self.score_rule(rule, table) for rule in self.rules}

    def map_columns(self, rule: RoleRule, columns: List[str]) -> List[ColumnMapping]:
        """
        Resolve a source column for each field of a rule.

        An exact normalized match wins; otherwise the first synonym that
        is contained in a column name. Synonym order decides ties.
        """
        normalized = [(column, normalize_name(column)) for column in columns]
        mappings = []

        for spec in rule.fields:
            column = self._find_column(spec, normalized)
            if column is None:
                continue
            mappings.append(ColumnMapping(
                source_column=column,
                target_field=spec.target_field,
                data_kind=spec.data_kind,
                required=spec.required,
                needs_transform=spec.needs_transform,
            ))

        return mappings

    def _find_column(self, spec: FieldSpec, normalized: List[tuple]) -> Optional[str]:
        synonyms = spec.normalized_synonyms
        for synonym in synonyms:
            for column, col in normalized:
                if col == synonym:
                    return column
        for synonym in synonyms:
            for column, col in normalized:
                if synonym and synonym in col:
                    return column
        return None

    def match_table(self, table: SourceTable) -> TableMapping:
        """
        Pick the best rule for a table and map its columns.

        Returns:
            TableMapping; ``unmapped`` when no rule scores above zero or
            the best rule maps no fields
        """
        best_rule = None
        best_score = 0
        for rule in self.rules:
            score = self.score_rule(rule, table)
            if score > best_score:
                best_rule, best_score = rule, score

        if best_rule is None:
            return TableMapping(
                source_table=table.name,
                target_entity=UNMAPPED_ENTITY,
                record_count=table.row_count,
                columns=table.column_names,
            )

        field_mappings = self.map_columns(best_rule, table.column_names)
        if not field_mappings:
            status = MappingStatus.UNMAPPED
        elif len(field_mappings) == len(best_rule.fields):
            status = MappingStatus.MAPPED
        else:
            status = MappingStatus.PARTIAL

        table_name = normalize_name(table.name)
        historical = any(normalize_name(p) in table_name for p in best_rule.historical_patterns)

        return TableMapping(
            source_table=table.name,
            target_entity=best_rule.entity.value if status != MappingStatus.UNMAPPED else UNMAPPED_ENTITY,
            field_mappings=field_mappings,
            record_count=table.row_count,
            status=status,
            score=best_score,
            historical=historical,
            columns=table.column_names,
        )

    def select_sources(self, mappings: List[TableMapping]) -> SourceSelection:
        """
        Choose one source table per role.

        The highest scoring importable table wins, the first one on ties.
        Borrowings get both an active and a historical source.
        """
        selection = SourceSelection()

        def best(candidates: List[TableMapping]) -> Optional[TableMapping]:
            chosen = None
            for mapping in candidates:
                if chosen is None or mapping.score > chosen.score:
                    chosen = mapping
            return chosen

        importable = [m for m in mappings if m.is_importable]
        for entity in ("categories", "books", "students", "fines"):
            setattr(selection, entity, best([m for m in importable if m.target_entity == entity]))

        borrowings = [m for m in importable if m.target_entity == EntityType.BORROWINGS.value]
        selection.borrowings = best([m for m in borrowings if not m.historical])
        selection.historical_borrowings = best([m for m in borrowings if m.historical])

        return selection
