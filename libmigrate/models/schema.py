"""Schema models for source tables, entity roles and column mappings."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
import re


class DataKind(str, Enum):
    """Kinds of values a target field holds."""
    TEXT = "text"
    INTEGER = "integer"
    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    DATE = "date"
    TIMESTAMP = "timestamp"
    ENUM = "enum"
    REFERENCE = "reference"  # Legacy id that must be resolved to a target id


class EntityType(str, Enum):
    """Domain entities the engine knows how to recognise."""
    BOOKS = "books"
    STUDENTS = "students"
    BORROWINGS = "borrowings"
    CATEGORIES = "categories"
    FINES = "fines"


class MappingStatus(str, Enum):
    """How completely a source table maps onto an entity role."""
    MAPPED = "mapped"
    PARTIAL = "partial"
    UNMAPPED = "unmapped"


UNMAPPED_ENTITY = "unmapped"

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_name(name: str) -> str:
    """Normalize a table or column name for loose matching."""
    return _NON_ALNUM.sub("", str(name).lower())


@dataclass
class SourceColumn:
    """A column of a legacy source table."""
    name: str
    declared_type: str = ""
    nullable: bool = True
    is_primary_key: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "declared_type": self.declared_type,
            "nullable": self.nullable,
            "is_primary_key": self.is_primary_key,
        }


@dataclass
class SourceTable:
    """Read-only snapshot of one table in the source database."""
    name: str
    columns: List[SourceColumn] = field(default_factory=list)
    row_count: int = 0

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "columns": [c.to_dict() for c in self.columns],
            "row_count": self.row_count,
        }


@dataclass
class FieldSpec:
    """A target field and the source column names that may hold it."""
    target_field: str
    synonyms: List[str]
    data_kind: DataKind = DataKind.TEXT
    required: bool = False
    needs_transform: bool = False
    description: str = ""

    @property
    def normalized_synonyms(self) -> List[str]:
        return [normalize_name(s) for s in self.synonyms]


@dataclass
class RoleRule:
    """
    Rule for recognising a source table as one entity role.

    Tables are scored by name patterns and by how many of their columns
    loosely match the synonyms of the rule's fields.
    """
    entity: EntityType
    table_patterns: List[str]
    fields: List[FieldSpec]
    exclude_patterns: List[str] = field(default_factory=list)
    historical_patterns: List[str] = field(default_factory=list)


@dataclass
class ColumnMapping:
    """A resolved source column for one target field."""
    source_column: str
    target_field: str
    data_kind: DataKind = DataKind.TEXT
    required: bool = False
    needs_transform: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "source_column": self.source_column,
            "target_field": self.target_field,
            "data_kind": self.data_kind.value,
            "required": self.required,
            "needs_transform": self.needs_transform,
        }


@dataclass
class TableMapping:
    """
    The probe result for one source table.

    After probing, all record access for the table goes through
    ``get()``, which reads the column resolved for a target field.
    """
    source_table: str
    target_entity: str
    field_mappings: List[ColumnMapping] = field(default_factory=list)
    record_count: int = 0
    status: MappingStatus = MappingStatus.UNMAPPED
    score: int = 0
    historical: bool = False
    columns: List[str] = field(default_factory=list)

    def __post_init__(self):
        self._by_field = {m.target_field: m for m in self.field_mappings}

    @property
    def is_importable(self) -> bool:
        return self.status != MappingStatus.UNMAPPED and self.target_entity != UNMAPPED_ENTITY

    def column_for(self, target_field: str) -> Optional[str]:
        """Get the source column mapped to a target field."""
        mapping = self._by_field.get(target_field)
        return mapping.source_column if mapping else None

    def has_field(self, target_field: str) -> bool:
        return target_field in self._by_field

    def get(self, data: Dict[str, Any], target_field: str, default: Any = None) -> Any:
        """
        Read a target field from a source row.

        Blank strings and NULLs are treated as missing.
        """
        column = self.column_for(target_field)
        if column is None:
            return default
        value = data.get(column)
        if value is None:
            return default
        if isinstance(value, str):
            value = value.strip()
            if value == "":
                return default
        return value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "source_table": self.source_table,
            "target_entity": self.target_entity,
            "field_mappings": [m.to_dict() for m in self.field_mappings],
            "record_count": self.record_count,
            "status": self.status.value,
            "score": self.score,
            "historical": self.historical,
        }
