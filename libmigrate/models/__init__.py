"""Data models for the migration engine."""

from .schema import (
    DataKind,
    EntityType,
    MappingStatus,
    SourceColumn,
    SourceTable,
    FieldSpec,
    RoleRule,
    ColumnMapping,
    TableMapping,
    normalize_name,
)
from .record import (
    OutcomeStatus,
    FailureReason,
    SourceRecord,
    Outcome,
    BatchResult,
)
from .migration import (
    StepStatus,
    RunStatus,
    ConflictStrategy,
    EntityStats,
    BorrowingStats,
    MigrationStats,
    MigrationStep,
    MigrationRun,
    MigrationConfig,
)

__all__ = [
    "DataKind",
    "EntityType",
    "MappingStatus",
    "SourceColumn",
    "SourceTable",
    "FieldSpec",
    "RoleRule",
    "ColumnMapping",
    "TableMapping",
    "normalize_name",
    "OutcomeStatus",
    "FailureReason",
    "SourceRecord",
    "Outcome",
    "BatchResult",
    "StepStatus",
    "RunStatus",
    "ConflictStrategy",
    "EntityStats",
    "BorrowingStats",
    "MigrationStats",
    "MigrationStep",
    "MigrationRun",
    "MigrationConfig",
]
