"""Migration execution models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime
import os
import uuid


class StepStatus(str, Enum):
    """Status of a single orchestrator step."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


class RunStatus(str, Enum):
    """Status of a migration run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class ConflictStrategy(str, Enum):
    """How importers treat records whose natural key already exists."""
    SKIP = "skip"
    OVERWRITE = "overwrite"
    MERGE = "merge"


ALL_ENTITIES = ["categories", "books", "students", "borrowings", "fines"]

DEFAULT_CLASS_ASSIGNMENTS = {
    "2022": "Form 4, Section A",
    "2023": "Form 3, Section A",
    "2024": "Form 2, Section A",
    "other": "graduated",
}


@dataclass
class EntityStats:
    """Running counters for one entity type."""
    attempted: int = 0
    imported: int = 0
    duplicates: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def errors(self) -> int:
        return self.skipped + self.failed

    def add_batch(self, result) -> None:
        """Fold a BatchResult into the counters."""
        self.attempted += result.processed
        self.imported += result.imported
        self.duplicates += result.duplicates
        self.skipped += result.skipped
        self.failed += result.failed

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "attempted": self.attempted,
            "imported": self.imported,
            "duplicates": self.duplicates,
            "errors": self.errors,
            "skipped": self.skipped,
            "failed": self.failed,
        }


@dataclass
class BorrowingStats(EntityStats):
    """Borrowing counters, split by source table kind."""
    active: int = 0
    historical: int = 0
    fines: int = 0

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update({
            "active": self.active,
            "historical": self.historical,
            "fines": self.fines,
        })
        return result


@dataclass
class MigrationStats:
    """Per-run statistics, rebuilt fresh for every run."""
    categories: EntityStats = field(default_factory=EntityStats)
    books: EntityStats = field(default_factory=EntityStats)
    students: EntityStats = field(default_factory=EntityStats)
    borrowings: BorrowingStats = field(default_factory=BorrowingStats)
    fines: EntityStats = field(default_factory=EntityStats)
    failed_mappings: Dict[str, List[Dict[str, Any]]] = field(default_factory=lambda: {
        "books": [],
        "students": [],
        "categories": [],
        "borrowings": [],
        "fines": [],
    })

    def for_entity(self, entity: str) -> EntityStats:
        """Get the counters for an entity type."""
        return getattr(self, entity)

    def add_failures(self, entity: str, failures: List[Dict[str, Any]]) -> None:
        """
        File record failures under the entity they point at.

        Unresolved students and books are filed under those entities so the
        report shows which legacy ids could not be mapped.
        """
        for failure in failures:
            reason = failure.get("reason")
            if reason == "student_not_found":
                key = "students"
            elif reason == "book_not_found":
                key = "books"
            else:
                key = entity
            self.failed_mappings.setdefault(key, []).append(failure)

    @property
    def total_errors(self) -> int:
        return sum(self.for_entity(e).errors for e in ALL_ENTITIES)

    def to_report(self) -> Dict[str, Any]:
        """Build the final report surfaced to the caller."""
        return {
            "categories": self.categories.imported,
            "books": self.books.imported,
            "students": self.students.imported,
            "borrowings": {
                "active": self.borrowings.active,
                "historical": self.borrowings.historical,
            },
            "fines": self.fines.imported + self.borrowings.fines,
            "errors": self.total_errors,
            "failed_mappings": self.failed_mappings,
            "entities": {e: self.for_entity(e).to_dict() for e in ALL_ENTITIES},
        }


@dataclass
class MigrationStep:
    """A single step in the migration state machine."""
    id: str
    name: str = ""
    status: StepStatus = StepStatus.PENDING
    progress: int = 0
    total: int = 0
    message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "progress": self.progress,
            "total": self.total,
            "message": self.message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "details": self.details,
        }


@dataclass
class MigrationRun:
    """A complete migration run."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    source_path: Optional[str] = None
    status: RunStatus = RunStatus.PENDING

    # Timing
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    # Progress
    steps: List[MigrationStep] = field(default_factory=list)
    current_step: Optional[str] = None
    progress: float = 0.0

    # Results
    stats: MigrationStats = field(default_factory=MigrationStats)
    sources: Dict[str, Optional[str]] = field(default_factory=dict)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    report: Optional[Dict[str, Any]] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def add_step(self, step_id: str, name: str) -> MigrationStep:
        """Add a new step to the run."""
        step = MigrationStep(id=step_id, name=name)
        self.steps.append(step)
        return step

    def get_step(self, step_id: str) -> Optional[MigrationStep]:
        """Get a step by ID."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def update_progress(self) -> float:
        """Recompute overall progress as the share of all step work done."""
        total = sum(s.total for s in self.steps)
        done = sum(min(s.progress, s.total) for s in self.steps)
        self.progress = done / total if total > 0 else 0.0
        return self.progress

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "source_path": self.source_path,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "steps": [s.to_dict() for s in self.steps],
            "current_step": self.current_step,
            "progress": self.progress,
            "sources": self.sources,
            "errors": self.errors,
            "report": self.report,
        }


@dataclass
class MigrationConfig:
    """Configuration for a migration run."""
    name: str = "legacy-library-migration"
    source_path: Optional[str] = None

    # What to import
    entities: List[str] = field(default_factory=lambda: list(ALL_ENTITIES))
    required_entities: List[str] = field(default_factory=lambda: ["books", "students"])

    # Students
    class_assignments: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_CLASS_ASSIGNMENTS))

    # Books
    generate_new_tracking_codes: bool = True
    store_legacy_ids_as_metadata: bool = True

    # Borrowings
    import_historical_borrowings: bool = True

    # Execution
    batch_size: int = 100
    conflict_strategy: ConflictStrategy = ConflictStrategy.SKIP

    # Target store
    target: str = "memory"  # memory, rest
    target_url: Optional[str] = None
    target_api_key: Optional[str] = None

    # Output
    output_dir: Optional[str] = None

    def is_enabled(self, entity: str) -> bool:
        return entity in self.entities

    def is_required(self, entity: str) -> bool:
        return entity in self.required_entities and self.is_enabled(entity)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "source_path": self.source_path,
            "entities": self.entities,
            "required_entities": self.required_entities,
            "class_assignments": self.class_assignments,
            "generate_new_tracking_codes": self.generate_new_tracking_codes,
            "store_legacy_ids_as_metadata": self.store_legacy_ids_as_metadata,
            "import_historical_borrowings": self.import_historical_borrowings,
            "batch_size": self.batch_size,
            "conflict_strategy": self.conflict_strategy.value,
            "target": self.target,
            "target_url": self.target_url,
            "output_dir": self.output_dir,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationConfig":
        """Create from dictionary representation."""
        class_assignments = dict(DEFAULT_CLASS_ASSIGNMENTS)
        class_assignments.update({str(k): v for k, v in (data.get("class_assignments") or {}).items()})

        return cls(
            name=data.get("name", "legacy-library-migration"),
            source_path=data.get("source_path"),
            entities=list(data.get("entities", ALL_ENTITIES)),
            required_entities=list(data.get("required_entities", ["books", "students"])),
            class_assignments=class_assignments,
            generate_new_tracking_codes=data.get("generate_new_tracking_codes", True),
            store_legacy_ids_as_metadata=data.get("store_legacy_ids_as_metadata", True),
            import_historical_borrowings=data.get("import_historical_borrowings", True),
            batch_size=int(data.get("batch_size", 100)),
            conflict_strategy=ConflictStrategy(data.get("conflict_strategy", "skip")),
            target=data.get("target", "memory"),
            target_url=data.get("target_url"),
            target_api_key=data.get("target_api_key") or os.environ.get("LIBMIGRATE_API_KEY"),
            output_dir=data.get("output_dir"),
        )
