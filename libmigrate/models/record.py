"""Record models for migration data."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime


class OutcomeStatus(str, Enum):
    """Result of processing one source record."""
    CREATED = "created"      # New target record inserted
    MATCHED = "matched"      # Natural key already existed before this run
    DUPLICATE = "duplicate"  # Natural key matched a record created earlier in this run
    SKIPPED = "skipped"      # Expected miss, e.g. an unresolvable reference
    FAILED = "failed"        # Unexpected error


class FailureReason(str, Enum):
    """Named reasons attached to skipped or failed records."""
    STUDENT_NOT_FOUND = "student_not_found"
    BOOK_NOT_FOUND = "book_not_found"
    COPY_NOT_FOUND = "copy_not_found"
    MISSING_NAME = "missing_name"
    EXCEPTION = "exception"


@dataclass
class SourceRecord:
    """A row read from a legacy source table."""
    id: str
    table: str
    data: Dict[str, Any]
    row_number: int = 0
    extracted_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "table": self.table,
            "data": self.data,
            "row_number": self.row_number,
            "extracted_at": self.extracted_at.isoformat(),
        }


@dataclass
class Outcome:
    """What happened to one source record."""
    status: OutcomeStatus
    target_id: Optional[str] = None
    reason: Optional[str] = None
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def created(cls, target_id: str, **details) -> "Outcome":
        return cls(OutcomeStatus.CREATED, target_id=target_id, details=details)

    @classmethod
    def matched(cls, target_id: str, **details) -> "Outcome":
        return cls(OutcomeStatus.MATCHED, target_id=target_id, details=details)

    @classmethod
    def duplicate(cls, target_id: str, **details) -> "Outcome":
        return cls(OutcomeStatus.DUPLICATE, target_id=target_id, details=details)

    @classmethod
    def skipped(cls, reason: str, message: str = "", **details) -> "Outcome":
        return cls(OutcomeStatus.SKIPPED, reason=reason, message=message, details=details)

    @classmethod
    def failed(cls, message: str, reason: str = FailureReason.EXCEPTION.value, **details) -> "Outcome":
        return cls(OutcomeStatus.FAILED, reason=reason, message=message, details=details)

    @property
    def is_success(self) -> bool:
        """Created and matched records both count as imported."""
        return self.status in (OutcomeStatus.CREATED, OutcomeStatus.MATCHED)

    @property
    def is_error(self) -> bool:
        return self.status in (OutcomeStatus.SKIPPED, OutcomeStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "status": self.status.value,
            "target_id": self.target_id,
            "reason": self.reason,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class BatchResult:
    """Result of running the batched importer over one table."""
    table: str
    total: int = 0
    processed: int = 0
    created: int = 0
    matched: int = 0
    duplicates: int = 0
    skipped: int = 0
    failed: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def imported(self) -> int:
        return self.created + self.matched

    @property
    def errors(self) -> int:
        return self.skipped + self.failed

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def record(self, source: SourceRecord, outcome: Outcome) -> None:
        """Count one record outcome."""
        self.processed += 1
        if outcome.status == OutcomeStatus.CREATED:
            self.created += 1
        elif outcome.status == OutcomeStatus.MATCHED:
            self.matched += 1
        elif outcome.status == OutcomeStatus.DUPLICATE:
            self.duplicates += 1
        elif outcome.status == OutcomeStatus.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1

        if outcome.is_error:
            self.failures.append({
                "record_id": source.id,
                "table": source.table,
                "status": outcome.status.value,
                "reason": outcome.reason,
                "message": outcome.message,
                "record": source.data,
            })

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "table": self.table,
            "total": self.total,
            "processed": self.processed,
            "created": self.created,
            "matched": self.matched,
            "imported": self.imported,
            "duplicates": self.duplicates,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": self.errors,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }
