"""Pydantic models for API requests and responses."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from enum import Enum
from datetime import datetime

from ..models.migration import ALL_ENTITIES, DEFAULT_CLASS_ASSIGNMENTS, MigrationConfig


class ConflictStrategyEnum(str, Enum):
    SKIP = "skip"
    OVERWRITE = "overwrite"
    MERGE = "merge"


class RunStatusEnum(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


# Request Models
class ProbeRequest(BaseModel):
    source_path: str


class MigrationCreate(BaseModel):
    name: str = "legacy-library-migration"
    source_path: str
    entities: List[str] = Field(default_factory=lambda: list(ALL_ENTITIES))
    required_entities: List[str] = Field(default_factory=lambda: ["books", "students"])
    class_assignments: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_CLASS_ASSIGNMENTS))
    import_historical_borrowings: bool = True
    batch_size: int = Field(default=100, ge=1)
    conflict_strategy: ConflictStrategyEnum = ConflictStrategyEnum.SKIP
    generate_new_tracking_codes: bool = True
    store_legacy_ids_as_metadata: bool = True
    target: str = "memory"
    target_url: Optional[str] = None
    target_api_key: Optional[str] = None
    output_dir: Optional[str] = None

    def to_config(self) -> MigrationConfig:
        """Convert to the engine's configuration object."""
        data = self.model_dump()
        data["conflict_strategy"] = self.conflict_strategy.value
        return MigrationConfig.from_dict(data)


# Response Models
class ProbeResponse(BaseModel):
    tables: List[Dict[str, Any]]
    mappings: List[Dict[str, Any]]
    skipped: Dict[str, str] = Field(default_factory=dict)
    sources: Dict[str, Optional[str]] = Field(default_factory=dict)


class MigrationStepResponse(BaseModel):
    id: str
    name: str
    status: str
    progress: int = 0
    total: int = 0
    message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class MigrationResponse(BaseModel):
    id: str
    name: str
    source_path: Optional[str] = None
    status: RunStatusEnum
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    current_step: Optional[str] = None
    progress: float = 0.0
    steps: List[MigrationStepResponse] = Field(default_factory=list)
    sources: Dict[str, Optional[str]] = Field(default_factory=dict)
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    report: Optional[Dict[str, Any]] = None


class MigrationListResponse(BaseModel):
    migrations: List[MigrationResponse]
    total: int
