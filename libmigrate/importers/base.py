"""Base class for entity importers."""

from abc import ABC, abstractmethod
from typing import Any, Optional, Set
import logging

from ..loaders.base import BaseStore
from ..models.migration import ConflictStrategy, MigrationConfig
from ..models.record import BatchResult, Outcome, SourceRecord
from ..models.schema import TableMapping
from ..services.batch_importer import BatchImporter, ProgressCallback
from ..services.resolver import EntityResolver
from ..services.transformer import build_annotation, normalize_legacy_id

logger = logging.getLogger(__name__)


class BaseImporter(ABC):
    """
    Policy layer between the batch loop and the target store.

    Subclasses implement import_record(): dedupe, transform, insert and
    register the legacy id mapping, returning an Outcome per record.
    Records created during this run are tracked so a second hit on the
    same natural key counts as a duplicate rather than a pre-existing match.
    """

    entity: str = ""

    def __init__(
        self,
        store: BaseStore,
        resolver: EntityResolver,
        config: MigrationConfig,
        mapping: TableMapping
    ):
        """
        Initialize the importer.

        Args:
            store: Target store
            resolver: Shared legacy id resolver
            config: Migration configuration
            mapping: Probe result for the source table
        """
        self.store = store
        self.resolver = resolver
        self.config = config
        self.mapping = mapping
        self._created_ids: Set[str] = set()

        if config.conflict_strategy != ConflictStrategy.SKIP:
            logger.warning(
                f"Conflict strategy '{config.conflict_strategy.value}' is not supported for "
                f"{self.entity}; existing records are skipped"
            )

    @abstractmethod
    def import_record(self, record: SourceRecord) -> Outcome:
        """
        Import one source record.

        Args:
            record: Row from the source table

        Returns:
            Outcome describing what happened
        """
        pass

    def run(self, importer: BatchImporter, on_progress: Optional[ProgressCallback] = None) -> BatchResult:
        """Import the whole source table."""
        logger.info(f"Importing {self.entity} from {self.mapping.source_table}")
        return importer.run(self.mapping.source_table, self.import_record, on_progress)

    def value(self, record: SourceRecord, target_field: str, default: Any = None) -> Any:
        """Read a mapped field from a source record."""
        return self.mapping.get(record.data, target_field, default)

    def legacy_id(self, record: SourceRecord) -> str:
        """The record's legacy id, falling back to its row number."""
        return normalize_legacy_id(self.value(record, "legacy_id")) or record.id

    def annotation(self, legacy_id: str) -> str:
        return build_annotation(self.entity, legacy_id, self.mapping.source_table)

    def created(self, target_id: Any, **details) -> Outcome:
        target_id = str(target_id)
        self._created_ids.add(target_id)
        return Outcome.created(target_id, **details)

    def existing(self, target_id: Any, **details) -> Outcome:
        """Outcome for a natural key that is already in the store."""
        target_id = str(target_id)
        if target_id in self._created_ids:
            return Outcome.duplicate(target_id, **details)
        return Outcome.matched(target_id, **details)
