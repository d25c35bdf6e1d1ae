"""Migration orchestrator - runs the migration steps in order."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .errors import EmptySourceError, InvalidSourceError, StepError, StoreError
from .extractors.sqlite_extractor import SQLiteExtractor
from .importers.base import BaseImporter
from .importers.books import BookImporter
from .importers.borrowings import BorrowingImporter
from .importers.categories import CategoryImporter
from .importers.fines import FineGenerator, reconcile_book_status
from .importers.students import StudentImporter
from .loaders.base import BaseStore
from .loaders.memory_store import MemoryStore
from .loaders.rest_store import RestStore
from .models.migration import (
    MigrationConfig,
    MigrationRun,
    MigrationStats,
    MigrationStep,
    RunStatus,
    StepStatus,
)
from .models.record import BatchResult
from .services.batch_importer import BatchImporter, ProgressCallback
from .services.resolver import EntityResolver
from .services.schema_prober import ProbeResult, SchemaProber, SourceSelection

logger = logging.getLogger(__name__)

StepCallback = Callable[[MigrationStep], None]

STEPS = [
    ("init", "Open and probe source"),
    ("categories", "Import categories"),
    ("books", "Import books"),
    ("students", "Import students"),
    ("borrowings", "Import borrowings"),
    ("book_status", "Reconcile book status"),
    ("fines", "Generate fines"),
    ("finalize", "Finalize report"),
]

ENTITY_STEPS = ("categories", "books", "students", "borrowings", "fines")


def create_store(config: MigrationConfig) -> BaseStore:
    """Create the target store named by the configuration."""
    target = (config.target or "memory").lower()
    if target == "memory":
        return MemoryStore()
    if target == "rest":
        if not config.target_url:
            raise ValueError("target_url is required for the rest target")
        return RestStore(base_url=config.target_url, api_key=config.target_api_key)
    raise ValueError(f"Unsupported target: {config.target}")


class MigrationOrchestrator:
    """
    Runs a migration from a legacy SQLite file into a target store.

    Handles:
    - Opening and probing the source, with fatal checks
    - Importing categories, books, students and borrowings in order
    - Reconciling book availability and deriving fines
    - Progress tracking and the final report

    A failing step is marked ``error`` and the run carries on with the
    steps that do not depend on it. Re-running against the same target
    is safe because every importer dedupes before inserting.
    """

    def __init__(
        self,
        config: MigrationConfig,
        store: Optional[BaseStore] = None,
        resolver: Optional[EntityResolver] = None,
        prober: Optional[SchemaProber] = None,
        progress_callback: Optional[ProgressCallback] = None,
        step_callback: Optional[StepCallback] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Migration configuration
            store: Target store (created from config if omitted)
            resolver: Legacy id resolver; pass the same one across runs to
                keep its cache
            prober: Schema prober
            progress_callback: Called with (done, total) after each batch
            step_callback: Called with the step after every step update
        """
        self.config = config
        self.store = store or create_store(config)
        self.resolver = resolver or EntityResolver(self.store)
        self.prober = prober or SchemaProber()
        self.progress_callback = progress_callback
        self.step_callback = step_callback

        # Runtime state
        self.run: Optional[MigrationRun] = None
        self.extractor: Optional[SQLiteExtractor] = None
        self.probe_result: Optional[ProbeResult] = None
        self.sources: SourceSelection = SourceSelection()
        self.batch_importer: Optional[BatchImporter] = None

    @property
    def stats(self) -> MigrationStats:
        return self.run.stats

    def run_migration(self, source_path: Optional[str] = None, run_id: Optional[str] = None) -> MigrationRun:
        """
        Run the complete migration.

        Args:
            source_path: Legacy database file (defaults to config.source_path)
            run_id: Id to give the run (generated if omitted)

        Returns:
            MigrationRun with steps, statistics and report

        Raises:
            InvalidSourceError: If the source cannot be opened
            EmptySourceError: If the source or a required table is empty
            StoreError: If the target store is not reachable
        """
        path = source_path or self.config.source_path
        self.run = MigrationRun(name=self.config.name, source_path=path)
        if run_id:
            self.run.id = run_id
        for step_id, name in STEPS:
            self.run.add_step(step_id, name)

        self.run.started_at = datetime.utcnow()
        self.run.status = RunStatus.RUNNING

        try:
            logger.info("=== STEP: init ===")
            self._run_init(path)

            self._run_step("categories", self._import_categories)
            self._run_step("books", self._import_books)
            self._run_step("students", self._import_students)
            self._run_step("borrowings", self._import_borrowings)
            self._run_step("book_status", self._reconcile_book_status, depends_on="borrowings")
            self._run_step("fines", self._generate_fines, depends_on="borrowings")
            self._run_step("finalize", self._finalize)

            self.run.status = RunStatus.COMPLETED
            logger.info("=== MIGRATION COMPLETED ===")

        except Exception as e:
            logger.error(f"Migration failed: {e}")
            self.run.status = RunStatus.ERROR
            if not self.run.errors or self.run.errors[-1]["error"] != str(e):
                self.run.errors.append({
                    "step": self.run.current_step,
                    "error": str(e),
                    "timestamp": datetime.utcnow().isoformat(),
                })
            raise

        finally:
            self.run.completed_at = datetime.utcnow()
            self.run.report = self.run.stats.to_report()
            if self.extractor is not None:
                self.extractor.close()
                self.extractor = None
            self._save_report()

        return self.run

    def _run_init(self, path: Optional[str]) -> None:
        """Open and probe the source. Any failure here is fatal."""
        step = self.run.get_step("init")
        self._start(step, total=1)

        try:
            if not path:
                raise InvalidSourceError(str(path), "no source path configured")
            if not self.store.validate_connection():
                raise StoreError(f"Target store {self.store.target_service} is not reachable")

            self.extractor = SQLiteExtractor(path, batch_size=self.config.batch_size)
            self.batch_importer = BatchImporter(self.extractor, self.config.batch_size)
            self.probe_result = self.prober.probe(self.extractor)
            self.sources = self.prober.select_sources(self.probe_result.mappings)
            self.run.sources = self.sources.to_dict()
            self._check_required()
            self._plan_totals()

        except Exception as e:
            self._fail(step, str(e))
            raise

        step.progress = 1
        step.message = f"{len(self.probe_result.mappings)} tables probed"
        step.details = {"sources": self.run.sources, "skipped_tables": self.probe_result.skipped}
        self._complete(step)

    def _check_required(self) -> None:
        for entity in self.config.required_entities:
            if not self.config.is_required(entity):
                continue
            mapping = self.sources.get(entity)
            if mapping is None:
                raise EmptySourceError(f"No source table found for required entity '{entity}'")
            if mapping.record_count == 0:
                raise EmptySourceError(
                    f"Required table '{mapping.source_table}' for '{entity}' has no rows"
                )

    def _plan_totals(self) -> None:
        """Set step totals up front so overall progress is meaningful."""
        for entity in ("categories", "books", "students"):
            mapping = self.sources.get(entity)
            if self.config.is_enabled(entity) and mapping is not None:
                self.run.get_step(entity).total = mapping.record_count

        if self.config.is_enabled("borrowings"):
            total = 0
            if self.sources.borrowings is not None:
                total += self.sources.borrowings.record_count
            if self.config.import_historical_borrowings and self.sources.historical_borrowings is not None:
                total += self.sources.historical_borrowings.record_count
            self.run.get_step("borrowings").total = total

        self.run.get_step("finalize").total = 1
        self.run.update_progress()

    def _run_step(
        self,
        step_id: str,
        handler: Callable[[MigrationStep], None],
        depends_on: Optional[str] = None
    ) -> None:
        """Run one step, recording errors on the step instead of raising."""
        step = self.run.get_step(step_id)
        logger.info(f"=== STEP: {step_id} ===")

        if step_id in ENTITY_STEPS and not self.config.is_enabled(step_id):
            step.total = 0
            step.progress = 0
            step.message = "disabled"
            self._start(step)
            self._complete(step)
            return

        if depends_on is not None:
            dependency = self.run.get_step(depends_on)
            if dependency.status == StepStatus.ERROR:
                self._start(step)
                self._fail(step, "dependency failed")
                return

        self._start(step)
        try:
            handler(step)
        except Exception as e:
            logger.error(f"Step {step_id} failed: {e}")
            self._fail(step, str(e))
            return

        self._complete(step)

    def _start(self, step: MigrationStep, total: Optional[int] = None) -> None:
        step.status = StepStatus.IN_PROGRESS
        step.started_at = datetime.utcnow()
        if total is not None:
            step.total = total
        self.run.current_step = step.id
        self._notify(step)

    def _complete(self, step: MigrationStep) -> None:
        step.status = StepStatus.COMPLETED
        step.completed_at = datetime.utcnow()
        self._notify(step)

    def _fail(self, step: MigrationStep, message: str) -> None:
        step.status = StepStatus.ERROR
        step.message = message
        step.completed_at = datetime.utcnow()
        self.run.errors.append({
            "step": step.id,
            "error": message,
            "timestamp": step.completed_at.isoformat(),
        })
        self._notify(step)

    def _notify(self, step: MigrationStep) -> None:
        self.run.update_progress()
        if self.step_callback:
            self.step_callback(step)

    def _progress(self, step: MigrationStep, offset: int = 0, total: Optional[int] = None) -> ProgressCallback:
        """Build the per-batch progress callback for a step."""
        def on_progress(done: int, table_total: int) -> None:
            step.progress = offset + done
            step.total = total if total is not None else offset + table_total
            self.run.update_progress()
            if self.progress_callback:
                self.progress_callback(step.progress, step.total)
            if self.step_callback:
                self.step_callback(step)

        return on_progress

    def _record(self, entity: str, step: MigrationStep, result: BatchResult) -> None:
        self.stats.for_entity(entity).add_batch(result)
        self.stats.add_failures(entity, result.failures)
        step.details[result.table] = result.to_dict()

    def _run_importer(self, importer: BaseImporter, step: MigrationStep) -> BatchResult:
        result = importer.run(self.batch_importer, self._progress(step))
        self._record(importer.entity, step, result)
        step.message = f"{result.imported} imported, {result.duplicates} duplicates, {result.errors} errors"
        return result

    def _no_source(self, step: MigrationStep, entity: str) -> None:
        logger.warning(f"No source table for {entity}; nothing to import")
        step.total = 0
        step.message = "no source table"

    def _import_categories(self, step: MigrationStep) -> None:
        mapping = self.sources.categories
        if mapping is None:
            return self._no_source(step, "categories")
        self._run_importer(CategoryImporter(self.store, self.resolver, self.config, mapping), step)

    def _import_books(self, step: MigrationStep) -> None:
        mapping = self.sources.books
        if mapping is None:
            return self._no_source(step, "books")
        if mapping.has_field("category"):
            self.resolver.ensure_mappings("categories")
        self._run_importer(BookImporter(self.store, self.resolver, self.config, mapping), step)

    def _import_students(self, step: MigrationStep) -> None:
        mapping = self.sources.students
        if mapping is None:
            return self._no_source(step, "students")
        self._run_importer(StudentImporter(self.store, self.resolver, self.config, mapping), step)

    def _import_borrowings(self, step: MigrationStep) -> None:
        active = self.sources.borrowings
        historical = self.sources.historical_borrowings if self.config.import_historical_borrowings else None
        if active is None and historical is None:
            return self._no_source(step, "borrowings")

        books = self.resolver.ensure_mappings("books")
        students = self.resolver.ensure_mappings("students")
        logger.info(f"Borrowings will resolve against {books} book and {students} student mappings")
        if books == 0 or students == 0:
            logger.warning("No cached book or student mappings; borrowings rely on persisted lookups")

        for mapping in (active, historical):
            if mapping is None:
                continue
            missing = [f for f in ("student_ref", "book_ref") if not mapping.has_field(f)]
            if missing:
                raise StepError(
                    "borrowings",
                    f"table '{mapping.source_table}' has no column for {', '.join(missing)}",
                )

        stats = self.stats.borrowings
        total = step.total
        offset = 0
        messages = []

        for mapping, is_historical in ((active, False), (historical, True)):
            if mapping is None:
                continue
            importer = BorrowingImporter(self.store, self.resolver, self.config, mapping, historical=is_historical)
            result = importer.run(self.batch_importer, self._progress(step, offset=offset, total=total))
            self._record("borrowings", step, result)

            if is_historical:
                stats.historical += result.imported
            else:
                stats.active += result.imported
            stats.fines += importer.fines_created
            offset += result.processed
            messages.append(f"{mapping.source_table}: {result.imported} imported, {result.errors} errors")

        step.progress = offset
        step.message = "; ".join(messages)

    def _reconcile_book_status(self, step: MigrationStep) -> None:
        result = reconcile_book_status(self.store, self._progress(step))
        step.details = result.to_dict()
        step.message = f"{result.copies_borrowed} copies on loan, {result.books_updated} books updated"

    def _generate_fines(self, step: MigrationStep) -> None:
        generator = FineGenerator(self.store)
        result = generator.generate(self._progress(step))
        self._record("fines", step, result)
        step.message = f"{result.created} fines created, {result.failed} failed"

    def _finalize(self, step: MigrationStep) -> None:
        step.total = 1
        self.run.report = self.stats.to_report()
        step.progress = 1
        step.message = f"{self.run.report['errors']} errors"

    def _save_report(self) -> None:
        """Save the run and its report as JSON under <output_dir>/logs."""
        if not self.config.output_dir:
            return
        logs_dir = Path(self.config.output_dir) / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)
        filepath = logs_dir / f"migration_report_{datetime.utcnow().strftime('%Y%m%d_%H%M%S')}.json"
        with open(filepath, 'w') as f:
            json.dump(self.run.to_dict(), f, indent=2, default=str)
        logger.info(f"Saved migration report to {filepath}")
