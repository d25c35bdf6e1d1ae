"""In-process storage for migration runs started through the API."""

import threading
from datetime import datetime
from typing import Dict, List, Optional

from ..loaders.base import BaseStore
from ..loaders.memory_store import MemoryStore
from ..models.migration import MigrationConfig, MigrationRun, RunStatus
from ..services.resolver import EntityResolver
from .models import MigrationResponse


class MigrationStorage:
    """
    Keeps migration runs and their configs for the lifetime of the process.

    Runs against the memory target share one MemoryStore and resolver so
    repeated runs see each other's records.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._runs: Dict[str, MigrationRun] = {}
        self._configs: Dict[str, MigrationConfig] = {}
        self._target_locks: Dict[str, threading.Lock] = {}
        self.memory_store = MemoryStore()
        self.memory_resolver = EntityResolver(self.memory_store)

    def create(self, config: MigrationConfig) -> MigrationRun:
        """Register a pending run for a config."""
        run = MigrationRun(name=config.name, source_path=config.source_path)
        with self._lock:
            self._runs[run.id] = run
            self._configs[run.id] = config
        return run

    def save(self, run: MigrationRun) -> None:
        with self._lock:
            self._runs[run.id] = run

    def fail(self, run_id: str, message: str) -> None:
        """Mark a run that could not start as failed."""
        with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                return
            run.status = RunStatus.ERROR
            run.completed_at = datetime.utcnow()
            run.errors.append({
                "step": None,
                "error": message,
                "timestamp": run.completed_at.isoformat(),
            })

    def get(self, run_id: str) -> Optional[MigrationRun]:
        with self._lock:
            return self._runs.get(run_id)

    def get_config(self, run_id: str) -> Optional[MigrationConfig]:
        with self._lock:
            return self._configs.get(run_id)

    def list_all(self) -> List[MigrationRun]:
        with self._lock:
            return sorted(self._runs.values(), key=lambda r: r.created_at, reverse=True)

    def store_for(self, config: MigrationConfig) -> Optional[BaseStore]:
        """The shared store for memory targets; None lets the orchestrator build one."""
        if (config.target or "memory").lower() == "memory":
            return self.memory_store
        return None

    def target_lock(self, config: MigrationConfig) -> threading.Lock:
        """
        Lock serializing runs that write to the same target.

        Importers check for existing records before inserting, so two runs
        against one target must not interleave.
        """
        target = (config.target or "memory").lower()
        key = target if target == "memory" else f"{target}:{config.target_url}"
        with self._lock:
            return self._target_locks.setdefault(key, threading.Lock())

    def clear(self) -> None:
        """Forget every run and reset the memory target."""
        with self._lock:
            self._runs.clear()
            self._configs.clear()
            self.memory_store = MemoryStore()
            self.memory_resolver = EntityResolver(self.memory_store)


def to_response(run: MigrationRun) -> MigrationResponse:
    """Convert a run to its API response."""
    return MigrationResponse(**run.to_dict())


migration_storage = MigrationStorage()
