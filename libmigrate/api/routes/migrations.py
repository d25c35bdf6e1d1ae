"""Migration probe and execution endpoints."""

import logging
from fastapi import APIRouter, HTTPException, BackgroundTasks

from ..models import (
    MigrationCreate,
    MigrationListResponse,
    MigrationResponse,
    ProbeRequest,
    ProbeResponse,
)
from ..storage import migration_storage, to_response
from ...errors import EmptySourceError, InvalidSourceError, MigrationError
from ...extractors.sqlite_extractor import SQLiteExtractor
from ...orchestrator import MigrationOrchestrator
from ...services.schema_prober import SchemaProber

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/probe", response_model=ProbeResponse)
def probe_source(request: ProbeRequest):
    """Probe a legacy database and show how its tables map to entities."""
    prober = SchemaProber()
    try:
        with SQLiteExtractor(request.source_path) as extractor:
            result = prober.probe(extractor)
    except InvalidSourceError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except EmptySourceError as e:
        raise HTTPException(status_code=422, detail=str(e))

    data = result.to_dict()
    return ProbeResponse(
        tables=data["tables"],
        mappings=data["mappings"],
        skipped=data["skipped"],
        sources=prober.select_sources(result.mappings).to_dict(),
    )


@router.post("", response_model=MigrationResponse)
def create_migration(data: MigrationCreate, background_tasks: BackgroundTasks):
    """Create a migration run and start it in the background."""
    try:
        config = data.to_config()
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    run = migration_storage.create(config)
    background_tasks.add_task(run_migration_task, run.id)
    return to_response(run)


@router.get("", response_model=MigrationListResponse)
def list_migrations():
    """List all migrations."""
    migrations = [to_response(r) for r in migration_storage.list_all()]
    return MigrationListResponse(migrations=migrations, total=len(migrations))


@router.get("/{migration_id}", response_model=MigrationResponse)
def get_migration(migration_id: str):
    """Get a specific migration, including step progress and report."""
    run = migration_storage.get(migration_id)
    if not run:
        raise HTTPException(status_code=404, detail="Migration not found")
    return to_response(run)


def run_migration_task(migration_id: str):
    """Background task that runs a stored migration."""
    config = migration_storage.get_config(migration_id)
    if config is None:
        return

    with migration_storage.target_lock(config):
        store = migration_storage.store_for(config)
        resolver = migration_storage.memory_resolver if store is not None else None

        try:
            orchestrator = MigrationOrchestrator(config, store=store, resolver=resolver)
        except ValueError as e:
            logger.error(f"Migration {migration_id} could not start: {e}")
            migration_storage.fail(migration_id, str(e))
            return

        orchestrator.step_callback = lambda step: migration_storage.save(orchestrator.run)

        try:
            orchestrator.run_migration(run_id=migration_id)
        except MigrationError as e:
            logger.error(f"Migration {migration_id} failed: {e}")
        finally:
            if orchestrator.run is not None:
                migration_storage.save(orchestrator.run)
