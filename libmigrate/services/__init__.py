"""Service layer for the migration engine."""

from .schema_prober import SchemaProber, ProbeResult, SourceSelection, DEFAULT_RULES
from .resolver import EntityResolver, extract_legacy_id
from .batch_importer import BatchImporter

__all__ = [
    "SchemaProber",
    "ProbeResult",
    "SourceSelection",
    "DEFAULT_RULES",
    "EntityResolver",
    "extract_legacy_id",
    "BatchImporter",
]
