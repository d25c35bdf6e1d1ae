"""Legacy id to target id resolution."""

import json
import re
import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from ..loaders.base import BaseStore
from .transformer import normalize_legacy_id, numeric_id, singular

logger = logging.getLogger(__name__)

ANNOTATION_FIELD = "notes"

# entity -> (table, legacy column, column holding the target id)
PERSISTED_LOOKUPS: Dict[str, Tuple[str, str, str]] = {
    "books": ("book_copies", "legacy_book_id", "book_id"),
    "students": ("students", "legacy_student_id", "id"),
}

# entity -> table whose rows carry the notes annotation
ANNOTATED_TABLES: Dict[str, str] = {
    "books": "books",
    "students": "students",
    "categories": "categories",
}


def _camel(entity: str) -> str:
    name = singular(entity)
    return name[:1].upper() + name[1:]


def annotation_patterns(entity: str) -> List["re.Pattern"]:
    """Regexes for recovering a legacy id from free text, most specific first."""
    name = re.escape(singular(entity))
    return [
        re.compile(rf"(?:original|legacy)[_\s]*(?:{name}[_\s]*)?id[\s:#=]*(\d+)", re.IGNORECASE),
        re.compile(rf"{name}[_\s]*id[\s:#=]*(\d+)", re.IGNORECASE),
        re.compile(r"id[\s:#=]*(\d+)", re.IGNORECASE),
        re.compile(r"(\d+)"),
    ]


def extract_legacy_id(notes: Any, entity: str) -> Optional[str]:
    """
    Recover the legacy id embedded in a target record's notes.

    JSON objects are read first (``original_<entity>_id``,
    ``original<Entity>Id``, ``legacy_id``); otherwise the text is matched
    against annotation_patterns() and the first hit wins.
    """
    if notes is None:
        return None
    text = str(notes).strip()
    if not text:
        return None

    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None

    if isinstance(parsed, dict):
        for key in (f"original_{singular(entity)}_id", f"original{_camel(entity)}Id", "legacy_id"):
            legacy_id = normalize_legacy_id(parsed.get(key))
            if legacy_id is not None:
                return legacy_id

    for pattern in annotation_patterns(entity):
        match = pattern.search(text)
        if match:
            return match.group(1)

    return None


class EntityResolver:
    """
    Maps legacy ids to target ids, one mapping per entity type.

    Supports:
    - Session cache filled as records are imported
    - Persisted lookups through first-class legacy columns
    - Name or id lookups for references such as book categories
    - Cold-start reconstruction from the notes annotation of records
      already in the target store
    """

    def __init__(self, store: BaseStore):
        """
        Initialize the resolver.

        Args:
            store: Target store used for persisted lookups and rebuilds
        """
        self.store = store
        self._cache: Dict[str, Dict[str, str]] = {}
        self._misses: Dict[str, Set[str]] = {}
        self._rebuilt: Set[str] = set()

    def _entity_cache(self, entity: str) -> Dict[str, str]:
        return self._cache.setdefault(entity, {})

    def register(self, entity: str, legacy_id: Any, target_id: Any) -> None:
        """
        Record a legacy id -> target id mapping.

        Args:
            entity: Entity type (books, students, categories, ...)
            legacy_id: Id in the legacy source
            target_id: Id in the target store
        """
        key = normalize_legacy_id(legacy_id)
        if key is None or target_id is None:
            return
        self._entity_cache(entity)[key] = str(target_id)
        self._misses.get(entity, set()).discard(key)

    def resolve(self, entity: str, legacy_id: Any) -> Optional[str]:
        """
        Resolve a legacy id to a target id.

        Looks in the session cache, then in the store's legacy column for
        entities that have one. A miss is remembered until the id is
        registered, so repeated lookups never hit the store twice.

        Returns:
            Target id, or None if the id cannot be resolved
        """
        key = normalize_legacy_id(legacy_id)
        if key is None:
            return None

        cache = self._entity_cache(entity)
        if key in cache:
            return cache[key]

        misses = self._misses.setdefault(entity, set())
        if key in misses:
            return None

        target_id = self._persisted_lookup(entity, key)
        if target_id is None:
            misses.add(key)
            return None

        cache[key] = target_id
        return target_id

    def _persisted_lookup(self, entity: str, key: str) -> Optional[str]:
        lookup = PERSISTED_LOOKUPS.get(entity)
        if lookup is None:
            return None

        table, legacy_column, target_column = lookup
        number = numeric_id(key)
        row = self.store.find_one(table, **{legacy_column: number if number is not None else key})
        if row is None or row.get(target_column) is None:
            return None

        logger.debug(f"Resolved {entity} {key} from {table}.{legacy_column}")
        return str(row[target_column])

    def resolve_reference(
        self,
        entity: str,
        value: Any,
        fields: Iterable[str] = ("name",)
    ) -> Optional[str]:
        """
        Resolve a reference that may be a legacy id or a natural key.

        Tries the session cache, then ``find_one`` on each field in order;
        an ``id`` field is only tried for numeric values.

        Args:
            entity: Entity type, also the target table name
            value: Reference value from the source row
            fields: Target fields to look up by, in order

        Returns:
            Target id, or None
        """
        key = normalize_legacy_id(value)
        if key is None:
            return None

        cache = self._entity_cache(entity)
        if key in cache:
            return cache[key]

        number = numeric_id(key)
        for field_name in fields:
            if field_name == "id":
                if number is None:
                    continue
                row = self.store.find_one(entity, id=number)
            else:
                row = self.store.find_one(entity, **{field_name: key})
            if row is not None:
                cache[key] = str(row["id"])
                return cache[key]

        return None

    def has_mappings(self, entity: str) -> bool:
        return bool(self._cache.get(entity))

    def mapping_count(self, entity: str) -> int:
        return len(self._cache.get(entity, {}))

    def get_mappings(self, entity: str) -> Dict[str, str]:
        """Get a copy of the mappings for an entity type."""
        return dict(self._cache.get(entity, {}))

    def ensure_mappings(self, entity: str) -> int:
        """
        Rebuild mappings for an entity if the session cache is empty.

        Returns:
            Number of mappings available afterwards
        """
        if not self.has_mappings(entity) and entity not in self._rebuilt:
            self.rebuild(entity)
        return self.mapping_count(entity)

    def rebuild(self, entity: str) -> int:
        """
        Reconstruct mappings from the notes annotation of stored records.

        Runs once per entity type per resolver. A legacy id already mapped
        to another target, or a target already claimed by another legacy
        id, is logged and skipped.

        Returns:
            Number of mappings added
        """
        if entity in self._rebuilt:
            return 0
        self._rebuilt.add(entity)

        table = ANNOTATED_TABLES.get(entity)
        if table is None:
            logger.warning(f"No annotated table for {entity}; nothing to rebuild")
            return 0

        cache = self._entity_cache(entity)
        claimed = {target: legacy for legacy, target in cache.items()}
        rows = self.store.find(table)
        added = 0

        logger.info(f"Rebuilding {entity} mappings from {len(rows)} stored records")

        for row in rows:
            legacy_id = extract_legacy_id(row.get(ANNOTATION_FIELD), entity)
            if legacy_id is None or row.get("id") is None:
                continue

            target_id = str(row["id"])
            existing = cache.get(legacy_id)
            if existing is not None:
                if existing != target_id:
                    logger.warning(
                        f"Conflicting {entity} mapping for legacy id {legacy_id}: "
                        f"{existing} kept, {target_id} skipped"
                    )
                continue

            owner = claimed.get(target_id)
            if owner is not None and owner != legacy_id:
                logger.warning(
                    f"{entity} {target_id} already mapped from legacy id {owner}; "
                    f"skipping legacy id {legacy_id}"
                )
                continue

            cache[legacy_id] = target_id
            claimed[target_id] = legacy_id
            self._misses.get(entity, set()).discard(legacy_id)
            added += 1

        logger.info(f"Rebuilt {added} {entity} mappings")
        return added
