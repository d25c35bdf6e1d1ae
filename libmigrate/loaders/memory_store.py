"""In-process target store."""

import copy
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from .base import BaseStore

logger = logging.getLogger(__name__)


def _matches(row: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    for field, value in filters.items():
        if row.get(field) != value:
            return False
    return True


class MemoryStore(BaseStore):
    """
    Dict-of-lists store.

    Used for dry runs and tests. Records get UUID string ids and a
    ``created_at`` timestamp; returned rows are copies.
    """

    def __init__(self, target_service: str = "memory", tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        super().__init__(target_service)
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        for table, rows in (tables or {}).items():
            for row in rows:
                self.insert(table, row)

    def _rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def find(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        filters = filters or {}
        result = []
        for row in self._rows(table):
            if _matches(row, filters):
                result.append(copy.deepcopy(row))
                if limit is not None and len(result) >= limit:
                    break
        return result

    def insert(self, table: str, data: Dict[str, Any]) -> Dict[str, Any]:
        row = copy.deepcopy(data)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", datetime.utcnow().isoformat())
        self._rows(table).append(row)
        logger.debug(f"Inserted {table} {row['id']}")
        return copy.deepcopy(row)

    def update_by_id(self, table: str, record_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for row in self._rows(table):
            if row.get("id") == record_id:
                row.update(copy.deepcopy(changes))
                row["updated_at"] = datetime.utcnow().isoformat()
                return copy.deepcopy(row)
        return None

    def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        filters = filters or {}
        return sum(1 for row in self._rows(table) if _matches(row, filters))

    def snapshot(self) -> Dict[str, int]:
        """Get row counts per table."""
        return {table: len(rows) for table, rows in self.tables.items()}
