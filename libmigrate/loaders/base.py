"""Base interface for target record stores."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class BaseStore(ABC):
    """
    Base class for target stores.

    A store holds durable records in named tables. The engine needs
    find-by-field, insert, insert-batch, update-by-id and count; filters
    are equality maps where a None value matches null.
    """

    def __init__(self, target_service: str):
        """
        Initialize the store.

        Args:
            target_service: Name of the target service
        """
        self.target_service = target_service

    @abstractmethod
    def find(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Find records matching all filters.

        Args:
            table: Target table
            filters: Field -> value equality filters
            limit: Maximum records to return

        Returns:
            Matching records
        """
        pass

    def find_one(self, table: str, **filters) -> Optional[Dict[str, Any]]:
        """Find the first record matching the filters."""
        rows = self.find(table, filters, limit=1)
        return rows[0] if rows else None

    @abstractmethod
    def insert(self, table: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a record.

        Args:
            table: Target table
            data: Field values

        Returns:
            The stored record including its generated ``id``
        """
        pass

    def insert_batch(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Insert several records.

        Args:
            table: Target table
            rows: Records to insert

        Returns:
            The stored records
        """
        return [self.insert(table, row) for row in rows]

    @abstractmethod
    def update_by_id(self, table: str, record_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Update fields of one record.

        Args:
            table: Target table
            record_id: ID of the record
            changes: Fields to set

        Returns:
            The updated record, or None if it does not exist
        """
        pass

    def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count records matching the filters."""
        return len(self.find(table, filters))

    def validate_connection(self) -> bool:
        """Validate the connection to the target store."""
        return True
