"""Base extractor interface."""

from abc import ABC, abstractmethod
from typing import Iterator, List, Optional
import logging

from ..models.record import SourceRecord
from ..models.schema import SourceTable

logger = logging.getLogger(__name__)


class BaseExtractor(ABC):
    """
    Base class for legacy source handles.

    Extractors only ever read: they list tables, describe columns,
    count rows and page through rows as SourceRecord objects.
    """

    def __init__(self, batch_size: int = 100):
        """
        Initialize the extractor.

        Args:
            batch_size: Default page size for stream()
        """
        self.batch_size = batch_size

    @abstractmethod
    def list_tables(self) -> List[str]:
        """
        List user tables in the source.

        Returns:
            Table names, system tables excluded
        """
        pass

    @abstractmethod
    def describe_table(self, table: str) -> SourceTable:
        """
        Introspect the columns and row count of a table.

        Args:
            table: Table name

        Returns:
            SourceTable snapshot
        """
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count rows in a table."""
        pass

    @abstractmethod
    def extract_batch(self, table: str, offset: int = 0, limit: int = 100) -> List[SourceRecord]:
        """
        Extract a page of records.

        Args:
            table: Table name
            offset: Starting offset
            limit: Maximum records to extract

        Returns:
            List of extracted SourceRecord objects
        """
        pass

    def stream(self, table: str, batch_size: Optional[int] = None) -> Iterator[List[SourceRecord]]:
        """
        Stream records in batches.

        Args:
            table: Table name
            batch_size: Size of each batch (defaults to self.batch_size)

        Yields:
            Batches of SourceRecord objects
        """
        batch_size = batch_size or self.batch_size
        offset = 0

        while True:
            batch = self.extract_batch(table, offset=offset, limit=batch_size)
            if not batch:
                break

            yield batch
            offset += len(batch)

            if len(batch) < batch_size:
                break

    def close(self) -> None:
        """Release the underlying handle."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
