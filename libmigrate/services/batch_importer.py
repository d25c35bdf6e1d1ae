"""Generic batched import loop."""

import logging
from datetime import datetime
from typing import Callable, Optional

from ..extractors.base import BaseExtractor
from ..models.record import BatchResult, Outcome, SourceRecord

logger = logging.getLogger(__name__)

RecordHandler = Callable[[SourceRecord], Outcome]
ProgressCallback = Callable[[int, int], None]


class BatchImporter:
    """
    Pages through a source table and hands each record to a handler.

    A handler returns an Outcome; an exception raised by a handler is
    turned into a failed Outcome for that record and the loop moves on.
    Errors reading a page are not caught.
    """

    def __init__(self, extractor: BaseExtractor, batch_size: int = 100):
        """
        Initialize the importer.

        Args:
            extractor: Open source handle
            batch_size: Records per page
        """
        self.extractor = extractor
        self.batch_size = max(1, int(batch_size))

    def run(
        self,
        table: str,
        handler: RecordHandler,
        on_progress: Optional[ProgressCallback] = None
    ) -> BatchResult:
        """
        Import every record of a table.

        Args:
            table: Source table name
            handler: Transform-and-insert function for one record
            on_progress: Called with (records_done, total_rows) after each page

        Returns:
            BatchResult with counts and isolated failures
        """
        result = BatchResult(table=table)
        result.started_at = datetime.utcnow()
        result.total = self.extractor.count(table)

        logger.info(f"Importing {result.total} records from {table} in batches of {self.batch_size}")

        for batch in self.extractor.stream(table, self.batch_size):
            for record in batch:
                outcome = self._handle(handler, record)
                result.record(record, outcome)

            if on_progress:
                on_progress(result.processed, result.total)

        if result.processed == 0 and on_progress:
            on_progress(0, result.total)

        result.completed_at = datetime.utcnow()
        logger.info(
            f"Finished {table}: {result.imported} imported, {result.duplicates} duplicates, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
        return result

    def _handle(self, handler: RecordHandler, record: SourceRecord) -> Outcome:
        try:
            outcome = handler(record)
        except Exception as e:
            logger.error(f"Failed to import {record.table} row {record.row_number}: {e}")
            return Outcome.failed(str(e))

        if outcome is None:
            return Outcome.failed("handler returned no outcome")
        if outcome.is_error:
            logger.warning(
                f"{record.table} row {record.row_number} {outcome.status.value}: "
                f"{outcome.reason} {outcome.message or ''}".rstrip()
            )
        return outcome
