"""Read-only extractor for legacy SQLite database files."""

import logging
import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, List

from .base import BaseExtractor
from ..errors import InvalidSourceError
from ..models.record import SourceRecord
from ..models.schema import SourceColumn, SourceTable

logger = logging.getLogger(__name__)

SQLITE_MAGIC = b"SQLite format 3\x00"


def quote_identifier(name: str) -> str:
    """Quote a table or column name for SQLite."""
    return '"' + str(name).replace('"', '""') + '"'


def check_header(path: str) -> None:
    """
    Validate the SQLite magic header of a file.

    Raises:
        InvalidSourceError: If the file is missing, short or not SQLite
    """
    if not os.path.isfile(path):
        raise InvalidSourceError(path, "file not found")

    with open(path, "rb") as f:
        header = f.read(len(SQLITE_MAGIC))

    if len(header) < len(SQLITE_MAGIC):
        raise InvalidSourceError(path, "file is too short to be a SQLite database")
    if header != SQLITE_MAGIC:
        raise InvalidSourceError(path, "magic header mismatch")


class SQLiteExtractor(BaseExtractor):
    """
    Extractor for a legacy SQLite file.

    The header is checked before the file is opened, and the connection
    is opened read-only so the source is never modified.
    """

    def __init__(self, path: str, batch_size: int = 100):
        """
        Open a legacy database.

        Args:
            path: Path to the .db / .sqlite file
            batch_size: Default page size

        Raises:
            InvalidSourceError: If the file cannot be opened as SQLite
        """
        super().__init__(batch_size=batch_size)
        self.path = str(path)
        check_header(self.path)

        self._conn = None
        uri = f"{Path(self.path).resolve().as_uri()}?mode=ro"
        try:
            self._conn = sqlite3.connect(uri, uri=True)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
        except sqlite3.Error as e:
            raise InvalidSourceError(self.path, f"open failed: {e}") from e

        logger.info(f"Opened legacy database {self.path}")

    def list_tables(self) -> List[str]:
        rows = self._conn.execute(
            "SELECT name FROM sqlite_master "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        ).fetchall()
        return [row["name"] for row in rows]

    def describe_table(self, table: str) -> SourceTable:
        rows = self._conn.execute(f"PRAGMA table_info({quote_identifier(table)})").fetchall()
        columns = [
            SourceColumn(
                name=row["name"],
                declared_type=row["type"] or "",
                nullable=not row["notnull"],
                is_primary_key=bool(row["pk"]),
            )
            for row in rows
        ]
        return SourceTable(name=table, columns=columns, row_count=self.count(table))

    def count(self, table: str) -> int:
        row = self._conn.execute(f"SELECT COUNT(*) FROM {quote_identifier(table)}").fetchone()
        return int(row[0])

    def extract_batch(self, table: str, offset: int = 0, limit: int = 100) -> List[SourceRecord]:
        rows = self._conn.execute(
            f"SELECT * FROM {quote_identifier(table)} LIMIT ? OFFSET ?",
            (limit, offset),
        ).fetchall()

        records = []
        for i, row in enumerate(rows):
            row_number = offset + i + 1
            data: Dict[str, Any] = {key: row[key] for key in row.keys()}
            records.append(SourceRecord(
                id=str(row_number),
                table=table,
                data=data,
                row_number=row_number,
            ))

        logger.debug(f"Read {len(records)} rows from {table} at offset {offset}")
        return records

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
