"""Append-only audit trail of moved items."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Protocol

import sqlite_utils

from .config import DEFAULT_AUDIT_DELIMITER
from .models import TransferRecord
from .utils import isoformat_utc, size_in_mb

AUDIT_COLUMNS = (
    "source_mailbox",
    "source_folder_id",
    "target_mailbox",
    "target_folder_name",
    "target_folder_id",
    "source_item_id",
    "sender",
    "subject",
    "received",
    "size_mb",
    "acting_user",
)

SQLITE_SUFFIXES = {".db", ".sqlite", ".sqlite3"}


def record_row(record: TransferRecord) -> dict[str, str]:
    """Flatten a record into audit columns, in order."""
    return {
        "source_mailbox": record.source_mailbox,
        "source_folder_id": record.source_folder_id,
        "target_mailbox": record.target_mailbox,
        "target_folder_name": record.target_folder_name,
        "target_folder_id": record.target_folder_id,
        "source_item_id": record.item_id,
        "sender": record.sender,
        "subject": record.subject,
        "received": isoformat_utc(record.received) if record.received else "",
        "size_mb": size_in_mb(record.size_bytes),
        "acting_user": record.acting_user,
    }


class AuditSink(Protocol):
    location: str

    def exists(self) -> bool: ...

    def append(self, record: TransferRecord) -> None: ...


class CsvAuditSink:
    """Delimited text file, header written with the first record."""

    def __init__(self, path: Path, delimiter: str = DEFAULT_AUDIT_DELIMITER) -> None:
        self.path = Path(path)
        self.delimiter = delimiter
        self.location = str(self.path.resolve())

    def exists(self) -> bool:
        return self.path.exists()

    def append(self, record: TransferRecord) -> None:
        write_header = not self.path.exists() or self.path.stat().st_size == 0
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", newline="", encoding="utf-8") as fh:
            writer = csv.DictWriter(fh, fieldnames=AUDIT_COLUMNS, delimiter=self.delimiter)
            if write_header:
                writer.writeheader()
            writer.writerow(record_row(record))


class SqliteAuditSink:
    """Store audit records in a SQLite table."""

    TABLE = "transfers"

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.location = str(self.db_path.resolve())
        self._db: sqlite_utils.Database | None = None

    def exists(self) -> bool:
        return self.db_path.exists()

    def append(self, record: TransferRecord) -> None:
        self._database()[self.TABLE].insert(record_row(record))

    def _database(self) -> sqlite_utils.Database:
        if self._db is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._db = sqlite_utils.Database(str(self.db_path))
            self._db[self.TABLE].create(
                {column: str for column in AUDIT_COLUMNS},
                if_not_exists=True,
            )
        return self._db


def open_audit_sink(path: Path, delimiter: str = DEFAULT_AUDIT_DELIMITER) -> AuditSink:
    """Pick the sink from the file extension; anything not SQLite is delimited text."""
    path = Path(path)
    if path.suffix.lower() in SQLITE_SUFFIXES:
        return SqliteAuditSink(path)
    return CsvAuditSink(path, delimiter=delimiter)
