import csv
from dataclasses import replace
from datetime import UTC, datetime

import sqlite_utils

from mailmover.audit_log import AUDIT_COLUMNS, CsvAuditSink, SqliteAuditSink, open_audit_sink, record_row
from mailmover.models import TransferRecord


def _record(item_id="m1", size=1_572_864, subject="Quarterly; report"):
    return TransferRecord(
        source_mailbox="source@contoso.com",
        source_folder_id="src-folder",
        target_mailbox="archive@contoso.com",
        target_folder_name="Archive/2023",
        target_folder_id="dest-folder",
        item_id=item_id,
        sender="cfo@contoso.com",
        subject=subject,
        received=datetime(2024, 3, 1, 12, 30, tzinfo=UTC),
        size_bytes=size,
        acting_user="ops@contoso.com",
    )


def test_record_row_field_order_and_formatting():
    row = record_row(_record())

    assert tuple(row) == AUDIT_COLUMNS
    assert row["size_mb"] == "1.50"
    assert row["received"] == "2024-03-01T12:30:00Z"
    assert row["source_item_id"] == "m1"


def test_record_row_without_received_time():
    record = replace(_record(), received=None)

    assert record_row(record)["received"] == ""


def test_csv_sink_writes_header_once(tmp_path):
    path = tmp_path / "logs" / "audit.csv"
    sink = CsvAuditSink(path)

    assert not sink.exists()
    sink.append(_record("m1"))
    sink.append(_record("m2"))
    assert sink.exists()

    with path.open(newline="", encoding="utf-8") as fh:
        rows = list(csv.reader(fh, delimiter=";"))
    assert rows[0] == list(AUDIT_COLUMNS)
    assert [row[5] for row in rows[1:]] == ["m1", "m2"]
    assert rows[1][7] == "Quarterly; report"


def test_csv_sink_custom_delimiter(tmp_path):
    path = tmp_path / "audit.tsv"
    CsvAuditSink(path, delimiter="\t").append(_record())

    header = path.read_text(encoding="utf-8").splitlines()[0]
    assert header.split("\t") == list(AUDIT_COLUMNS)


def test_sqlite_sink_inserts_rows(tmp_path):
    path = tmp_path / "audit.db"
    sink = SqliteAuditSink(path)

    assert not sink.exists()
    sink.append(_record("m1"))
    sink.append(_record("m2"))

    rows = list(sqlite_utils.Database(str(path))["transfers"].rows)
    assert [row["source_item_id"] for row in rows] == ["m1", "m2"]
    assert rows[0]["size_mb"] == "1.50"


def test_open_audit_sink_picks_by_extension(tmp_path):
    assert isinstance(open_audit_sink(tmp_path / "a.sqlite"), SqliteAuditSink)
    csv_sink = open_audit_sink(tmp_path / "a.csv", delimiter=",")
    assert isinstance(csv_sink, CsvAuditSink)
    assert csv_sink.delimiter == ","
