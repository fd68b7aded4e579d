"""Utility helpers shared across modules."""

from __future__ import annotations

from datetime import UTC, datetime

BYTES_PER_MB = 1024 * 1024


def parse_graph_datetime(value: str) -> datetime:
    """Convert Graph ISO strings (with trailing Z) into aware UTC datetimes."""
    return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Force a datetime into UTC without altering instant."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def isoformat_utc(dt: datetime) -> str:
    """Return an ISO string that Graph accepts."""
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def size_in_mb(size_bytes: int) -> str:
    """Render a byte count as megabytes with two decimals."""
    return f"{size_bytes / BYTES_PER_MB:.2f}"


def format_bytes(size_bytes: int) -> str:
    """Human readable size for log lines."""
    value = float(size_bytes)
    for unit in ("B", "KiB", "MiB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GiB"
