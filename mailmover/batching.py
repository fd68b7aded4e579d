"""Split an ordered item list into size-bounded batches."""

from __future__ import annotations

from typing import Sequence

from .models import Batch, MailItem


def partition(items: Sequence[MailItem], threshold: int) -> list[Batch]:
    """Group items in order, closing a batch once its size reaches ``threshold``.

    A batch is only closed after the item that pushed it over is added, so
    batches may exceed the threshold and an oversized item ends up alone.
    The final batch may be smaller. ``threshold`` must be positive; callers
    validate it.
    """
    batches: list[Batch] = []
    current: list[MailItem] = []
    running = 0

    for item in items:
        current.append(item)
        running += item.size
        if running >= threshold:
            batches.append(Batch(items=tuple(current), total_size=running))
            current = []
            running = 0

    if current:
        batches.append(Batch(items=tuple(current), total_size=running))
    return batches


def plan_batches(items: Sequence[MailItem], threshold: int) -> list[Batch]:
    """Whole input as a single batch when it fits, otherwise ``partition``."""
    if not items:
        return []
    total = sum(item.size for item in items)
    if total <= threshold:
        return [Batch(items=tuple(items), total_size=total)]
    return partition(items, threshold)
