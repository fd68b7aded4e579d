"""Typed containers shared across the transfer pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Union


@dataclass(frozen=True)
class FolderHandle:
    """Opaque reference to a bound remote folder."""

    folder_id: str
    display_name: str
    mailbox: str


@dataclass(frozen=True)
class MailItem:
    """Essential metadata about a message selected for transfer."""

    item_id: str
    size: int
    sender: str
    subject: str
    received: datetime | None
    parent_folder_id: str
    mailbox: str = ""


@dataclass(frozen=True)
class Batch:
    """Ordered group of items moved before the next checkpoint."""

    items: tuple[MailItem, ...]
    total_size: int

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class TransferRecord:
    """Audit entry for one successfully moved item."""

    source_mailbox: str
    source_folder_id: str
    target_mailbox: str
    target_folder_name: str
    target_folder_id: str
    item_id: str
    sender: str
    subject: str
    received: datetime | None
    size_bytes: int
    acting_user: str


# Results of a single move attempt.


@dataclass(frozen=True)
class Moved:
    new_item_id: str | None = None


@dataclass(frozen=True)
class Throttled:
    backoff_ms: int


@dataclass(frozen=True)
class MoveFailed:
    cause: str
    status_code: int | None = None


MoveResult = Union[Moved, Throttled, MoveFailed]


class TransferStatus(str, Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass
class TransferOutcome:
    """Terminal result of an orchestrator run."""

    status: TransferStatus
    batches_total: int = 0
    batches_completed: int = 0
    items_moved: int = 0
    audit_location: str | None = None
    error: BaseException | None = field(default=None, repr=False)

    @property
    def completed(self) -> bool:
        return self.status is TransferStatus.COMPLETED

    @property
    def aborted(self) -> bool:
        return self.status is TransferStatus.ABORTED

    @property
    def failed(self) -> bool:
        return self.status is TransferStatus.FAILED
