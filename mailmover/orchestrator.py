"""Drive a batched transfer of mail items into a destination folder."""

from __future__ import annotations

import logging
import sqlite3
import time
from typing import Callable, Protocol, Sequence

from tqdm import tqdm

from .audit_log import AuditSink
from .batching import plan_batches
from .config import DEFAULT_BATCH_SIZE_BYTES, DEFAULT_WAIT_SECONDS
from .continuation import ContinuationController, continuation_for
from .errors import ConfigurationError, MailMoverError, MoveFailedError, RetryLimitExceeded
from .models import (
    Batch,
    FolderHandle,
    MailItem,
    Moved,
    MoveFailed,
    MoveResult,
    TransferOutcome,
    TransferRecord,
    TransferStatus,
)
from .quota_gate import QuotaGate
from .utils import format_bytes

logger = logging.getLogger(__name__)

# Anything that stops a run once items have started moving.
FATAL_ERRORS = (MailMoverError, OSError, sqlite3.Error)


class MailClient(Protocol):
    def bind(self, folder_name: str, mailbox: str) -> FolderHandle: ...

    def move(self, item: MailItem, destination: FolderHandle) -> MoveResult: ...

    def get_item_count(self, folder: FolderHandle) -> int: ...


class TransferOrchestrator:
    """Move items batch by batch, gating each boundary on quota and confirmation."""

    MAX_THROTTLE_ATTEMPTS = 3
    THROTTLE_MARGIN_MS = 100

    def __init__(
        self,
        client: MailClient,
        *,
        audit_sink: AuditSink | None = None,
        continuation: ContinuationController | None = None,
        acting_user: str = "",
        quota_gate_timeout: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        show_progress: bool = True,
    ) -> None:
        self.client = client
        self.audit_sink = audit_sink
        self.continuation = continuation
        self.acting_user = acting_user
        self.quota_gate_timeout = quota_gate_timeout
        self.sleep = sleep
        self.clock = clock
        self.show_progress = show_progress

    def run(
        self,
        items: Sequence[MailItem],
        target_mailbox: str,
        target_folder: str,
        threshold: int = DEFAULT_BATCH_SIZE_BYTES,
        wait_time: int = DEFAULT_WAIT_SECONDS,
        check_target_empty: bool = True,
        confirm: bool = True,
        log_enabled: bool = False,
    ) -> TransferOutcome:
        """Transfer ``items`` and report how the run ended.

        Nothing is raised for expected failures; the outcome carries the error.
        Items moved before a failure stay moved.
        """
        outcome = TransferOutcome(status=TransferStatus.FAILED)
        try:
            destination = self._validate(items, target_mailbox, target_folder, threshold, log_enabled)
        except FATAL_ERRORS as exc:
            logger.error("Transfer not started: %s", exc)
            outcome.error = exc
            return outcome

        if log_enabled:
            outcome.audit_location = self.audit_sink.location

        batches = plan_batches(items, threshold)
        outcome.batches_total = len(batches)
        logger.info(
            "Moving %s items (%s) to '%s' in %s in %s batch(es)",
            len(items),
            format_bytes(sum(item.size for item in items)),
            target_folder,
            target_mailbox,
            len(batches),
        )

        controller = self.continuation or continuation_for(confirm)
        gate = QuotaGate(
            self.client,
            wait_time,
            timeout=self.quota_gate_timeout,
            sleep=self.sleep,
            clock=self.clock,
        )

        try:
            for index, batch in enumerate(batches, start=1):
                self._move_batch(batch, index, len(batches), destination, log_enabled, outcome)
                outcome.batches_completed = index
                logger.info("Batch %s/%s finished (%s)", index, len(batches), format_bytes(batch.total_size))

                if index == len(batches):
                    break
                if check_target_empty:
                    gate.wait_until_empty(destination)
                if not controller.should_continue(index + 1, len(batches)):
                    outcome.status = TransferStatus.ABORTED
                    logger.info("Transfer stopped by operator after batch %s/%s", index, len(batches))
                    return outcome
        except FATAL_ERRORS as exc:
            logger.error("Transfer failed after %s moved items: %s", outcome.items_moved, exc)
            outcome.error = exc
            if not outcome.items_moved:
                outcome.audit_location = None
            return outcome

        outcome.status = TransferStatus.COMPLETED
        logger.info("Transfer complete: %s items moved", outcome.items_moved)
        return outcome

    def _validate(
        self,
        items: Sequence[MailItem],
        target_mailbox: str,
        target_folder: str,
        threshold: int,
        log_enabled: bool,
    ) -> FolderHandle:
        if threshold <= 0:
            raise ConfigurationError(f"Batch size threshold must be positive, got {threshold}")
        # Graph only moves messages within the mailbox that holds them.
        foreign = sorted(
            {
                item.mailbox
                for item in items
                if item.mailbox and item.mailbox.lower() != target_mailbox.lower()
            }
        )
        if foreign:
            raise ConfigurationError(
                f"Items from {', '.join(foreign)} cannot be moved into mailbox {target_mailbox}"
            )
        destination = self.client.bind(target_folder, target_mailbox)
        if log_enabled:
            if self.audit_sink is None:
                raise ConfigurationError("Audit logging enabled but no audit destination given")
            if self.audit_sink.exists():
                raise ConfigurationError(
                    f"Audit destination {self.audit_sink.location} already exists"
                )
        return destination

    def _move_batch(
        self,
        batch: Batch,
        index: int,
        total: int,
        destination: FolderHandle,
        log_enabled: bool,
        outcome: TransferOutcome,
    ) -> None:
        logger.info("Starting batch %s/%s: %s items", index, total, len(batch))
        with tqdm(
            total=len(batch),
            desc=f"Batch {index}/{total}",
            unit="item",
            disable=not self.show_progress,
        ) as bar:
            for item in batch.items:
                bar.set_postfix_str(item.subject[:40], refresh=False)
                self._move_item(item, destination)
                outcome.items_moved += 1
                bar.update(1)
                if log_enabled:
                    self.audit_sink.append(self._record(item, destination))

    def _move_item(self, item: MailItem, destination: FolderHandle) -> Moved:
        """Attempt the move until it succeeds, fails, or runs out of throttle retries."""
        for attempt in range(1, self.MAX_THROTTLE_ATTEMPTS + 1):
            result = self.client.move(item, destination)
            if isinstance(result, Moved):
                logger.debug("Moved %s (attempt %s)", item.item_id, attempt)
                return result
            if isinstance(result, MoveFailed):
                raise MoveFailedError(item.item_id, result.cause, result.status_code)
            if attempt == self.MAX_THROTTLE_ATTEMPTS:
                raise RetryLimitExceeded(item.item_id, attempt)
            delay = (result.backoff_ms + self.THROTTLE_MARGIN_MS) / 1000
            logger.warning(
                "Throttled moving %s (attempt %s/%s); sleeping %.1fs",
                item.item_id,
                attempt,
                self.MAX_THROTTLE_ATTEMPTS,
                delay,
            )
            self.sleep(delay)

    def _record(self, item: MailItem, destination: FolderHandle) -> TransferRecord:
        return TransferRecord(
            source_mailbox=item.mailbox,
            source_folder_id=item.parent_folder_id,
            target_mailbox=destination.mailbox,
            target_folder_name=destination.display_name,
            target_folder_id=destination.folder_id,
            item_id=item.item_id,
            sender=item.sender,
            subject=item.subject,
            received=item.received,
            size_bytes=item.size,
            acting_user=self.acting_user,
        )
