"""Block between batches until the destination folder has drained."""

from __future__ import annotations

import logging
import time
from typing import Callable, Protocol

from .errors import QuotaGateTimeout
from .models import FolderHandle

logger = logging.getLogger(__name__)


class ItemCounter(Protocol):
    def get_item_count(self, folder: FolderHandle) -> int: ...


class QuotaGate:
    """Poll a folder's item count until it reaches zero.

    With ``timeout=None`` the gate waits indefinitely.
    """

    def __init__(
        self,
        client: ItemCounter,
        wait_time: float,
        timeout: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.wait_time = wait_time
        self.timeout = timeout
        self.sleep = sleep
        self.clock = clock

    def wait_until_empty(self, folder: FolderHandle) -> int:
        """Return the number of waits performed."""
        started = self.clock()
        waits = 0
        remaining = self.client.get_item_count(folder)
        while remaining > 0:
            elapsed = self.clock() - started
            if self.timeout is not None and elapsed >= self.timeout:
                raise QuotaGateTimeout(folder.display_name, remaining, elapsed)
            logger.info(
                "Target folder '%s' still holds %s items; checking again in %ss",
                folder.display_name,
                remaining,
                self.wait_time,
            )
            self.sleep(self.wait_time)
            waits += 1
            remaining = self.client.get_item_count(folder)
        logger.debug("Target folder '%s' is empty after %s waits", folder.display_name, waits)
        return waits
