"""Decide whether the run proceeds past a batch boundary."""

from __future__ import annotations

import logging
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class ContinuationController(Protocol):
    def should_continue(self, next_batch: int, total_batches: int) -> bool: ...


class AutoContinue:
    """Always proceed; used for unattended runs."""

    def should_continue(self, next_batch: int, total_batches: int) -> bool:
        logger.debug("Continuing automatically with batch %s/%s", next_batch, total_batches)
        return True


class PromptContinue:
    """Ask the operator before every batch after the first.

    Only ``Y`` and ``N`` are accepted (case-sensitive); anything else prompts again.
    Closed input counts as a decline.
    """

    YES = "Y"
    NO = "N"

    def __init__(
        self,
        input_func: Callable[[str], str] | None = None,
        output_func: Callable[[str], None] | None = None,
    ) -> None:
        self.input_func = input_func or input
        self.output_func = output_func or print

    def should_continue(self, next_batch: int, total_batches: int) -> bool:
        prompt = f"Continue with batch {next_batch}/{total_batches}? [{self.YES}/{self.NO}] "
        while True:
            try:
                answer = self.input_func(prompt).strip()
            except EOFError:
                logger.warning(
                    "No operator input available; stopping before batch %s/%s",
                    next_batch,
                    total_batches,
                )
                return False
            if answer == self.YES:
                return True
            if answer == self.NO:
                logger.info("Operator declined batch %s/%s", next_batch, total_batches)
                return False
            self.output_func(f"Please answer {self.YES} or {self.NO}.")


def continuation_for(confirm: bool) -> ContinuationController:
    return PromptContinue() if confirm else AutoContinue()
