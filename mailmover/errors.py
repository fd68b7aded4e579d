"""Exceptions raised by the mail mover."""

from __future__ import annotations


class MailMoverError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(MailMoverError):
    """The run cannot start: destination or audit settings are unusable."""


class FolderNotFoundError(ConfigurationError):
    def __init__(self, folder_name: str, mailbox: str, reason: str = "not found") -> None:
        super().__init__(f"Folder '{folder_name}' in mailbox '{mailbox}': {reason}")
        self.folder_name = folder_name
        self.mailbox = mailbox


class AuthenticationError(MailMoverError):
    """No Graph access token could be obtained."""


class RetryLimitExceeded(MailMoverError):
    def __init__(self, item_id: str, attempts: int) -> None:
        super().__init__(f"Item {item_id} still throttled after {attempts} attempts")
        self.item_id = item_id
        self.attempts = attempts


class MoveFailedError(MailMoverError):
    def __init__(self, item_id: str, cause: str, status_code: int | None = None) -> None:
        detail = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"Moving item {item_id} failed{detail}: {cause}")
        self.item_id = item_id
        self.status_code = status_code


class QuotaGateTimeout(MailMoverError):
    def __init__(self, folder_name: str, remaining: int, waited: float) -> None:
        super().__init__(
            f"Folder '{folder_name}' still holds {remaining} items after waiting {waited:.0f}s"
        )
        self.remaining = remaining
