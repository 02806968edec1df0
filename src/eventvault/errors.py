"""
Error taxonomy for vault operations.

    AccessDenied      re-derive permissions, never blind-retry
    NotFound          terminal, the caller navigates away
    TransientNetwork  retryable, or triggers a rollback
    PartialFailure    some items of a batch failed; the batch rolls back
    Conflict          duplicate insert (membership race); callers swallow it
"""

from __future__ import annotations

from typing import Iterable, Optional


class VaultError(Exception):
    """Base class for every error raised by a vault collaborator.

    Args:
        message: Human-readable description.
        status: Optional remote status code (HTTP-like).
    """

    def __init__(self, message: str = "", status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class AccessDenied(VaultError):
    """The current actor lacks the permission for this operation."""


class NotFound(VaultError):
    """The requested record does not exist (or is not visible)."""


class TransientNetwork(VaultError):
    """A remote call failed in a way that may succeed if repeated."""


class PartialFailure(VaultError):
    """One or more items in a batch failed."""

    def __init__(
        self,
        message: str = "",
        failed_ids: Iterable[str] = (),
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message, status=status)
        self.failed_ids = list(failed_ids)


class Conflict(VaultError):
    """A unique-key insert collided with an existing row."""
