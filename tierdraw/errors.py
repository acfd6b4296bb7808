"""Exception hierarchy raised by the lottery engine."""

from __future__ import annotations

from typing import Optional


class LotteryError(Exception):
    """Base class for every error raised by :mod:`tierdraw`."""


class ValidationError(LotteryError, ValueError):
    """Configuration supplied by the caller violates a setup rule."""


class PhaseError(LotteryError, RuntimeError):
    """Operation invoked outside of its legal lifecycle state or schedule."""


class AuthorizationError(LotteryError, PermissionError):
    """Caller lacks the privilege required for an operation."""

    def __init__(self, caller: str, action: str) -> None:
        super().__init__(f"account {caller} is missing role {action}")
        self.caller = caller
        self.action = action


class ResourceNotFound(LotteryError, LookupError):
    """Ticket id, campaign or randomness request is unknown."""


class InvariantViolation(LotteryError, RuntimeError):
    """Population cannot satisfy the configured number of winners."""


class PayoutError(LotteryError, RuntimeError):
    """Token transfer primitive reported a failure.

    ``transferred`` maps each owner paid earlier in the same call to the
    amount that already left escrow.
    """

    def __init__(self, message: str, transferred: Optional[dict[str, int]] = None) -> None:
        super().__init__(message)
        self.transferred = dict(transferred or {})


__all__ = [
    "LotteryError",
    "ValidationError",
    "PhaseError",
    "AuthorizationError",
    "ResourceNotFound",
    "InvariantViolation",
    "PayoutError",
]
