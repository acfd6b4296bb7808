"""Allowed lifecycle transitions of a lottery."""

from __future__ import annotations

import logging
from typing import Iterable

from .errors import PhaseError
from .models import Lottery, LotteryPhase

logger = logging.getLogger(__name__)

P = LotteryPhase

ALLOWED_TRANSITIONS: dict[LotteryPhase, frozenset[LotteryPhase]] = {
    P.PENDING_SETUP: frozenset({P.CONFIGURED}),
    P.CONFIGURED: frozenset({P.CONFIGURED, P.INITIALIZING, P.INITIALIZED}),
    P.INITIALIZING: frozenset({P.INITIALIZING, P.INITIALIZED}),
    P.INITIALIZED: frozenset({P.RANDOMNESS_REQUESTED}),
    P.RANDOMNESS_REQUESTED: frozenset({P.DRAWN}),
    P.DRAWN: frozenset({P.SETTLING, P.SETTLED}),
    P.SETTLING: frozenset({P.SETTLING, P.SETTLED}),
    P.SETTLED: frozenset(),
}


def can_transition(current: LotteryPhase, target: LotteryPhase) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(lottery: Lottery, target: LotteryPhase) -> None:
    """Move ``lottery`` to ``target`` or raise :class:`PhaseError`."""
    current = lottery.current_phase
    if not can_transition(current, target):
        raise PhaseError(
            f"Lottery {lottery.name!r} cannot move from {current.value} to {target.value}"
        )
    if current is not target:
        logger.info("Lottery %s: %s -> %s", lottery.name, current.value, target.value)
    lottery.phase = target.value


def require_phase(lottery: Lottery, allowed: Iterable[LotteryPhase], message: str) -> None:
    if lottery.current_phase not in set(allowed):
        raise PhaseError(message)


__all__ = ["ALLOWED_TRANSITIONS", "can_transition", "require_phase", "transition"]
