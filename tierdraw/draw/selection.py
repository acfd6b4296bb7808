"""Deterministic winner sampling without replacement.

Every candidate is derived from ``sha256(salt ‖ tier_index ‖ counter)`` where
each field is a 32-byte big-endian word. The counter grows by one per hash
evaluation, so the whole draw is a pure function of the salt, the tier layout
and the ticket ranges: replaying it always yields the same winners in the
same order.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

logger = logging.getLogger(__name__)

WORD_BYTES = 32

# Consecutive collisions tolerated before probing linearly for a free id.
MAX_REJECTIONS = 64


def selection_hash(salt: int, tier_index: int, counter: int) -> int:
    """Return the 256-bit selection hash for one counter value."""
    if salt <= 0:
        raise ValueError("salt must be a positive integer")
    if tier_index < 0 or counter < 0:
        raise ValueError("tier_index and counter must be non-negative")
    payload = b"".join(
        value.to_bytes(WORD_BYTES, "big") for value in (salt, tier_index, counter)
    )
    return int.from_bytes(hashlib.sha256(payload).digest(), "big")


def candidate_ticket_id(
    salt: int, tier_index: int, counter: int, span: int, offset: int = 0
) -> int:
    """Map one selection hash into ``[offset, offset + span)``."""
    if span <= 0:
        raise ValueError("span must be positive")
    return offset + selection_hash(salt, tier_index, counter) % span


@dataclass(frozen=True)
class SelectionWindow:
    """Contiguous block of ticket ids and how many winners to draw from it.

    Attributes
    ----------
    offset : int
        First lottery ticket id of the block.
    span : int
        Number of ticket ids in the block.
    quota : int
        Winners requested from the block before capping at its free tickets.
    organization_position : Optional[int]
        Organization the block belongs to, when the tier fills organizations.
    """

    offset: int
    span: int
    quota: int
    organization_position: Optional[int] = None

    def contains(self, ticket_id: int) -> bool:
        return self.offset <= ticket_id < self.offset + self.span


@dataclass
class SelectionProgress:
    """Resumable state of one tier's selection."""

    counter: int = 0
    window_position: int = 0
    found: list[int] = field(default_factory=list)
    complete: bool = False


class WinnerSelector:
    """Draw the winners of one tier from a sequence of windows.

    Windows are filled in order. A window's quota is capped at the number of
    its tickets that are neither already drawn in this tier nor in ``excluded``
    (winners of earlier tiers), which guarantees termination.
    """

    def __init__(
        self,
        salt: int,
        tier_index: int,
        windows: Sequence[SelectionWindow],
        excluded: Iterable[int] = (),
    ) -> None:
        if salt <= 0:
            raise ValueError("salt must be a positive integer")
        self.salt = salt
        self.tier_index = tier_index
        self.windows = list(windows)
        self.excluded = frozenset(excluded)
        self._targets = [self._effective_quota(window) for window in self.windows]

    def _effective_quota(self, window: SelectionWindow) -> int:
        if window.span <= 0 or window.quota <= 0:
            return 0
        taken = sum(1 for ticket_id in self.excluded if window.contains(ticket_id))
        return min(window.quota, window.span - taken)

    @property
    def targets(self) -> list[int]:
        """Winners that will actually be drawn from each window."""
        return list(self._targets)

    @property
    def total_target(self) -> int:
        return sum(self._targets)

    def advance(
        self, progress: SelectionProgress, max_attempts: Optional[int] = None
    ) -> SelectionProgress:
        """Continue ``progress`` and return the new state.

        ``max_attempts`` bounds the number of hash evaluations of this call.
        The bound is only checked between winners, so a resumed selection
        replays exactly the same sequence as an uninterrupted one.
        """
        if max_attempts is not None and max_attempts < 0:
            raise ValueError("max_attempts must be non-negative")

        counter = progress.counter
        position = progress.window_position
        found = list(progress.found)
        taken = set(self.excluded)
        taken.update(found)
        attempts = 0

        while position < len(self.windows):
            window = self.windows[position]
            have = sum(1 for ticket_id in found if window.contains(ticket_id))
            if have >= self._targets[position]:
                position += 1
                continue
            if max_attempts is not None and attempts >= max_attempts:
                break

            winner, used = self._draw_one(window, counter, taken)
            counter += used
            attempts += used
            found.append(winner)
            taken.add(winner)

        complete = position >= len(self.windows)
        if complete:
            logger.debug(
                "Tier %d selection complete: %d winners after %d hashes",
                self.tier_index,
                len(found),
                counter,
            )
        return SelectionProgress(
            counter=counter, window_position=position, found=found, complete=complete
        )

    def _draw_one(
        self, window: SelectionWindow, counter: int, taken: set[int]
    ) -> tuple[int, int]:
        """Return ``(ticket_id, hashes_used)`` for the next winner of ``window``."""
        used = 0
        candidate = window.offset
        while used < MAX_REJECTIONS:
            candidate = candidate_ticket_id(
                self.salt, self.tier_index, counter + used, window.span, window.offset
            )
            used += 1
            if candidate not in taken:
                return candidate, used

        # Dense windows: walk forward from the last candidate, wrapping inside the window.
        for step in range(1, window.span + 1):
            probe = window.offset + (candidate - window.offset + step) % window.span
            if probe not in taken:
                return probe, used
        raise RuntimeError("window has no free ticket left")  # pragma: no cover - quota is capped

    def run(self) -> SelectionProgress:
        """Select every winner in one go."""
        return self.advance(SelectionProgress())


__all__ = [
    "MAX_REJECTIONS",
    "SelectionProgress",
    "SelectionWindow",
    "WinnerSelector",
    "candidate_ticket_id",
    "selection_hash",
]
