"""Request/fulfill bookkeeping for the random word that drives a draw."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import PhaseError, ResourceNotFound, ValidationError
from ..models import Lottery, LotteryPhase, RandomnessRequest
from ..models.utils import generate_unique_request_id
from ..lifecycle import transition

logger = logging.getLogger(__name__)

MAX_RANDOM_WORD = (1 << 256) - 1


def normalize_salt(raw_word: int) -> int:
    """Return the nonzero salt for ``raw_word`` (``0`` becomes ``1``)."""
    if isinstance(raw_word, bool) or not isinstance(raw_word, int):
        raise TypeError("raw_word must be an integer")
    if not 0 <= raw_word <= MAX_RANDOM_WORD:
        raise ValidationError("raw_word must be an unsigned 256-bit integer")
    return raw_word if raw_word != 0 else 1


class RandomnessOracle:
    """Track one randomness request per lottery and its single delivery.

    The transport that actually talks to a randomness provider is external;
    it calls :meth:`fulfill_random_number` exactly once with the raw word.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def request_random_number(
        self, lottery: Lottery, *, now: Optional[datetime] = None
    ) -> RandomnessRequest:
        """Open a request for ``lottery`` and move it to ``RANDOMNESS_REQUESTED``."""
        if lottery.random_request_id is not None or lottery.random_salt is not None:
            raise PhaseError("Lottery already has random number or request id pending")

        request = RandomnessRequest(
            request_id=generate_unique_request_id("rnd", self._session),
            lottery_id=lottery.id,
            requested_at=now or datetime.now(timezone.utc),
        )
        transition(lottery, LotteryPhase.RANDOMNESS_REQUESTED)
        lottery.random_request_id = request.request_id
        self._session.add(request)
        self._session.flush()
        logger.info("Lottery %s: randomness requested (%s)", lottery.name, request.request_id)
        return request

    def fulfill_random_number(
        self, request_id: str, raw_word: int, *, now: Optional[datetime] = None
    ) -> int:
        """Record the delivered word and return the normalized salt.

        Raises
        ------
        ResourceNotFound
            If ``request_id`` was never issued.
        PhaseError
            If the request was already fulfilled.
        """
        request = self._request(request_id)
        if request.is_fulfilled:
            raise PhaseError(f"Random number already delivered for request {request_id}")
        salt = normalize_salt(raw_word)

        lottery = self._session.get(Lottery, request.lottery_id)
        if lottery is None or lottery.random_request_id != request_id:
            raise ResourceNotFound(f"No lottery is waiting for request {request_id}")
        transition(lottery, LotteryPhase.DRAWN)

        request.raw_word = raw_word
        request.salt = salt
        request.fulfilled_at = now or datetime.now(timezone.utc)
        lottery.random_salt = salt
        self._session.flush()
        logger.info("Lottery %s: random salt recorded", lottery.name)
        return salt

    def get_random_number(self, request_id: str) -> int:
        request = self._request(request_id)
        if not request.is_fulfilled or request.salt is None:
            raise PhaseError(f"Request {request_id} is still pending")
        return request.salt

    def get_random_number_for(self, lottery: Lottery) -> int:
        if lottery.random_request_id is None:
            raise ResourceNotFound(f"Lottery {lottery.name!r} never requested randomness")
        return self.get_random_number(lottery.random_request_id)

    def _request(self, request_id: str) -> RandomnessRequest:
        request = self._session.scalar(
            select(RandomnessRequest).where(RandomnessRequest.request_id == request_id)
        )
        if request is None:
            raise ResourceNotFound(f"Unknown randomness request {request_id}")
        return request


__all__ = ["MAX_RANDOM_WORD", "RandomnessOracle", "normalize_salt"]
