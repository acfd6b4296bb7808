"""Identifier helpers for persisted lottery rows."""

from __future__ import annotations

import secrets
import string
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .randomness import RandomnessRequest

BASE62_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase


def _request_id_taken(session: Session, candidate: str) -> bool:
    if any(
        isinstance(obj, RandomnessRequest) and obj.request_id == candidate
        for obj in session.new
    ):
        return True
    return session.scalar(
        select(RandomnessRequest.id).where(RandomnessRequest.request_id == candidate)
    ) is not None


def generate_unique_request_id(
    prefix: str,
    session: Optional[Session] = None,
    length: int = 16,
    max_attempts: int = 32,
) -> str:
    """Return ``"<prefix>-<base62>"``, unused by any pending or stored request.

    Without a session the value is returned unchecked.
    """
    for _ in range(max_attempts):
        candidate = f"{prefix}-{''.join(secrets.choice(BASE62_ALPHABET) for _ in range(length))}"
        if session is None or not _request_id_taken(session, candidate):
            return candidate
    raise RuntimeError(f"No free randomness request id after {max_attempts} attempts")
