"""Role-based authorization for privileged lottery operations."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import AuthorizationError
from .models import RoleGrant

logger = logging.getLogger(__name__)

ADMIN_ROLE = "ADMIN"
REGISTRAR_ROLE = "REGISTRAR"
REWARDER_ROLE = "REWARDER"
OPERATOR_ROLE = "OPERATOR"
ORACLE_ROLE = "ORACLE"

# Maps each privileged action to the role allowed to perform it.
ACTION_ROLES = {
    "setup_lottery": ADMIN_ROLE,
    "withdraw_tokens": ADMIN_ROLE,
    "register_ticket_contract": REGISTRAR_ROLE,
    "initialize_lottery": OPERATOR_ROLE,
    "run_lottery": OPERATOR_ROLE,
    "draw_tier": OPERATOR_ROLE,
    "reward_winners": OPERATOR_ROLE,
    "reward_over_cap_winners": REWARDER_ROLE,
    "fulfill_random_number": ORACLE_ROLE,
}


class RoleAuthorizer:
    """Answer ``is_authorized(caller, action)`` from the ``role_grants`` table.

    ``ADMIN`` implies every other role.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def is_authorized(self, caller: str, action: str) -> bool:
        role = ACTION_ROLES.get(action)
        if role is None:
            raise KeyError(f"Unknown privileged action '{action}'")
        if RoleGrant.has_role(self._session, caller, ADMIN_ROLE):
            return True
        return RoleGrant.has_role(self._session, caller, role)

    def grant(
        self, account: str, role: str, *, granted_by: Optional[str] = None
    ) -> RoleGrant:
        """Grant ``role`` to ``account`` unless it is already held."""
        existing = self._session.scalar(
            select(RoleGrant).where(
                RoleGrant.account == account.strip().lower(), RoleGrant.role == role
            )
        )
        if existing is not None:
            return existing
        grant = RoleGrant(account=account, role=role, granted_by=granted_by)
        self._session.add(grant)
        self._session.flush()
        logger.info("Granted %s to %s", role, account)
        return grant


def ensure_authorized(authorizer, caller: str, action: str) -> None:
    """Raise :class:`AuthorizationError` unless ``caller`` may perform ``action``."""
    if not authorizer.is_authorized(caller, action):
        raise AuthorizationError(caller, ACTION_ROLES.get(action, action))


__all__ = [
    "ACTION_ROLES",
    "ADMIN_ROLE",
    "OPERATOR_ROLE",
    "ORACLE_ROLE",
    "REGISTRAR_ROLE",
    "REWARDER_ROLE",
    "RoleAuthorizer",
    "ensure_authorized",
]
