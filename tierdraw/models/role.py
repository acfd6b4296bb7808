from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Integer, String, UniqueConstraint, select
from sqlalchemy.orm import Mapped, Session, mapped_column, validates

from .base import Base


class RoleGrant(Base):
    """Privilege granted to an account, e.g. ``ADMIN`` or ``REWARDER``."""

    __tablename__ = "role_grants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    granted_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    granted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (UniqueConstraint("account", "role", name="uq_role_grant"),)

    @validates("account")
    def _normalize_account(self, _key: str, value: str) -> str:
        return value.strip().lower()

    @classmethod
    def has_role(cls, session: Session, account: str, role: str) -> bool:
        """Return whether ``account`` holds ``role``."""
        stmt = select(cls.id).where(
            cls.account == account.strip().lower(), cls.role == role
        )
        return session.scalar(stmt) is not None
