"""Database model for a single lottery draw instance."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Integer,
    String,
    DateTime,
    CheckConstraint,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, Session

from .base import Base
from .id_type import AMOUNT_TYPE

if TYPE_CHECKING:
    from .organization import LotteryCampaign, LotteryOrganization
    from .tier import LotteryTier
    from .winner import LotteryWinner


class LotteryPhase(str, enum.Enum):
    """Lifecycle states of a lottery, in the order they are reached."""

    PENDING_SETUP = "pending_setup"
    CONFIGURED = "configured"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    RANDOMNESS_REQUESTED = "randomness_requested"
    DRAWN = "drawn"
    SETTLING = "settling"
    SETTLED = "settled"


_PHASE_VALUES = ", ".join(f"'{phase.value}'" for phase in LotteryPhase)


class Lottery(Base):
    """One draw over every ticket issued by the registered campaigns."""

    __tablename__ = "lotteries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    """Primary key."""

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    """Machine friendly identifier used by operators and scripts."""

    escrow_address: Mapped[str] = mapped_column(String(255), nullable=False)
    """Account holding the reward tokens paid out by this lottery."""

    phase: Mapped[str] = mapped_column(
        String(30), nullable=False, default=LotteryPhase.PENDING_SETUP.value
    )
    """Current :class:`LotteryPhase` value."""

    reward_token: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Fungible token contract used for payouts; set by ``setup_lottery``."""

    cap: Mapped[Optional[int]] = mapped_column(AMOUNT_TYPE, nullable=True)
    """Per-owner amount above which unverified owners are queued as over-cap."""

    mint_deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    """Tickets can no longer be issued after this instant."""

    burn_deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    """Tickets can no longer be redeemed after this instant; initialization may start."""

    lottery_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    """Earliest instant the draw may run; configuration is frozen from here on."""

    total_supply: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Number of lottery ticket ids allocated so far."""

    initialized_organizations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """How many organizations already received their ticket range."""

    random_request_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    """Identifier of the randomness request issued by ``run_lottery``."""

    random_salt: Mapped[Optional[int]] = mapped_column(AMOUNT_TYPE, nullable=True)
    """Normalized, nonzero random value driving every tier selection."""

    next_tier_position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Position of the first tier not yet rewarded."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    organizations: Mapped[list["LotteryOrganization"]] = relationship(
        back_populates="lottery",
        cascade="all, delete-orphan",
        order_by="LotteryOrganization.position",
    )
    """Organizations in registration order."""

    campaigns: Mapped[list["LotteryCampaign"]] = relationship(
        back_populates="lottery",
        cascade="all, delete-orphan",
        order_by="LotteryCampaign.id",
    )

    tiers: Mapped[list["LotteryTier"]] = relationship(
        back_populates="lottery",
        cascade="all, delete-orphan",
        order_by="LotteryTier.position",
    )
    """Validated reward tiers; position 0 is always the jackpot."""

    winners: Mapped[list["LotteryWinner"]] = relationship(
        back_populates="lottery",
        cascade="all, delete-orphan",
        order_by="LotteryWinner.id",
    )

    __table_args__ = (
        UniqueConstraint("name", name="lotteries_name_key"),
        CheckConstraint(f"phase IN ({_PHASE_VALUES})", name="phase_enum"),
        CheckConstraint("total_supply >= 0", name="total_supply_non_negative"),
    )

    @property
    def current_phase(self) -> LotteryPhase:
        return LotteryPhase(self.phase)

    @property
    def organization_count(self) -> int:
        return len(self.organizations)

    @property
    def is_fully_initialized(self) -> bool:
        """``True`` once every registered organization has its ticket range."""
        return (
            self.organization_count > 0
            and self.initialized_organizations == self.organization_count
        )

    @property
    def organization_shares(self) -> list[int]:
        return [org.share_bps or 0 for org in self.organizations]

    @classmethod
    def get_by_name(cls, session: Session, name: str) -> Optional["Lottery"]:
        """Return the lottery matching ``name`` if it exists."""

        return session.scalar(select(cls).where(cls.name == name))

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Lottery(id={id}, name={name}, phase={phase}, total_supply={supply})>".format(
            id=self.id,
            name=self.name,
            phase=self.phase,
            supply=self.total_supply,
        )


__all__ = ["Lottery", "LotteryPhase"]
