"""Database model for lottery reward tiers."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Integer,
    String,
    Boolean,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
    JSON,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .id_type import AMOUNT_TYPE

if TYPE_CHECKING:
    from .lottery import Lottery
    from .winner import LotteryWinner


class TierType(str, enum.Enum):
    """Winner-count policy of a tier.

    Tiers must appear in non-decreasing order of :attr:`rank`.
    """

    JACKPOT = "jackpot"
    RANDOM_SHARE = "random_share"
    FIXED_COUNT = "fixed_count"

    @property
    def rank(self) -> int:
        return _TIER_RANKS[self]


_TIER_RANKS = {
    TierType.JACKPOT: 0,
    TierType.RANDOM_SHARE: 1,
    TierType.FIXED_COUNT: 2,
}


class LotteryTier(Base):
    """A reward bracket together with its persisted selection progress."""

    __tablename__ = "lottery_tiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    """Primary key."""

    lottery_id: Mapped[int] = mapped_column(
        ForeignKey("lotteries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    """Foreign key referencing :class:`Lottery`."""

    position: Mapped[int] = mapped_column(Integer, nullable=False)
    """Index of the tier; also mixed into the selection hash."""

    tier_type: Mapped[str] = mapped_column(String(20), nullable=False)
    """:class:`TierType` value."""

    winners_share: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Basis points of the total supply that win (random-share tiers only)."""

    winners_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Number of winners; ``None`` for random-share tiers until initialization."""

    reward_amount: Mapped[int] = mapped_column(AMOUNT_TYPE, nullable=False)
    """Token amount paid to each winning ticket."""

    organization_quotas: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    """Winners per organization in registration order (fixed-count tiers only)."""

    draw_counter: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Number of hash evaluations consumed so far by the selector."""

    fill_position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Organization currently being filled (fixed-count tiers only)."""

    selection_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    """``True`` once every winner of the tier has been drawn."""

    rewarded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    """``True`` once the tier went through settlement."""

    lottery: Mapped["Lottery"] = relationship(back_populates="tiers")
    winners: Mapped[list["LotteryWinner"]] = relationship(
        back_populates="tier",
        order_by="LotteryWinner.id",
    )
    """Winning tickets in the order they were drawn."""

    __table_args__ = (
        UniqueConstraint("lottery_id", "position", name="uq_lottery_tier_position"),
        CheckConstraint(
            "tier_type IN ('jackpot','random_share','fixed_count')", name="tier_type_enum"
        ),
        CheckConstraint(
            "winners_share >= 0 AND winners_share <= 10000", name="winners_share_bps"
        ),
    )

    def __init__(
        self,
        *,
        position: int,
        tier_type: TierType,
        reward_amount: int,
        winners_share: int = 0,
        winners_count: Optional[int] = None,
        organization_quotas: Optional[list[int]] = None,
        lottery: Optional["Lottery"] = None,
        lottery_id: Optional[int] = None,
    ) -> None:
        self.position = position
        self.tier_type = TierType(tier_type).value
        self.reward_amount = reward_amount
        self.winners_share = winners_share
        self.winners_count = winners_count
        self.organization_quotas = organization_quotas
        self.draw_counter = 0
        self.fill_position = 0
        self.selection_complete = False
        self.rewarded = False
        if lottery is not None:
            self.lottery = lottery
        if lottery_id is not None:
            self.lottery_id = lottery_id

    @property
    def type(self) -> TierType:
        return TierType(self.tier_type)

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<LotteryTier(position={pos}, type={type}, winners_count={count}, reward_amount={amount})>".format(
            pos=self.position,
            type=self.tier_type,
            count=self.winners_count,
            amount=self.reward_amount,
        )


__all__ = ["LotteryTier", "TierType"]
