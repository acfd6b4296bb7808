from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    Integer,
    String,
    DateTime,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
    Index,
)
from .base import Base
from .id_type import AMOUNT_TYPE

if TYPE_CHECKING:
    from .lottery import Lottery
    from .tier import LotteryTier


WINNER_SELECTED = "selected"
WINNER_PAID = "paid"
WINNER_OVER_CAP = "over_cap"


class LotteryWinner(Base):
    """Winning lottery ticket of a tier.

    Rows are written by the selector with status ``selected`` and move to
    ``paid`` or ``over_cap`` during settlement. An ``over_cap`` row is the
    pending entry that waits for a privileged confirmation.
    """

    __tablename__ = "lottery_winners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lottery_id: Mapped[int] = mapped_column(
        ForeignKey("lotteries.id", ondelete="CASCADE"), nullable=False
    )
    tier_id: Mapped[int] = mapped_column(
        ForeignKey("lottery_tiers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ticket_id: Mapped[int] = mapped_column(Integer, nullable=False)
    organization_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    owner: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    amount: Mapped[int] = mapped_column(AMOUNT_TYPE, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=WINNER_SELECTED)
    drawn_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    lottery: Mapped["Lottery"] = relationship(back_populates="winners")
    tier: Mapped["LotteryTier"] = relationship(back_populates="winners")

    __table_args__ = (
        # A ticket wins at most one tier per draw.
        UniqueConstraint("lottery_id", "ticket_id", name="uq_lottery_winner_ticket"),
        CheckConstraint(
            "status IN ('selected','paid','over_cap')", name="winner_status_enum"
        ),
        Index("ix_lottery_winner_status", "lottery_id", "status"),
        Index("ix_lottery_winner_owner", "lottery_id", "owner"),
    )

    @property
    def paid(self) -> bool:
        return self.status == WINNER_PAID

    def __repr__(self) -> str:
        return (
            f"<LotteryWinner(id={self.id}, tier_id={self.tier_id}, ticket_id={self.ticket_id}, "
            f"owner={self.owner}, amount={self.amount}, status='{self.status}')>"
        )
