from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
    Index,
)
from .base import Base

if TYPE_CHECKING:
    from .lottery import Lottery


class LotteryOrganization(Base):
    """Organization taking part in a lottery and its global ticket-id range.

    The range is stored as ``(first_ticket_id, ticket_count)`` so that an
    organization without tickets still records where its (empty) block sits.
    """

    __tablename__ = "lottery_organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lottery_id: Mapped[int] = mapped_column(
        ForeignKey("lotteries.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    share_bps: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    first_ticket_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    ticket_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    initialized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    lottery: Mapped["Lottery"] = relationship(back_populates="organizations")
    campaigns: Mapped[list["LotteryCampaign"]] = relationship(
        back_populates="organization",
        order_by="LotteryCampaign.position",
    )

    __table_args__ = (
        UniqueConstraint("lottery_id", "address", name="uq_lottery_organization_address"),
        UniqueConstraint("lottery_id", "position", name="uq_lottery_organization_position"),
        CheckConstraint("ticket_count >= 0", name="org_ticket_count_non_negative"),
    )

    @property
    def last_ticket_id(self) -> Optional[int]:
        """Inclusive end of the range, or ``None`` when the range is empty."""
        if self.first_ticket_id is None or self.ticket_count == 0:
            return None
        return self.first_ticket_id + self.ticket_count - 1

    def contains(self, ticket_id: int) -> bool:
        if self.first_ticket_id is None:
            return False
        return self.first_ticket_id <= ticket_id < self.first_ticket_id + self.ticket_count

    def __repr__(self) -> str:
        return (
            f"<LotteryOrganization(id={self.id}, position={self.position}, "
            f"address='{self.address}', first={self.first_ticket_id}, count={self.ticket_count})>"
        )


class LotteryCampaign(Base):
    """Ticket contract of one campaign and its sub-range inside the organization."""

    __tablename__ = "lottery_campaigns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lottery_id: Mapped[int] = mapped_column(
        ForeignKey("lotteries.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("lottery_organizations.id", ondelete="CASCADE"), nullable=False
    )
    # Registration order until initialization, then the organization's campaign order.
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    ticket_contract: Mapped[str] = mapped_column(String(255), nullable=False)
    first_ticket_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    ticket_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    lottery: Mapped["Lottery"] = relationship(back_populates="campaigns")
    organization: Mapped["LotteryOrganization"] = relationship(back_populates="campaigns")

    __table_args__ = (
        UniqueConstraint("lottery_id", "ticket_contract", name="uq_lottery_campaign_contract"),
        CheckConstraint("ticket_count >= 0", name="campaign_ticket_count_non_negative"),
        Index("ix_lottery_campaign_first_ticket", "lottery_id", "first_ticket_id"),
    )

    @property
    def last_ticket_id(self) -> Optional[int]:
        if self.first_ticket_id is None or self.ticket_count == 0:
            return None
        return self.first_ticket_id + self.ticket_count - 1

    def __repr__(self) -> str:
        return (
            f"<LotteryCampaign(id={self.id}, ticket_contract='{self.ticket_contract}', "
            f"first={self.first_ticket_id}, count={self.ticket_count})>"
        )
