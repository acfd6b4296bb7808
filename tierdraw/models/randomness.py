from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, DateTime, ForeignKey
from .base import Base
from .id_type import AMOUNT_TYPE


class RandomnessRequest(Base):
    """One request for a random word and its single fulfillment.

    ``raw_word`` keeps the value exactly as delivered by the oracle while
    ``salt`` stores the normalized, nonzero value used by the draw.
    """

    __tablename__ = "randomness_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    lottery_id: Mapped[int] = mapped_column(
        ForeignKey("lotteries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    raw_word: Mapped[Optional[int]] = mapped_column(AMOUNT_TYPE, nullable=True)
    salt: Mapped[Optional[int]] = mapped_column(AMOUNT_TYPE, nullable=True)
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    fulfilled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def is_fulfilled(self) -> bool:
        return self.fulfilled_at is not None

    def __repr__(self) -> str:
        return (
            f"<RandomnessRequest(request_id='{self.request_id}', lottery_id={self.lottery_id}, "
            f"fulfilled={self.is_fulfilled})>"
        )
