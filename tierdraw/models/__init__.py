from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .lottery import Lottery, LotteryPhase  # noqa: F401
from .organization import LotteryOrganization, LotteryCampaign  # noqa: F401
from .tier import LotteryTier, TierType  # noqa: F401
from .winner import (  # noqa: F401
    LotteryWinner,
    WINNER_OVER_CAP,
    WINNER_PAID,
    WINNER_SELECTED,
)
from .randomness import RandomnessRequest  # noqa: F401
from .role import RoleGrant  # noqa: F401

__all__ = [
    "Base",
    "Lottery",
    "LotteryPhase",
    "LotteryOrganization",
    "LotteryCampaign",
    "LotteryTier",
    "TierType",
    "LotteryWinner",
    "WINNER_OVER_CAP",
    "WINNER_PAID",
    "WINNER_SELECTED",
    "RandomnessRequest",
    "RoleGrant",
]
