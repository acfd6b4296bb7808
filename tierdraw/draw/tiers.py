"""Reward-tier configuration and its validation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Optional, Sequence

from sqlalchemy.orm import Session

from ..db.utils import as_utc
from ..errors import InvariantViolation, PhaseError, ValidationError
from ..models import Lottery, LotteryPhase, LotteryTier, TierType
from ..lifecycle import require_phase, transition

if TYPE_CHECKING:
    from ..chain.api import ChainClient

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000
MAX_FIXED_WINNERS = 100


@dataclass(frozen=True)
class TierDefinition:
    """Caller-supplied description of one reward tier.

    Attributes
    ----------
    tier_type : TierType
        Winner-count policy of the tier.
    reward_amount : int
        Token amount, in base units, paid to every winning ticket.
    winners_share : int
        Basis points of the ticket supply that win. Only read for
        :attr:`TierType.RANDOM_SHARE` tiers.
    winners_count : int
        Number of winners. ``1`` for jackpots, explicit for fixed-count tiers
        and ignored for random-share tiers, whose count is resolved once the
        ticket supply is known.
    """

    tier_type: TierType
    reward_amount: int
    winners_share: int = 0
    winners_count: int = 0

    @classmethod
    def jackpot(cls, reward_amount: int) -> "TierDefinition":
        return cls(TierType.JACKPOT, reward_amount, winners_count=1)

    @classmethod
    def random_share(cls, winners_share: int, reward_amount: int) -> "TierDefinition":
        return cls(TierType.RANDOM_SHARE, reward_amount, winners_share=winners_share)

    @classmethod
    def fixed_count(cls, winners_count: int, reward_amount: int) -> "TierDefinition":
        return cls(TierType.FIXED_COUNT, reward_amount, winners_count=winners_count)


def organization_quotas(winners_count: int, shares: Sequence[int]) -> list[int]:
    """Split ``winners_count`` across organizations proportionally to ``shares``."""
    return [winners_count * share // BPS_DENOMINATOR for share in shares]


def random_share_count(total_supply: int, winners_share: int) -> int:
    return total_supply * winners_share // BPS_DENOMINATOR


def validate_organization_shares(shares: Sequence[int], organization_count: int) -> None:
    if len(shares) != organization_count:
        raise ValidationError("Incorrect organization shares count")
    for share in shares:
        if not 0 < share <= BPS_DENOMINATOR:
            raise ValidationError("Incorrect organization shares")
    if sum(shares) != BPS_DENOMINATOR:
        raise ValidationError("Total shares sum must be 100%")


def validate_tiers(
    tiers: Sequence[TierDefinition], shares: Sequence[int]
) -> list[Optional[list[int]]]:
    """Validate ``tiers`` and return the quota vector of each tier.

    Random-share and jackpot tiers get ``None`` as their quota vector.
    """
    if not tiers:
        return []
    if TierType(tiers[0].tier_type) is not TierType.JACKPOT:
        raise ValidationError("First tier must be Jackpot")

    quotas: list[Optional[list[int]]] = []
    previous_rank = TierType.JACKPOT.rank
    for tier in tiers:
        tier_type = TierType(tier.tier_type)
        if tier_type.rank < previous_rank:
            raise ValidationError("Incorrect tier order")
        previous_rank = tier_type.rank

        if tier.reward_amount <= 0:
            raise ValidationError("Incorrect tier values")

        if tier_type is TierType.JACKPOT:
            if tier.winners_count != 1:
                raise ValidationError("There must be 1 winner in Jackpot tier")
            quotas.append(None)
        elif tier_type is TierType.RANDOM_SHARE:
            if tier.winners_share <= 0:
                raise ValidationError("Winners share can't be 0 for random tier")
            if tier.winners_share > BPS_DENOMINATOR:
                raise ValidationError("Winners share can't exceed 100%")
            quotas.append(None)
        else:
            if tier.winners_count <= 0:
                raise ValidationError("Winners count can't be 0 for fixed tier")
            if tier.winners_count > MAX_FIXED_WINNERS:
                raise ValidationError(
                    f"Winners count can't exceed {MAX_FIXED_WINNERS} per tier"
                )
            tier_quotas = organization_quotas(tier.winners_count, shares)
            if any(quota <= 0 for quota in tier_quotas):
                raise ValidationError(
                    "Organization winners count can't be 0 for fixed tier"
                )
            if sum(tier_quotas) != tier.winners_count:
                raise ValidationError(
                    "Total organization winners count does not match tier winners count"
                )
            quotas.append(tier_quotas)
    return quotas


class TierTable:
    """Store and resolve the reward tiers of one lottery."""

    def __init__(
        self, session: Session, lottery: Lottery, client: "ChainClient"
    ) -> None:
        self._session = session
        self._lottery = lottery
        self._client = client

    def configure(
        self,
        reward_token: str,
        cap: int,
        tiers: Sequence[TierDefinition],
        org_shares: Sequence[int],
        *,
        now: datetime,
    ) -> list[LotteryTier]:
        """Validate and store the lottery configuration.

        Checks run in a fixed order so that each failure is distinguishable:
        schedule and phase, reward token, cap, organization shares, tiers.
        Nothing is written unless every check passes. Calling this again
        before initialization replaces the previous configuration.

        Raises
        ------
        PhaseError
            If the lottery time has passed or initialization already started.
        ValidationError
            If any configuration value violates a setup rule.
        """
        lottery = self._lottery
        if now >= as_utc(lottery.lottery_time):
            raise PhaseError("Can't setup after lottery time")
        require_phase(
            lottery,
            (LotteryPhase.PENDING_SETUP, LotteryPhase.CONFIGURED),
            "Can't setup once initialization has started",
        )
        if not self._client.is_contract(reward_token):
            raise ValidationError("Reward token is not a contract")
        if cap <= 0:
            raise ValidationError("Lottery cap can't be zero")

        shares = [int(share) for share in org_shares]
        validate_organization_shares(shares, lottery.organization_count)
        quotas = validate_tiers(tiers, shares)

        # delete-orphan drops the previous configuration before positions are reused
        lottery.tiers.clear()
        self._session.flush()

        for org, share in zip(lottery.organizations, shares):
            org.share_bps = share

        for position, (definition, tier_quotas) in enumerate(zip(tiers, quotas)):
            tier_type = TierType(definition.tier_type)
            winners_count: Optional[int] = definition.winners_count
            if tier_type is TierType.RANDOM_SHARE:
                winners_count = None
            lottery.tiers.append(
                LotteryTier(
                    position=position,
                    tier_type=tier_type,
                    reward_amount=definition.reward_amount,
                    winners_share=(
                        definition.winners_share
                        if tier_type is TierType.RANDOM_SHARE
                        else 0
                    ),
                    winners_count=winners_count,
                    organization_quotas=tier_quotas,
                )
            )

        lottery.reward_token = reward_token
        lottery.cap = cap
        transition(lottery, LotteryPhase.CONFIGURED)
        self._session.flush()
        logger.info(
            "Lottery %s configured with %d tiers and cap %s",
            lottery.name,
            len(tiers),
            cap,
        )
        return list(lottery.tiers)

    def check_ready_for_initialization(self) -> None:
        """Re-check the stored shares against the organizations registered since."""
        lottery = self._lottery
        if any(org.share_bps is None for org in lottery.organizations):
            raise ValidationError(
                "Organization registered after setup; set up the lottery again"
            )
        validate_organization_shares(lottery.organization_shares, lottery.organization_count)

    def planned_counts(self, total_supply: int) -> list[int]:
        """Return each tier's winner count for ``total_supply`` without storing it.

        Raises
        ------
        InvariantViolation
            If a tier, or all tiers together, need more tickets than exist.
        """
        counts: list[int] = []
        for tier in self._lottery.tiers:
            if tier.type is TierType.RANDOM_SHARE:
                count = random_share_count(total_supply, tier.winners_share)
            else:
                count = tier.winners_count or 0
            if count > total_supply:
                raise InvariantViolation("Not enough tickets for the number of winners")
            counts.append(count)
        # A ticket wins at most once per draw, so the tiers compete for the same pool.
        if sum(counts) > total_supply:
            raise InvariantViolation("Not enough tickets for the number of winners")
        return counts

    def resolve_counts(self, total_supply: int) -> None:
        """Freeze the random-share winner counts for ``total_supply``."""
        counts = self.planned_counts(total_supply)
        for tier, count in zip(self._lottery.tiers, counts):
            if tier.type is TierType.RANDOM_SHARE:
                tier.winners_count = count
                logger.debug(
                    "Tier %d resolved to %d winners (%d bps of %d)",
                    tier.position,
                    count,
                    tier.winners_share,
                    total_supply,
                )

    def tier(self, position: int) -> LotteryTier:
        tiers = self._lottery.tiers
        if not 0 <= position < len(tiers):
            raise IndexError(f"Tier {position} does not exist")
        return tiers[position]

    def tiers(self) -> list[LotteryTier]:
        return list(self._lottery.tiers)


__all__ = [
    "BPS_DENOMINATOR",
    "MAX_FIXED_WINNERS",
    "TierDefinition",
    "TierTable",
    "organization_quotas",
    "random_share_count",
    "validate_organization_shares",
    "validate_tiers",
]
