from typing import TYPE_CHECKING, Iterable, Optional
from datetime import datetime

from sqlalchemy.orm import Session

from .db.utils import as_utc, dt_iso
from .errors import ValidationError
from .models import Lottery, LotteryPhase

if TYPE_CHECKING:
    from .draw.engine import LotteryEngine
    from .draw.settlement import SettlementReport
    from .models import LotteryWinner


def create_lottery(
    session: Session,
    name: str,
    escrow_address: str,
    mint_deadline: datetime,
    burn_deadline: datetime,
    lottery_time: datetime,
) -> Lottery:
    """Persist a new lottery in ``PENDING_SETUP``.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    name : str
        Unique identifier of the lottery.
    escrow_address : str
        Account that holds the reward tokens and sends every payout.
    mint_deadline : datetime
        Tickets can no longer be issued after this instant.
    burn_deadline : datetime
        Tickets can no longer be redeemed after this instant. Ticket ranges
        may be allocated from here on.
    lottery_time : datetime
        Earliest instant the draw may run.

    Returns
    -------
    Lottery
        The flushed lottery with its ``id`` populated.

    Raises
    ------
    ValidationError
        If the schedule is not strictly increasing or ``name`` is taken.
    """
    mint_deadline = as_utc(mint_deadline)
    burn_deadline = as_utc(burn_deadline)
    lottery_time = as_utc(lottery_time)
    if not mint_deadline < burn_deadline < lottery_time:
        raise ValidationError("Incorrect time values")
    if not escrow_address:
        raise ValidationError("An escrow address is required")
    if Lottery.get_by_name(session, name) is not None:
        raise ValidationError(f"Lottery {name!r} already exists")

    lottery = Lottery(
        name=name,
        escrow_address=escrow_address,
        phase=LotteryPhase.PENDING_SETUP.value,
        mint_deadline=mint_deadline,
        burn_deadline=burn_deadline,
        lottery_time=lottery_time,
        total_supply=0,
        initialized_organizations=0,
        next_tier_position=0,
    )
    session.add(lottery)
    session.flush()
    return lottery


def settle_lottery(
    engine: "LotteryEngine", tier_batch_count: int = 1
) -> list["SettlementReport"]:
    """Call ``reward_winners`` in batches until every tier is settled.

    Returns the report of each call in order.
    """
    if tier_batch_count < 0:
        raise ValueError("tier_batch_count must be non-negative")

    reports = []
    while engine.lottery.current_phase is not LotteryPhase.SETTLED:
        reports.append(engine.reward_winners(tier_batch_count))
    return reports


def confirm_over_cap_winners(
    engine: "LotteryEngine", ticket_ids: Optional[Iterable[int]] = None
) -> list["LotteryWinner"]:
    """Pay queued over-cap winners; every pending entry when ``ticket_ids`` is omitted."""
    if ticket_ids is None:
        ticket_ids = engine.over_cap_winners()
    ticket_ids = list(ticket_ids)
    if not ticket_ids:
        return []
    return engine.reward_over_cap_winners(ticket_ids)


def lottery_summary(engine: "LotteryEngine") -> dict:
    """Return a JSON-friendly snapshot of the lottery state."""
    lottery = engine.lottery
    return {
        "name": lottery.name,
        "phase": lottery.phase,
        "reward_token": lottery.reward_token,
        "cap": str(lottery.cap) if lottery.cap is not None else None,
        "total_supply": lottery.total_supply,
        "lottery_time": dt_iso(lottery.lottery_time),
        "organizations": [
            {
                "address": org.address,
                "share_bps": org.share_bps,
                "first_ticket_id": org.first_ticket_id,
                "ticket_count": org.ticket_count,
            }
            for org in lottery.organizations
        ],
        "tiers": [
            {
                "position": tier.position,
                "type": tier.tier_type,
                "winners_count": tier.winners_count,
                "reward_amount": str(tier.reward_amount),
                "winners": [winner.ticket_id for winner in tier.winners],
                "rewarded": tier.rewarded,
            }
            for tier in lottery.tiers
        ],
        "over_cap": engine.over_cap_winners(),
    }
