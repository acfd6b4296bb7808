"""Payout of drawn winners: immediate transfers and the over-cap queue."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..errors import PayoutError, ResourceNotFound
from ..models import (
    Lottery,
    LotteryTier,
    LotteryWinner,
    WINNER_OVER_CAP,
    WINNER_PAID,
    WINNER_SELECTED,
)
from .ranges import TicketRangeRegistry

if TYPE_CHECKING:
    from ..chain.api import ChainClient

logger = logging.getLogger(__name__)


@dataclass
class SettlementReport:
    """Outcome of one settlement call.

    Attributes
    ----------
    tiers_processed : list[int]
        Positions of the tiers settled by the call, in order.
    paid : list[LotteryWinner]
        Winners paid immediately.
    over_cap : list[LotteryWinner]
        Winners queued for confirmation.
    transfers : dict[str, int]
        Aggregated amount transferred to each owner.
    completed : bool
        ``True`` when no tier is left to settle.
    """

    tiers_processed: list[int] = field(default_factory=list)
    paid: list[LotteryWinner] = field(default_factory=list)
    over_cap: list[LotteryWinner] = field(default_factory=list)
    transfers: dict[str, int] = field(default_factory=dict)
    completed: bool = False

    @property
    def paid_amount(self) -> int:
        return sum(self.transfers.values())


class SettlementLedger:
    """Turn drawn winners into payouts for one lottery."""

    def __init__(
        self,
        session: Session,
        lottery: Lottery,
        client: "ChainClient",
        registry: TicketRangeRegistry,
    ) -> None:
        self._session = session
        self._lottery = lottery
        self._client = client
        self._registry = registry

    # -------- payouts --------
    def settle_tiers(
        self, tiers: Sequence[LotteryTier], *, now: datetime
    ) -> SettlementReport:
        """Pay or queue every selected winner of ``tiers``.

        Owners are resolved first and each payout decision is made against the
        amount already paid to the owner in this lottery. Queued entries do
        not count toward the cap. One transfer per owner follows, and the
        owner's rows are marked paid as soon as that transfer succeeds.

        Raises
        ------
        PayoutError
            If a transfer is rejected. Owners paid before the failure keep
            their ``paid`` rows and are listed in ``transferred``.
        """
        lottery = self._lottery
        report = SettlementReport()
        owner_totals: dict[str, int] = {}
        eligibility: dict[str, bool] = {}
        decisions: list[tuple[LotteryWinner, str, str]] = []

        for tier in tiers:
            for winner in tier.winners:
                if winner.status != WINNER_SELECTED:
                    continue
                ticket_contract, local_id = self._registry.resolve(winner.ticket_id)
                owner = self._client.owner_of(ticket_contract, local_id)

                if owner not in owner_totals:
                    owner_totals[owner] = self.awarded_to(owner)
                if owner not in eligibility:
                    eligibility[owner] = bool(
                        self._client.is_eligible_for_direct_payout(owner)
                    )

                projected = owner_totals[owner] + winner.amount
                if not eligibility[owner] and projected > (lottery.cap or 0):
                    decisions.append((winner, owner, WINNER_OVER_CAP))
                else:
                    owner_totals[owner] = projected
                    decisions.append((winner, owner, WINNER_PAID))
                    report.transfers[owner] = report.transfers.get(owner, 0) + winner.amount
            report.tiers_processed.append(tier.position)

        payable: dict[str, list[LotteryWinner]] = {}
        for winner, owner, status in decisions:
            if status == WINNER_PAID:
                payable.setdefault(owner, []).append(winner)
        self._pay_owners(report.transfers, payable, now)

        for winner, owner, status in decisions:
            if status == WINNER_PAID:
                report.paid.append(winner)
                continue
            winner.owner = owner
            winner.status = status
            report.over_cap.append(winner)
            logger.info(
                "Lottery %s: ticket %d of %s queued as over-cap (%s)",
                lottery.name,
                winner.ticket_id,
                owner,
                winner.amount,
            )
        for tier in tiers:
            tier.rewarded = True
        self._session.flush()
        return report

    def confirm_over_cap(
        self, ticket_ids: Iterable[int], *, now: datetime
    ) -> list[LotteryWinner]:
        """Pay the pending entries of ``ticket_ids`` and drop them from the queue.

        Every id is checked before any token moves.

        Raises
        ------
        ResourceNotFound
            If an id is unknown or not waiting in the over-cap queue.
        """
        entries: list[LotteryWinner] = []
        seen: set[int] = set()
        for ticket_id in ticket_ids:
            if ticket_id in seen:
                continue
            seen.add(ticket_id)
            entry = self._winner(ticket_id)
            if entry is None or entry.status != WINNER_OVER_CAP:
                raise ResourceNotFound("Token ID does not exist")
            entries.append(entry)

        transfers: dict[str, int] = {}
        payable: dict[str, list[LotteryWinner]] = {}
        for entry in entries:
            transfers[entry.owner] = transfers.get(entry.owner, 0) + entry.amount
            payable.setdefault(entry.owner, []).append(entry)
        self._pay_owners(transfers, payable, now)

        logger.info(
            "Lottery %s: confirmed %d over-cap winners", self._lottery.name, len(entries)
        )
        return entries

    def withdraw(self, token: str, to: str, amount: int) -> None:
        if amount <= 0:
            raise ValueError("amount must be positive")
        if not self._client.transfer_token(token, self._lottery.escrow_address, to, amount):
            raise PayoutError(f"Withdrawal of {amount} {token} to {to} failed")
        logger.info("Lottery %s: withdrew %s of %s to %s", self._lottery.name, amount, token, to)

    def withdraw_all(self, to: str) -> int:
        """Move the full reward-token balance to ``to`` and return the amount."""
        token = self._lottery.reward_token
        if token is None:
            return 0
        balance = int(self._client.token_balance(token, self._lottery.escrow_address))
        if balance > 0:
            self.withdraw(token, to, balance)
        return balance

    def _pay_owners(
        self,
        transfers: dict[str, int],
        payable: dict[str, list[LotteryWinner]],
        now: datetime,
    ) -> None:
        # Rows are marked right after their transfer so a retry never pays twice.
        token = self._lottery.reward_token
        done: dict[str, int] = {}
        for owner, amount in transfers.items():
            if amount > 0 and not self._client.transfer_token(
                token, self._lottery.escrow_address, owner, amount
            ):
                raise PayoutError(f"Transfer of {amount} to {owner} failed", done)
            for winner in payable.get(owner, []):
                winner.owner = owner
                winner.status = WINNER_PAID
                winner.paid_at = now
            self._session.flush()
            done[owner] = amount
            logger.info("Lottery %s: paid %s to %s", self._lottery.name, amount, owner)

    # -------- read accessors --------
    def _winners_query(self, status: Optional[str] = None):
        stmt = select(LotteryWinner).where(LotteryWinner.lottery_id == self._lottery.id)
        if status is not None:
            stmt = stmt.where(LotteryWinner.status == status)
        return stmt.order_by(LotteryWinner.id.asc())

    def _winner(self, ticket_id: int) -> Optional[LotteryWinner]:
        return self._session.scalar(
            select(LotteryWinner).where(
                LotteryWinner.lottery_id == self._lottery.id,
                LotteryWinner.ticket_id == ticket_id,
            )
        )

    def awarded_to(self, owner: str) -> int:
        """Total already paid to ``owner`` in this lottery."""
        amounts = self._session.scalars(
            select(LotteryWinner.amount).where(
                LotteryWinner.lottery_id == self._lottery.id,
                LotteryWinner.owner == owner,
                LotteryWinner.status == WINNER_PAID,
            )
        ).all()
        return sum(amounts)

    def tier_winners(self, tier: LotteryTier) -> list[int]:
        return [winner.ticket_id for winner in tier.winners]

    def winners(self) -> list[LotteryWinner]:
        """Winners already paid, in drawing order."""
        return list(self._session.scalars(self._winners_query(WINNER_PAID)).all())

    def winners_count(self) -> int:
        return self._count(WINNER_PAID)

    def over_cap_winners(self) -> list[int]:
        """Lottery ticket ids waiting for confirmation."""
        return [w.ticket_id for w in self._session.scalars(self._winners_query(WINNER_OVER_CAP))]

    def over_cap_count(self) -> int:
        return self._count(WINNER_OVER_CAP)

    def winner_amount(self, ticket_id: int) -> int:
        """Reward attached to ``ticket_id``; ``0`` when the ticket did not win."""
        winner = self._winner(ticket_id)
        return winner.amount if winner is not None else 0

    def _count(self, status: str) -> int:
        return self._session.scalar(
            select(func.count(LotteryWinner.id)).where(
                LotteryWinner.lottery_id == self._lottery.id,
                LotteryWinner.status == status,
            )
        ) or 0


__all__ = ["SettlementLedger", "SettlementReport"]
