"""Lottery engine: the operations exposed to operators and the oracle transport."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from ..db.utils import as_utc
from ..errors import PayoutError, PhaseError
from ..lifecycle import transition
from ..models import (
    Lottery,
    LotteryCampaign,
    LotteryOrganization,
    LotteryPhase,
    LotteryTier,
    LotteryWinner,
    RandomnessRequest,
    TierType,
    WINNER_SELECTED,
)
from ..oracle.randomness import RandomnessOracle
from ..security import RoleAuthorizer, ensure_authorized
from .ranges import TicketRange, TicketRangeRegistry
from .selection import SelectionProgress, SelectionWindow, WinnerSelector
from .settlement import SettlementLedger, SettlementReport
from .tiers import TierDefinition, TierTable

if TYPE_CHECKING:
    from ..chain.api import ChainClient

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _by_position(campaigns: Iterable[LotteryCampaign]) -> list[LotteryCampaign]:
    # Initialization renumbers campaigns without reordering the loaded collection.
    return sorted(campaigns, key=lambda campaign: campaign.position)


class LotteryEngine:
    """Run the whole lifecycle of one lottery on behalf of ``caller``.

    Every mutating operation checks ``authorizer.is_authorized(caller, action)``
    first and validates the lifecycle phase before writing anything, so a
    failing call leaves the session untouched. Callers own the transaction:
    the engine only flushes.
    """

    def __init__(
        self,
        session: Session,
        lottery: Lottery,
        *,
        caller: str,
        client: "ChainClient",
        authorizer=None,
        oracle: Optional[RandomnessOracle] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Create an engine bound to a SQLAlchemy session and one lottery.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session used for lookups and persistence.
        lottery : Lottery
            Persisted lottery the engine operates on.
        caller : str
            Account on whose behalf privileged operations run.
        client : ChainClient
            Chain gateway resolving tickets, owners, passports and transfers.
        authorizer : optional
            Object exposing ``is_authorized(caller, action)``. Defaults to a
            :class:`~tierdraw.security.RoleAuthorizer` on ``session``.
        oracle : Optional[RandomnessOracle], default: None
            Randomness port; a session-bound one is created when omitted.
        clock : Optional[Callable[[], datetime]], default: None
            Source of the current UTC time, overridable in tests.
        """
        if lottery.id is None:
            raise ValueError("Lottery must be persisted before running it")
        self._session = session
        self.lottery = lottery
        self.caller = caller
        self._client = client
        self._authorizer = authorizer or RoleAuthorizer(session)
        self._oracle = oracle or RandomnessOracle(session)
        self._clock = clock or _utcnow

        self.registry = TicketRangeRegistry(session, lottery, client)
        self.tier_table = TierTable(session, lottery, client)
        self.ledger = SettlementLedger(session, lottery, client, self.registry)

    def _now(self) -> datetime:
        return as_utc(self._clock())

    def _authorize(self, action: str) -> None:
        ensure_authorized(self._authorizer, self.caller, action)

    # -------- setup --------
    def register_ticket_contract(self, ticket_contract: str) -> LotteryCampaign:
        self._authorize("register_ticket_contract")
        return self.registry.register(ticket_contract)

    def setup_lottery(
        self,
        reward_token: str,
        cap: int,
        tiers: Sequence[TierDefinition],
        org_shares: Sequence[int],
    ) -> list[LotteryTier]:
        """Validate and store the reward token, cap, tiers and organization shares."""
        self._authorize("setup_lottery")
        return self.tier_table.configure(
            reward_token, cap, tiers, org_shares, now=self._now()
        )

    def initialize_lottery(self, max_organizations: int = 0) -> int:
        """Allocate ticket ranges for up to ``max_organizations`` organizations.

        ``0`` (or any value above the number of remaining organizations)
        finishes every remaining organization. Once the last organization is
        allocated, random-share tier sizes are resolved from the final supply.

        Returns
        -------
        int
            Number of organizations initialized by this call.

        Raises
        ------
        PhaseError
            If the lottery is not set up, the burn period is still running, or
            every organization already has its range.
        InvariantViolation
            If the final supply cannot cover the configured winners. Nothing
            is written in that case.
        """
        self._authorize("initialize_lottery")
        if max_organizations < 0:
            raise ValueError("max_organizations must be non-negative")
        lottery = self.lottery
        phase = lottery.current_phase
        if phase is LotteryPhase.PENDING_SETUP:
            raise PhaseError("Lottery is not set up")
        if phase not in (LotteryPhase.CONFIGURED, LotteryPhase.INITIALIZING):
            raise PhaseError("Lottery already initialized")
        if self._now() < as_utc(lottery.burn_deadline):
            raise PhaseError("Burn period not finished yet")

        if lottery.initialized_organizations == 0:
            self.tier_table.check_ready_for_initialization()

        planned = self.registry.plan(max_organizations)
        remaining = lottery.organization_count - lottery.initialized_organizations
        finishing = len(planned) == remaining
        if finishing:
            final_supply = lottery.total_supply + sum(p.ticket_count for p in planned)
            self.tier_table.planned_counts(final_supply)

        self.registry.apply(planned)
        if finishing:
            self.tier_table.resolve_counts(lottery.total_supply)
            transition(lottery, LotteryPhase.INITIALIZED)
            logger.info(
                "Lottery %s initialized with %d tickets", lottery.name, lottery.total_supply
            )
        else:
            transition(lottery, LotteryPhase.INITIALIZING)
        self._session.flush()
        return len(planned)

    # -------- draw --------
    def run_lottery(self) -> RandomnessRequest:
        """Request the random word once the lottery time is reached."""
        self._authorize("run_lottery")
        lottery = self.lottery
        phase = lottery.current_phase
        if phase in (LotteryPhase.PENDING_SETUP, LotteryPhase.CONFIGURED, LotteryPhase.INITIALIZING):
            raise PhaseError("Lottery is not fully initialized")
        if phase is not LotteryPhase.INITIALIZED:
            raise PhaseError("Lottery already run")
        if self._now() < as_utc(lottery.lottery_time):
            raise PhaseError("Lottery time not reached yet")
        return self._oracle.request_random_number(lottery, now=self._now())

    def fulfill_random_number(self, request_id: str, raw_word: int) -> int:
        """Oracle callback delivering the raw random word for ``request_id``."""
        self._authorize("fulfill_random_number")
        return self._oracle.fulfill_random_number(request_id, raw_word, now=self._now())

    def _require_salt(self) -> int:
        salt = self.lottery.random_salt
        if salt is None or self.lottery.current_phase not in (
            LotteryPhase.DRAWN,
            LotteryPhase.SETTLING,
            LotteryPhase.SETTLED,
        ):
            raise PhaseError("Request is pending or lottery is not run")
        return salt

    def _windows(self, tier: LotteryTier) -> list[SelectionWindow]:
        if tier.type is TierType.FIXED_COUNT:
            quotas = tier.organization_quotas or []
            return [
                SelectionWindow(
                    offset=org.first_ticket_id or 0,
                    span=org.ticket_count,
                    quota=quota,
                    organization_position=org.position,
                )
                for org, quota in zip(self.lottery.organizations, quotas)
            ]
        return [SelectionWindow(offset=0, span=self.lottery.total_supply, quota=tier.winners_count or 0)]

    def _selector(self, tier: LotteryTier) -> WinnerSelector:
        excluded = [
            winner.ticket_id
            for earlier in self.lottery.tiers[: tier.position]
            for winner in earlier.winners
        ]
        return WinnerSelector(self._require_salt(), tier.position, self._windows(tier), excluded)

    def _select(self, tier: LotteryTier, max_attempts: Optional[int] = None) -> bool:
        if tier.selection_complete:
            return True
        for earlier in self.lottery.tiers[: tier.position]:
            if not earlier.selection_complete:
                raise PhaseError(f"Tier {earlier.position} must be drawn before tier {tier.position}")

        selector = self._selector(tier)
        before = [winner.ticket_id for winner in tier.winners]
        progress = selector.advance(
            SelectionProgress(
                counter=tier.draw_counter,
                window_position=tier.fill_position,
                found=before,
            ),
            max_attempts=max_attempts,
        )
        windows = selector.windows
        for ticket_id in progress.found[len(before):]:
            organization = next(
                (w.organization_position for w in windows if w.contains(ticket_id)), None
            )
            if organization is None:
                organization = self.registry.organization_for(ticket_id).position
            tier.winners.append(
                LotteryWinner(
                    lottery_id=self.lottery.id,
                    ticket_id=ticket_id,
                    organization_position=organization,
                    amount=tier.reward_amount,
                    status=WINNER_SELECTED,
                )
            )
        tier.draw_counter = progress.counter
        tier.fill_position = progress.window_position
        tier.selection_complete = progress.complete
        self._session.flush()
        return progress.complete

    def draw_tier(self, tier_index: int, max_attempts: Optional[int] = None) -> bool:
        """Advance the selection of one tier; return whether it is complete.

        Tiers are drawn in order because earlier winners are excluded from
        later tiers. Drawing a complete tier again is a no-op.
        """
        self._authorize("draw_tier")
        self._require_salt()
        return self._select(self.tier_table.tier(tier_index), max_attempts)

    # -------- settlement --------
    def reward_winners(self, tier_batch_count: int = 0) -> SettlementReport:
        """Select and pay the next ``tier_batch_count`` tiers (``0`` means all).

        Raises
        ------
        PhaseError
            If the salt is not recorded yet or every tier was already processed.
        PayoutError
            If a transfer is rejected. Nothing written by the call survives
            unless tokens already reached some owners; then their ``paid``
            rows and the selection they belong to are kept so a retry resumes
            without paying anyone twice.
        """
        self._authorize("reward_winners")
        if tier_batch_count < 0:
            raise ValueError("tier_batch_count must be non-negative")
        lottery = self.lottery
        if lottery.current_phase is LotteryPhase.SETTLED:
            raise PhaseError("Lottery already processed")
        self._require_salt()

        pending = [tier for tier in lottery.tiers if not tier.rewarded]
        if tier_batch_count and tier_batch_count < len(pending):
            pending = pending[:tier_batch_count]

        savepoint = self._session.begin_nested()
        try:
            for tier in pending:
                self._select(tier)
            report = self.ledger.settle_tiers(pending, now=self._now())
        except PayoutError as exc:
            if exc.transferred:
                savepoint.commit()
                logger.warning(
                    "Lottery %s: payout stopped after paying %s",
                    lottery.name,
                    sorted(exc.transferred),
                )
            else:
                savepoint.rollback()
            raise
        except Exception:
            savepoint.rollback()
            raise
        savepoint.commit()

        if pending:
            lottery.next_tier_position = pending[-1].position + 1
        report.completed = all(tier.rewarded for tier in lottery.tiers)
        transition(lottery, LotteryPhase.SETTLED if report.completed else LotteryPhase.SETTLING)
        self._session.flush()
        logger.info(
            "Lottery %s: settled tiers %s (%d paid, %d over-cap)",
            lottery.name,
            report.tiers_processed,
            len(report.paid),
            len(report.over_cap),
        )
        return report

    def reward_over_cap_winner(self, ticket_id: int) -> LotteryWinner:
        return self.reward_over_cap_winners([ticket_id])[0]

    def reward_over_cap_winners(self, ticket_ids: Iterable[int]) -> list[LotteryWinner]:
        """Pay pending over-cap entries after their owners were checked off-chain."""
        self._authorize("reward_over_cap_winners")
        return self.ledger.confirm_over_cap(list(ticket_ids), now=self._now())

    def withdraw_tokens(self, token: str, to: str, amount: int) -> None:
        self._authorize("withdraw_tokens")
        self.ledger.withdraw(token, to, amount)

    def withdraw_all_tokens(self) -> int:
        """Send the whole reward-token balance held in escrow to the caller."""
        self._authorize("withdraw_tokens")
        return self.ledger.withdraw_all(self.caller)

    # -------- read accessors --------
    def organizations(self) -> list[LotteryOrganization]:
        return list(self.lottery.organizations)

    def organization_addresses(self) -> list[str]:
        return [org.address for org in self.lottery.organizations]

    def organization_range(self, address: str) -> TicketRange:
        for org in self.lottery.organizations:
            if org.address == address:
                return self.registry.organization_range(org)
        raise KeyError(f"Unknown organization {address}")

    def organization_ticket_contracts(self, address: str) -> list[str]:
        for org in self.lottery.organizations:
            if org.address == address:
                return [campaign.ticket_contract for campaign in _by_position(org.campaigns)]
        raise KeyError(f"Unknown organization {address}")

    def campaign_ranges(self) -> list[tuple[str, TicketRange]]:
        """Every campaign's ticket contract and range, in ticket-id order."""
        ranges = []
        for org in self.lottery.organizations:
            for campaign in _by_position(org.campaigns):
                ranges.append(
                    (campaign.ticket_contract, self.registry.campaign_range(campaign.ticket_contract))
                )
        return ranges

    def organization_shares(self) -> list[int]:
        return self.lottery.organization_shares

    def tiers(self) -> list[LotteryTier]:
        return self.tier_table.tiers()

    def tier(self, position: int) -> LotteryTier:
        return self.tier_table.tier(position)

    def tier_winners(self, position: int) -> list[int]:
        return self.ledger.tier_winners(self.tier_table.tier(position))

    def winners(self) -> list[LotteryWinner]:
        return self.ledger.winners()

    def winners_count(self) -> int:
        return self.ledger.winners_count()

    def over_cap_winners(self) -> list[int]:
        return self.ledger.over_cap_winners()

    def over_cap_count(self) -> int:
        return self.ledger.over_cap_count()

    def winner_amount(self, ticket_id: int) -> int:
        return self.ledger.winner_amount(ticket_id)

    def underlying_ticket(self, ticket_id: int) -> tuple[str, int]:
        return self.registry.resolve(ticket_id)

    def lottery_ticket_id(self, ticket_contract: str, local_id: int) -> int:
        return self.registry.lottery_ticket_id(ticket_contract, local_id)

    def random_salt(self) -> int:
        return self._oracle.get_random_number_for(self.lottery)


__all__ = ["LotteryEngine"]
