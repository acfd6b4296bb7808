"""Allocation of the dense lottery ticket-id space."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import ResourceNotFound, ValidationError
from ..lifecycle import require_phase
from ..models import Lottery, LotteryCampaign, LotteryOrganization, LotteryPhase

if TYPE_CHECKING:
    from ..chain.api import ChainClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TicketRange:
    """Inclusive ``[first, last]`` block of lottery ticket ids.

    ``last`` is ``first - 1`` for an empty block.
    """

    first: int
    last: int

    @property
    def size(self) -> int:
        return self.last - self.first + 1


@dataclass(frozen=True)
class _PlannedOrganization:
    organization: LotteryOrganization
    campaigns: list[tuple[LotteryCampaign, int]]

    @property
    def ticket_count(self) -> int:
        return sum(count for _, count in self.campaigns)


class TicketRangeRegistry:
    """Map campaign tickets onto one contiguous id space per lottery.

    Organizations receive consecutive blocks in registration order and each
    campaign gets a sub-block of its organization's block, so a lottery ticket
    id identifies exactly one ``(campaign, local ticket id)`` pair.
    """

    def __init__(
        self, session: Session, lottery: Lottery, client: "ChainClient"
    ) -> None:
        self._session = session
        self._lottery = lottery
        self._client = client

    # -------- registration --------
    def register(self, ticket_contract: str) -> LotteryCampaign:
        """Register a campaign's ticket contract under its organization.

        Raises
        ------
        PhaseError
            If ticket ranges are already being allocated.
        ValidationError
            If the contract is already registered or is not a ticket contract.
        """
        lottery = self._lottery
        require_phase(
            lottery,
            (LotteryPhase.PENDING_SETUP, LotteryPhase.CONFIGURED),
            "Can't register ticket contracts once initialization has started",
        )
        if self.campaign(ticket_contract) is not None:
            raise ValidationError("Ticket contract is already registered")

        organization_address = self._client.organization_of(ticket_contract)
        if not organization_address:
            raise ValidationError("Ticket contract does not support the ticket interface")

        organization = self._session.scalar(
            select(LotteryOrganization).where(
                LotteryOrganization.lottery_id == lottery.id,
                LotteryOrganization.address == organization_address,
            )
        )
        if organization is None:
            organization = LotteryOrganization(
                position=lottery.organization_count,
                address=organization_address,
                ticket_count=0,
                initialized=False,
            )
            lottery.organizations.append(organization)
            logger.info(
                "Lottery %s: organization %s registered at position %d",
                lottery.name,
                organization_address,
                organization.position,
            )

        campaign = LotteryCampaign(
            position=len(organization.campaigns),
            ticket_contract=ticket_contract,
            ticket_count=0,
        )
        # Join the session through the lottery before linking the organization.
        lottery.campaigns.append(campaign)
        campaign.organization = organization
        self._session.flush()
        return campaign

    # -------- allocation --------
    def plan(self, max_organizations: int) -> list[_PlannedOrganization]:
        """Read campaign order and ticket counts for the next batch of organizations.

        Performs every external lookup without touching the stored ranges.
        """
        pending = [org for org in self._lottery.organizations if not org.initialized]
        if max_organizations and max_organizations < len(pending):
            pending = pending[:max_organizations]

        planned: list[_PlannedOrganization] = []
        for organization in pending:
            registered = {c.ticket_contract: c for c in organization.campaigns}
            ordered: list[LotteryCampaign] = []
            for contract in self._client.campaigns_of(organization.address):
                campaign = registered.pop(contract, None)
                if campaign is None:
                    raise ResourceNotFound(
                        f"Campaign ticket contract {contract} is not registered"
                    )
                ordered.append(campaign)
            # Registered campaigns the resolver no longer lists keep their registration order.
            ordered.extend(sorted(registered.values(), key=lambda c: c.position))

            campaigns = []
            for campaign in ordered:
                count = int(self._client.ticket_count(campaign.ticket_contract))
                if count < 0:
                    raise ValidationError(
                        f"Ticket contract {campaign.ticket_contract} reported a negative count"
                    )
                campaigns.append((campaign, count))
            planned.append(_PlannedOrganization(organization, campaigns))
        return planned

    def apply(self, planned: list[_PlannedOrganization]) -> int:
        """Assign ranges to ``planned`` organizations and return the new total supply."""
        lottery = self._lottery
        cursor = lottery.total_supply
        for entry in planned:
            organization = entry.organization
            organization.first_ticket_id = cursor
            for position, (campaign, count) in enumerate(entry.campaigns):
                campaign.position = position
                campaign.first_ticket_id = cursor
                campaign.ticket_count = count
                cursor += count
            organization.ticket_count = cursor - organization.first_ticket_id
            organization.initialized = True
            lottery.initialized_organizations += 1
            logger.debug(
                "Lottery %s: organization %s owns ids [%d, %d]",
                lottery.name,
                organization.address,
                organization.first_ticket_id,
                cursor - 1,
            )
        lottery.total_supply = cursor
        self._session.flush()
        return cursor

    # -------- lookups --------
    def campaign(self, ticket_contract: str) -> Optional[LotteryCampaign]:
        return self._session.scalar(
            select(LotteryCampaign).where(
                LotteryCampaign.lottery_id == self._lottery.id,
                LotteryCampaign.ticket_contract == ticket_contract,
            )
        )

    def organization_range(self, organization: LotteryOrganization) -> TicketRange:
        if not organization.initialized or organization.first_ticket_id is None:
            raise ResourceNotFound(
                f"Organization {organization.address} has no ticket range yet"
            )
        first = organization.first_ticket_id
        return TicketRange(first, first + organization.ticket_count - 1)

    def campaign_range(self, ticket_contract: str) -> TicketRange:
        campaign = self._require_campaign(ticket_contract)
        if campaign.first_ticket_id is None:
            raise ResourceNotFound(f"Campaign {ticket_contract} has no ticket range yet")
        first = campaign.first_ticket_id
        return TicketRange(first, first + campaign.ticket_count - 1)

    def resolve(self, ticket_id: int) -> tuple[str, int]:
        """Return ``(ticket_contract, local_id)`` for a lottery ticket id."""
        campaign = self._campaign_for(ticket_id)
        return campaign.ticket_contract, ticket_id - campaign.first_ticket_id

    def organization_for(self, ticket_id: int) -> LotteryOrganization:
        return self._campaign_for(ticket_id).organization

    def lottery_ticket_id(self, ticket_contract: str, local_id: int) -> int:
        """Return the lottery ticket id of ticket ``local_id`` in ``ticket_contract``."""
        campaign = self._require_campaign(ticket_contract)
        if campaign.first_ticket_id is None or not 0 <= local_id < campaign.ticket_count:
            raise ResourceNotFound(
                f"Ticket {local_id} of {ticket_contract} is not part of the lottery"
            )
        return campaign.first_ticket_id + local_id

    def _require_campaign(self, ticket_contract: str) -> LotteryCampaign:
        campaign = self.campaign(ticket_contract)
        if campaign is None:
            raise ResourceNotFound(f"Campaign ticket contract {ticket_contract} is not registered")
        return campaign

    def _campaign_for(self, ticket_id: int) -> LotteryCampaign:
        if not 0 <= ticket_id < self._lottery.total_supply:
            raise ResourceNotFound(f"Lottery ticket {ticket_id} does not exist")
        campaign = self._session.scalar(
            select(LotteryCampaign)
            .where(
                LotteryCampaign.lottery_id == self._lottery.id,
                LotteryCampaign.first_ticket_id <= ticket_id,
                LotteryCampaign.ticket_count > 0,
            )
            .order_by(LotteryCampaign.first_ticket_id.desc())
            .limit(1)
        )
        if campaign is None or ticket_id >= campaign.first_ticket_id + campaign.ticket_count:
            raise ResourceNotFound(f"Lottery ticket {ticket_id} does not exist")
        return campaign


__all__ = ["TicketRange", "TicketRangeRegistry"]
