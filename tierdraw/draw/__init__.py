"""Tiered draw subsystem: ticket ranges, tiers, selection and settlement."""

from .engine import LotteryEngine
from .ranges import TicketRange, TicketRangeRegistry
from .selection import (
    MAX_REJECTIONS,
    SelectionProgress,
    SelectionWindow,
    WinnerSelector,
    candidate_ticket_id,
    selection_hash,
)
from .settlement import SettlementLedger, SettlementReport
from .tiers import (
    BPS_DENOMINATOR,
    MAX_FIXED_WINNERS,
    TierDefinition,
    TierTable,
    organization_quotas,
    random_share_count,
)

__all__ = [
    "BPS_DENOMINATOR",
    "MAX_FIXED_WINNERS",
    "MAX_REJECTIONS",
    "LotteryEngine",
    "SelectionProgress",
    "SelectionWindow",
    "SettlementLedger",
    "SettlementReport",
    "TicketRange",
    "TicketRangeRegistry",
    "TierDefinition",
    "TierTable",
    "WinnerSelector",
    "candidate_ticket_id",
    "organization_quotas",
    "random_share_count",
    "selection_hash",
]
