"""Data models for branch-ticket associations."""

from branchlink.models.association import (
    AssociationState,
    BranchAssociation,
    HistoryEntry,
    TicketRecord,
)
from branchlink.models.config import DEFAULT_TICKET_PATTERN, Settings
from branchlink.models.results import (
    AgedAssociation,
    AnalyticsSnapshot,
    BatchResult,
    BranchUsage,
    Candidate,
    ChangedFile,
    ChangeSummary,
    CheckoutDecision,
    CheckoutResult,
    CheckoutStatus,
    CleanupResult,
    CleanupSuggestion,
    DecisionRequest,
    ItemOutcome,
    SuggestionKind,
)

__all__ = [
    "AssociationState",
    "BranchAssociation",
    "HistoryEntry",
    "TicketRecord",
    "DEFAULT_TICKET_PATTERN",
    "Settings",
    "AgedAssociation",
    "AnalyticsSnapshot",
    "BatchResult",
    "BranchUsage",
    "Candidate",
    "ChangedFile",
    "ChangeSummary",
    "CheckoutDecision",
    "CheckoutResult",
    "CheckoutStatus",
    "CleanupResult",
    "CleanupSuggestion",
    "DecisionRequest",
    "ItemOutcome",
    "SuggestionKind",
]
