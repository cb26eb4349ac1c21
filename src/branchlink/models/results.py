"""Result types returned by association manager operations."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ChangedFile(BaseModel):
    """A single path with uncommitted changes."""

    path: str = Field(..., description="Path relative to the repository root")
    change_type: str = Field(..., description="staged, modified, deleted, renamed or untracked")


class ChangeSummary(BaseModel):
    """Capped listing of uncommitted changes for display."""

    files: List[ChangedFile] = Field(default_factory=list, description="First changed files")
    remaining: int = Field(0, description="Changed files not listed in files")
    total: int = Field(0, description="Total changed files")
    counts: Dict[str, int] = Field(default_factory=dict, description="Changed files per change type")

    def describe(self) -> str:
        """Summarize the full change set by type, e.g. '2 modified, 1 untracked'."""
        if not self.total:
            return ""
        return ", ".join(f"{count} {change_type}" for change_type, count in self.counts.items())

    def render(self) -> str:
        """Render the capped file list, one path per line."""
        lines = [f"  {changed.path} ({changed.change_type})" for changed in self.files]
        if self.remaining:
            lines.append(f"  ... and {self.remaining} more")
        return "\n".join(lines)


class CheckoutDecision(str, Enum):
    """The three ways to proceed when the working tree is dirty."""

    STASH_AND_CHECKOUT = "stash_and_checkout"
    CHECKOUT_ANYWAY = "checkout_anyway"
    CANCEL = "cancel"


class CheckoutStatus(str, Enum):
    """Outcome of a checkout request."""

    CHECKED_OUT = "checked_out"
    DECISION_REQUIRED = "decision_required"
    CANCELLED = "cancelled"


class DecisionRequest(BaseModel):
    """Returned instead of checking out when uncommitted changes exist."""

    ticket_id: str = Field(..., description="Ticket being switched to")
    branch_name: str = Field(..., description="Branch that would be checked out")
    current_branch: Optional[str] = Field(None, description="Branch currently checked out")
    changes: ChangeSummary = Field(..., description="Uncommitted changes")
    options: List[CheckoutDecision] = Field(
        default_factory=lambda: [
            CheckoutDecision.STASH_AND_CHECKOUT,
            CheckoutDecision.CHECKOUT_ANYWAY,
            CheckoutDecision.CANCEL,
        ],
        description="Choices the caller must pick from",
    )


class CheckoutResult(BaseModel):
    """Result of checkout_for_ticket."""

    status: CheckoutStatus = Field(..., description="What happened")
    ticket_id: str = Field(..., description="Ticket identifier")
    branch_name: str = Field(..., description="Associated branch")
    decision_request: Optional[DecisionRequest] = Field(
        None, description="Set when status is decision_required"
    )
    stash_message: Optional[str] = Field(None, description="Message of the stash created, if any")

    @property
    def checked_out(self) -> bool:
        return self.status == CheckoutStatus.CHECKED_OUT


class Candidate(BaseModel):
    """A ticket-branch pair proposed by auto-detection, awaiting confirmation."""

    ticket_id: str = Field(..., description="Ticket identifier extracted from the branch")
    branch_name: str = Field(..., description="Branch the identifier was found in")


class ItemOutcome(BaseModel):
    """Per-item result of a batch operation."""

    ticket_id: str = Field(..., description="Ticket the item refers to")
    branch_name: Optional[str] = Field(None, description="Branch the item refers to")
    error: Optional[str] = Field(None, description="Failure message, if the item failed")


class BatchResult(BaseModel):
    """Result of a batch of associations."""

    succeeded: List[ItemOutcome] = Field(default_factory=list)
    failed: List[ItemOutcome] = Field(default_factory=list)


class AgedAssociation(BaseModel):
    """An association that has not been updated recently."""

    ticket_id: str
    branch_name: str
    days_since_last_update: int


class BranchUsage(BaseModel):
    """Checkout frequency of an active association."""

    ticket_id: str
    branch_name: str
    usage_count: int
    last_used: Optional[datetime] = Field(None, description="Last checkout or association")


class AnalyticsSnapshot(BaseModel):
    """Aggregate view of associations at one point in time."""

    total_associations: int = Field(0, description="Tickets with an active association")
    active_associations: int = Field(0, description="Associations whose branch exists")
    stale_associations: int = Field(0, description="Associations whose branch is gone")
    oldest_associations: List[AgedAssociation] = Field(default_factory=list)
    most_used_branches: List[BranchUsage] = Field(default_factory=list)


class SuggestionKind(str, Enum):
    """Why a cleanup is suggested."""

    STALE = "stale"
    OLD = "old"
    DUPLICATE = "duplicate"


class CleanupSuggestion(BaseModel):
    """A derived, non-persisted maintenance suggestion."""

    id: str = Field(..., description="Stable identifier to pass back to apply_cleanup")
    kind: SuggestionKind = Field(..., description="stale, old or duplicate")
    ticket_id: str = Field(..., description="Primary ticket")
    ticket_ids: List[str] = Field(default_factory=list, description="All tickets involved")
    branch_name: str = Field(..., description="Branch involved")
    reason: str = Field(..., description="Human-readable explanation")
    days_since_last_used: Optional[int] = Field(None, description="Set for old suggestions")

    @property
    def auto_actionable(self) -> bool:
        """Stale links can be removed without asking; the branch is already gone."""
        return self.kind == SuggestionKind.STALE


class CleanupResult(BaseModel):
    """Result of apply_cleanup."""

    applied: List[str] = Field(default_factory=list, description="Suggestion ids acted on")
    skipped: List[str] = Field(default_factory=list, description="Advisory suggestions left alone")
    failed: Dict[str, str] = Field(default_factory=dict, description="Suggestion id -> error message")
