"""Persisted records for ticket-branch associations."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class AssociationState(str, Enum):
    """Lifecycle state of a ticket with respect to its branch."""

    UNASSOCIATED = "unassociated"
    ASSOCIATED = "associated"
    STALE = "stale"


class BranchAssociation(BaseModel):
    """The current, non-superseded branch linked to a ticket."""

    ticket_id: str = Field(..., description="Ticket identifier, e.g. ENG-123")
    branch_name: str = Field(..., description="Local branch name")
    last_updated: datetime = Field(..., description="When the association was last written")
    is_auto_detected: bool = Field(False, description="Whether it came from naming-pattern detection")

    class Config:
        """Pydantic config."""
        json_schema_extra = {
            "example": {
                "ticket_id": "ENG-123",
                "branch_name": "feat/eng-123-fix-login",
                "last_updated": "2024-01-15T10:30:00Z",
                "is_auto_detected": False,
            }
        }


class HistoryEntry(BaseModel):
    """Audit record of a branch that was linked to a ticket.

    Only ``is_active``, ``last_used`` and ``use_count`` change after creation.
    """

    branch_name: str = Field(..., description="Branch that was linked")
    associated_at: datetime = Field(..., description="When this link was made")
    last_used: datetime = Field(..., description="Last association or checkout through this link")
    is_active: bool = Field(True, description="Whether this is the ticket's current branch")
    use_count: int = Field(0, description="Successful checkouts through this link")


class TicketRecord(BaseModel):
    """Everything persisted for one ticket, written as a single unit."""

    ticket_id: str = Field(..., description="Ticket identifier")
    association: Optional[BranchAssociation] = Field(None, description="Active association, if any")
    history: List[HistoryEntry] = Field(default_factory=list, description="Timeline, oldest first")

    def active_entry(self) -> Optional[HistoryEntry]:
        """Return the history entry currently marked active."""
        for entry in self.history:
            if entry.is_active:
                return entry
        return None
