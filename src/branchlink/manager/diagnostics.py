"""Maintenance diagnostics over stored associations.

Everything here is pure: callers pass in the ticket records, the set of
local branches and the current time.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from branchlink.models.association import TicketRecord
from branchlink.models.results import (
    AgedAssociation,
    AnalyticsSnapshot,
    BranchUsage,
    CleanupSuggestion,
    SuggestionKind,
)

SECONDS_PER_DAY = 60 * 60 * 24


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days from earlier to later, never negative."""
    return max(int((later - earlier).total_seconds() // SECONDS_PER_DAY), 0)


def suggestion_id(kind: SuggestionKind, ticket_id: str, branch_name: str) -> str:
    return f"{kind.value}:{ticket_id}:{branch_name}"


def compute_analytics(
    records: Iterable[TicketRecord],
    local_branches: Set[str],
    now: datetime,
    stale_after_days: int = 30,
    limit: int = 10,
) -> AnalyticsSnapshot:
    """Aggregate association counts, aging and usage.

    Args:
        records: Ticket records from the association store
        local_branches: Names of branches that currently exist
        now: Current time
        stale_after_days: Age beyond which an association counts as old
        limit: Maximum entries in each list

    Returns:
        AnalyticsSnapshot
    """
    associated = [r for r in records if r.association is not None]
    stale = [r for r in associated if r.association.branch_name not in local_branches]

    aged = []
    for record in associated:
        days = days_between(record.association.last_updated, now)
        if days > stale_after_days:
            aged.append(
                AgedAssociation(
                    ticket_id=record.ticket_id,
                    branch_name=record.association.branch_name,
                    days_since_last_update=days,
                )
            )
    aged.sort(key=lambda a: (-a.days_since_last_update, a.ticket_id))

    usage = []
    for record in associated:
        entry = record.active_entry()
        if entry is None:
            continue
        usage.append(
            BranchUsage(
                ticket_id=record.ticket_id,
                branch_name=entry.branch_name,
                usage_count=entry.use_count,
                last_used=entry.last_used,
            )
        )
    # most used first; ties go to the most recently used
    usage.sort(key=lambda u: (u.usage_count, u.last_used), reverse=True)

    return AnalyticsSnapshot(
        total_associations=len(associated),
        active_associations=len(associated) - len(stale),
        stale_associations=len(stale),
        oldest_associations=aged[:limit],
        most_used_branches=usage[:limit],
    )


def compute_cleanup_suggestions(
    records: Iterable[TicketRecord],
    local_branches: Set[str],
    now: datetime,
    stale_after_days: int = 30,
) -> List[CleanupSuggestion]:
    """Find stale, old and duplicate associations.

    A missing branch yields a ``stale`` suggestion; a branch unused for more
    than ``stale_after_days`` yields an ``old`` one. A stale link is not also
    reported as old. Each branch referenced by more than one ticket yields a
    single ``duplicate`` suggestion naming all of them.

    Args:
        records: Ticket records from the association store
        local_branches: Names of branches that currently exist
        now: Current time
        stale_after_days: Days without use before a link is old

    Returns:
        Suggestions ordered stale, old, duplicate
    """
    stale: List[CleanupSuggestion] = []
    old: List[CleanupSuggestion] = []
    tickets_by_branch: Dict[str, List[str]] = {}

    for record in records:
        association = record.association
        if association is None:
            continue
        branch_name = association.branch_name
        tickets_by_branch.setdefault(branch_name, []).append(record.ticket_id)

        if branch_name not in local_branches:
            stale.append(
                CleanupSuggestion(
                    id=suggestion_id(SuggestionKind.STALE, record.ticket_id, branch_name),
                    kind=SuggestionKind.STALE,
                    ticket_id=record.ticket_id,
                    ticket_ids=[record.ticket_id],
                    branch_name=branch_name,
                    reason=f"Branch '{branch_name}' no longer exists",
                )
            )
            continue

        last_used = _last_used(record) or association.last_updated
        days = days_between(last_used, now)
        if days > stale_after_days:
            old.append(
                CleanupSuggestion(
                    id=suggestion_id(SuggestionKind.OLD, record.ticket_id, branch_name),
                    kind=SuggestionKind.OLD,
                    ticket_id=record.ticket_id,
                    ticket_ids=[record.ticket_id],
                    branch_name=branch_name,
                    reason=f"Branch '{branch_name}' has not been used in {days} days",
                    days_since_last_used=days,
                )
            )

    duplicates = []
    for branch_name, ticket_ids in sorted(tickets_by_branch.items()):
        if len(ticket_ids) < 2:
            continue
        duplicates.append(
            CleanupSuggestion(
                id=suggestion_id(SuggestionKind.DUPLICATE, ",".join(ticket_ids), branch_name),
                kind=SuggestionKind.DUPLICATE,
                ticket_id=ticket_ids[0],
                ticket_ids=list(ticket_ids),
                branch_name=branch_name,
                reason=f"Branch '{branch_name}' is associated with {', '.join(ticket_ids)}",
            )
        )

    return stale + old + duplicates


def _last_used(record: TicketRecord) -> Optional[datetime]:
    entry = record.active_entry()
    return entry.last_used if entry else None
