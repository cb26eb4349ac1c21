"""Persistent mapping of tickets to their active branch and branch history."""

from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from branchlink.errors import StoreIOError
from branchlink.models.association import BranchAssociation, HistoryEntry, TicketRecord
from branchlink.storage.kv import KeyValueStore

logger = structlog.get_logger(__name__)

RECORD_PREFIX = "ticket:"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AssociationStore:
    """Stores one ``TicketRecord`` per ticket in a key-value store.

    Every mutation loads the ticket's record, changes it in memory and writes
    the whole record back under a single key. Replaying a mutation after a
    failed or interrupted write therefore converges on the same record.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the store.

        Args:
            kv: Persistence substrate
            clock: Returns the current time (defaults to UTC now)
        """
        self.kv = kv
        self.clock = clock or utc_now

    @staticmethod
    def _key(ticket_id: str) -> str:
        return f"{RECORD_PREFIX}{ticket_id}"

    def _load(self, ticket_id: str) -> Optional[TicketRecord]:
        data = self.kv.get(self._key(ticket_id))
        if data is None:
            return None
        try:
            return TicketRecord.model_validate(data)
        except PydanticValidationError as e:
            raise StoreIOError(f"Corrupt record for {ticket_id}: {e}") from e

    def _save(self, record: TicketRecord) -> None:
        self.kv.set(self._key(record.ticket_id), record.model_dump(mode="json"))

    def records(self) -> List[TicketRecord]:
        """Load every ticket record, ordered by ticket id."""
        ticket_ids = sorted(key[len(RECORD_PREFIX):] for key in self.kv.keys(RECORD_PREFIX))
        records = []
        for ticket_id in ticket_ids:
            record = self._load(ticket_id)
            if record is not None:
                records.append(record)
        return records

    def get(self, ticket_id: str) -> Optional[BranchAssociation]:
        """Get the active association for a ticket.

        Args:
            ticket_id: Ticket identifier

        Returns:
            BranchAssociation if one is active, None otherwise
        """
        record = self._load(ticket_id)
        return record.association if record else None

    def set(
        self,
        ticket_id: str,
        branch_name: str,
        is_auto_detected: bool = False,
    ) -> BranchAssociation:
        """Associate a ticket with a branch, superseding any previous branch.

        If the ticket is already associated with ``branch_name`` its active
        history entry is refreshed in place; otherwise the previous entry is
        demoted and a new active entry is appended.

        Args:
            ticket_id: Ticket identifier
            branch_name: Branch name
            is_auto_detected: Whether the link came from auto-detection

        Returns:
            The new active association
        """
        now = self.clock()
        record = self._load(ticket_id) or TicketRecord(ticket_id=ticket_id)

        active = record.active_entry()
        if active is not None and active.branch_name == branch_name:
            active.last_used = now
        else:
            for entry in record.history:
                entry.is_active = False
            record.history.append(
                HistoryEntry(
                    branch_name=branch_name,
                    associated_at=now,
                    last_used=now,
                    is_active=True,
                )
            )

        previous = record.association
        record.association = BranchAssociation(
            ticket_id=ticket_id,
            branch_name=branch_name,
            last_updated=now,
            is_auto_detected=is_auto_detected,
        )
        self._save(record)

        if previous is not None and previous.branch_name != branch_name:
            logger.info(
                "association_superseded",
                ticket_id=ticket_id,
                previous_branch=previous.branch_name,
                branch=branch_name,
            )
        return record.association

    def remove(self, ticket_id: str) -> Optional[BranchAssociation]:
        """Drop a ticket's active association, keeping its history.

        Args:
            ticket_id: Ticket identifier

        Returns:
            The removed association, or None if there was none
        """
        record = self._load(ticket_id)
        if record is None or record.association is None:
            return None

        removed = record.association
        for entry in record.history:
            entry.is_active = False
        record.association = None
        self._save(record)
        return removed

    def touch(self, ticket_id: str) -> Optional[HistoryEntry]:
        """Record a use of the ticket's active branch.

        Args:
            ticket_id: Ticket identifier

        Returns:
            The updated history entry, or None if the ticket is unassociated
        """
        record = self._load(ticket_id)
        if record is None:
            return None
        active = record.active_entry()
        if active is None:
            return None

        active.last_used = self.clock()
        active.use_count += 1
        self._save(record)
        return active

    def all_associations(self) -> Dict[str, BranchAssociation]:
        """Get every active association keyed by ticket id."""
        return {
            record.ticket_id: record.association
            for record in self.records()
            if record.association is not None
        }

    def history_for(self, ticket_id: str) -> List[HistoryEntry]:
        """Get a ticket's branch timeline, most recent first."""
        record = self._load(ticket_id)
        if record is None:
            return []
        # entries are appended in association order
        return list(reversed(record.history))

    def ticket_for_branch(self, branch_name: str) -> Optional[str]:
        """Find the ticket whose active association names branch_name."""
        for record in self.records():
            if record.association and record.association.branch_name == branch_name:
                return record.ticket_id
        return None
