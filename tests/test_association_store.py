"""Tests for association store persistence and history."""

import tempfile
from pathlib import Path

import pytest

from branchlink.errors import StoreIOError
from branchlink.models.association import BranchAssociation, HistoryEntry, TicketRecord
from branchlink.storage.association_store import AssociationStore
from branchlink.storage.kv import InMemoryKeyValueStore, JsonFileKeyValueStore


@pytest.fixture
def store(clock):
    """Create an AssociationStore over an in-memory key-value store."""
    return AssociationStore(InMemoryKeyValueStore(), clock=clock)


def active_entries(store, ticket_id):
    return [e for e in store.history_for(ticket_id) if e.is_active]


class TestRecordModels:
    """Test Pydantic record models."""

    def test_ticket_record_creation(self):
        """Test creating an empty TicketRecord."""
        record = TicketRecord(ticket_id="ENG-1")
        assert record.association is None
        assert record.history == []
        assert record.active_entry() is None

    def test_active_entry(self, clock):
        """Test finding the active history entry."""
        record = TicketRecord(
            ticket_id="ENG-1",
            history=[
                HistoryEntry(branch_name="old", associated_at=clock(), last_used=clock(), is_active=False),
                HistoryEntry(branch_name="new", associated_at=clock(), last_used=clock()),
            ],
        )
        assert record.active_entry().branch_name == "new"

    def test_record_serialization_round_trip(self, clock):
        """Test a record survives JSON-mode dump and validation."""
        record = TicketRecord(
            ticket_id="ENG-1",
            association=BranchAssociation(
                ticket_id="ENG-1", branch_name="feat/a", last_updated=clock()
            ),
        )
        data = record.model_dump(mode="json")
        assert isinstance(data["association"]["last_updated"], str)
        assert TicketRecord.model_validate(data) == record


class TestAssociationStore:
    """Test AssociationStore functionality."""

    def test_get_missing(self, store):
        """Test get on an unknown ticket."""
        assert store.get("ENG-1") is None
        assert store.history_for("ENG-1") == []

    def test_set_and_get(self, store, clock):
        """Test associating a ticket and reading it back."""
        association = store.set("ENG-1", "feat/a")

        assert association.branch_name == "feat/a"
        assert association.last_updated == clock()
        assert association.is_auto_detected is False
        assert store.get("ENG-1") == association

    def test_set_auto_detected(self, store):
        """Test the auto-detected flag is stored."""
        store.set("ENG-1", "feat/a", is_auto_detected=True)
        assert store.get("ENG-1").is_auto_detected is True

    def test_set_is_idempotent(self, store, clock):
        """Test repeating the same association leaves one active entry."""
        store.set("ENG-1", "feat/a")
        clock.advance(minutes=5)
        store.set("ENG-1", "feat/a")

        history = store.history_for("ENG-1")
        assert len(history) == 1
        assert history[0].is_active
        assert history[0].last_used == clock()

    def test_set_supersedes_previous_branch(self, store, clock):
        """Test re-association demotes the previous branch."""
        store.set("ENG-1", "feat/a")
        clock.advance(hours=1)
        store.set("ENG-1", "feat/b")

        assert store.get("ENG-1").branch_name == "feat/b"
        history = store.history_for("ENG-1")
        assert [e.branch_name for e in history] == ["feat/b", "feat/a"]
        assert [e.is_active for e in history] == [True, False]

    def test_remove_keeps_history(self, store):
        """Test disassociation is a soft delete."""
        store.set("ENG-1", "feat/a")
        removed = store.remove("ENG-1")

        assert removed.branch_name == "feat/a"
        assert store.get("ENG-1") is None
        history = store.history_for("ENG-1")
        assert len(history) == 1
        assert history[0].is_active is False

    def test_remove_missing(self, store):
        """Test removing an unassociated ticket."""
        assert store.remove("ENG-1") is None

    def test_reassociate_after_remove(self, store, clock):
        """Test history records both occurrences, most recent first."""
        store.set("ENG-1", "feat/a")
        first = clock()
        store.remove("ENG-1")
        clock.advance(days=1)
        store.set("ENG-1", "feat/a")

        history = store.history_for("ENG-1")
        assert [e.branch_name for e in history] == ["feat/a", "feat/a"]
        assert history[0].associated_at == clock()
        assert history[1].associated_at == first
        assert len(active_entries(store, "ENG-1")) == 1
        assert history[0].is_active

    def test_at_most_one_active_entry(self, store, clock):
        """Test the single-active invariant across a sequence of mutations."""
        for branch in ["a", "b", "a", "c", "c"]:
            clock.advance(minutes=1)
            store.set("ENG-1", branch)
            assert len(active_entries(store, "ENG-1")) == 1
        store.remove("ENG-1")
        assert active_entries(store, "ENG-1") == []

    def test_touch(self, store, clock):
        """Test touch records a use of the active branch."""
        store.set("ENG-1", "feat/a")
        clock.advance(hours=2)
        entry = store.touch("ENG-1")

        assert entry.use_count == 1
        assert entry.last_used == clock()
        assert store.history_for("ENG-1")[0].use_count == 1

    def test_touch_unassociated(self, store):
        """Test touch without an association does nothing."""
        assert store.touch("ENG-1") is None
        store.set("ENG-1", "feat/a")
        store.remove("ENG-1")
        assert store.touch("ENG-1") is None

    def test_all_associations(self, store):
        """Test listing only active associations."""
        store.set("ENG-2", "feat/b")
        store.set("ENG-1", "feat/a")
        store.set("ENG-3", "feat/c")
        store.remove("ENG-3")

        associations = store.all_associations()
        assert list(associations) == ["ENG-1", "ENG-2"]
        assert associations["ENG-2"].branch_name == "feat/b"

    def test_ticket_for_branch(self, store):
        """Test reverse lookup by branch."""
        store.set("ENG-1", "feat/a")
        assert store.ticket_for_branch("feat/a") == "ENG-1"
        assert store.ticket_for_branch("feat/z") is None

    def test_corrupt_record(self, clock):
        """Test an unreadable record surfaces as a store error."""
        kv = InMemoryKeyValueStore({"ticket:ENG-1": {"bogus": True}})
        store = AssociationStore(kv, clock=clock)

        with pytest.raises(StoreIOError):
            store.get("ENG-1")

    def test_persistence_across_instances(self, clock):
        """Test records survive a reload from the state file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            store = AssociationStore(JsonFileKeyValueStore(Path(tmpdir)), clock=clock)
            store.set("ENG-1", "feat/a")
            store.touch("ENG-1")

            store2 = AssociationStore(JsonFileKeyValueStore(Path(tmpdir)), clock=clock)
            association = store2.get("ENG-1")
            assert association.branch_name == "feat/a"
            assert association.last_updated == clock()
            assert store2.history_for("ENG-1")[0].use_count == 1
