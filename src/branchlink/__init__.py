"""Link version-control branches to tracking-ticket identifiers."""

from branchlink.errors import (
    AlreadyAssociatedError,
    BranchLinkError,
    BranchNotFoundError,
    CheckoutConflictError,
    GitError,
    NotAssociatedError,
    StaleAssociationError,
    StoreIOError,
    ValidationError,
)
from branchlink.manager import AssociationManager
from branchlink.models import AssociationState, CheckoutDecision, CheckoutStatus, Settings
from branchlink.patterns import extract_ticket_id
from branchlink.storage import AssociationStore, InMemoryKeyValueStore, JsonFileKeyValueStore
from branchlink.vcs import GitBridge

__version__ = "0.1.0"

__all__ = [
    "AlreadyAssociatedError",
    "AssociationManager",
    "AssociationState",
    "AssociationStore",
    "BranchLinkError",
    "BranchNotFoundError",
    "CheckoutConflictError",
    "CheckoutDecision",
    "CheckoutStatus",
    "GitBridge",
    "GitError",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "NotAssociatedError",
    "Settings",
    "StaleAssociationError",
    "StoreIOError",
    "ValidationError",
    "extract_ticket_id",
]
