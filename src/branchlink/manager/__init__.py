"""Association lifecycle orchestration and diagnostics."""

from branchlink.manager.association_manager import AssociationManager, validate_ticket_id
from branchlink.manager.diagnostics import compute_analytics, compute_cleanup_suggestions

__all__ = [
    "AssociationManager",
    "validate_ticket_id",
    "compute_analytics",
    "compute_cleanup_suggestions",
]
