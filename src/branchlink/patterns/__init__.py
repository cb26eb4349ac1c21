"""Branch naming patterns: ticket extraction and branch-name generation."""

from branchlink.patterns.matcher import TicketPatternMatcher, compile_grammar, extract_ticket_id
from branchlink.patterns.naming import (
    CONVENTIONS,
    generate_branch_name,
    slugify,
    validate_branch_name,
)

__all__ = [
    "TicketPatternMatcher",
    "compile_grammar",
    "extract_ticket_id",
    "CONVENTIONS",
    "generate_branch_name",
    "slugify",
    "validate_branch_name",
]
