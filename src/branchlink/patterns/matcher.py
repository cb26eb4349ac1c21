"""Ticket identifier extraction from branch names."""

import re
from typing import Optional, Union

from branchlink.models.config import DEFAULT_TICKET_PATTERN

Grammar = Union[str, re.Pattern]

_DEFAULT_GRAMMAR = re.compile(DEFAULT_TICKET_PATTERN, re.IGNORECASE)


def compile_grammar(grammar: Optional[Grammar] = None) -> re.Pattern:
    """Compile a ticket grammar, matching case-insensitively.

    Args:
        grammar: Regex string or compiled pattern. None selects the default
            letters-hyphen-digits grammar.

    Returns:
        Compiled pattern
    """
    if grammar is None:
        return _DEFAULT_GRAMMAR
    if isinstance(grammar, str):
        return re.compile(grammar, re.IGNORECASE)
    if not grammar.flags & re.IGNORECASE:
        return re.compile(grammar.pattern, grammar.flags | re.IGNORECASE)
    return grammar


def extract_ticket_id(branch_name: str, grammar: Optional[Grammar] = None) -> Optional[str]:
    """Extract a ticket identifier from a branch name.

    The leftmost match wins and the result is normalized to uppercase, so
    ``feature/ENG-123-fix-login`` and ``eng-123`` both yield ``ENG-123``.
    If the grammar defines a capture group, group 1 is the identifier.

    Args:
        branch_name: Branch name to inspect
        grammar: Optional custom grammar

    Returns:
        Ticket identifier, or None if the name contains none
    """
    if not branch_name:
        return None

    match = compile_grammar(grammar).search(branch_name)
    if match is None:
        return None

    ticket_id = match.group(1) if match.re.groups else match.group(0)
    if not ticket_id:
        return None
    return ticket_id.upper()


class TicketPatternMatcher:
    """Extracts ticket identifiers using one compiled grammar."""

    def __init__(self, grammar: Optional[Grammar] = None) -> None:
        self.pattern = compile_grammar(grammar)

    def extract(self, branch_name: str) -> Optional[str]:
        return extract_ticket_id(branch_name, self.pattern)

    def matches_ticket(self, branch_name: str, ticket_id: str) -> bool:
        """Check whether a branch refers to the given ticket.

        A branch refers to a ticket when its extracted identifier equals the
        ticket, or when the ticket id appears in the name as a whole token,
        ignoring case (ENG-7 does not match ENG-70).
        """
        if not ticket_id:
            return False
        if self.extract(branch_name) == ticket_id.upper():
            return True
        token = re.compile(
            rf"(?<![A-Za-z0-9]){re.escape(ticket_id)}(?![A-Za-z0-9])", re.IGNORECASE
        )
        return token.search(branch_name) is not None
