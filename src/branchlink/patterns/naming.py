"""Branch-name generation for the start-work flow."""

import re
from typing import Optional

from branchlink.errors import ValidationError

CONVENTIONS = ("conventional", "simple", "ticket-only", "custom")

_SLUG_MAX_LENGTH = 50
_ALLOWED_CHARS = re.compile(r"^[A-Za-z0-9/_.\-]+$")


def slugify(title: str) -> str:
    """Turn a ticket title into a lowercase, hyphen-separated slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return slug[:_SLUG_MAX_LENGTH].rstrip("-")


def generate_branch_name(
    ticket_id: str,
    title: Optional[str] = None,
    convention: str = "conventional",
    template: Optional[str] = None,
) -> str:
    """Suggest a branch name for a ticket.

    Args:
        ticket_id: Ticket identifier, e.g. ENG-123
        title: Ticket title used for the slug (optional)
        convention: conventional, simple, ticket-only or custom
        template: Template for the custom convention with {type},
            {identifier} and {slug} placeholders

    Returns:
        Suggested branch name

    Raises:
        ValidationError: If ticket_id is empty or the convention is unknown
    """
    ticket_id = (ticket_id or "").strip()
    if not ticket_id:
        raise ValidationError("Ticket id cannot be empty")
    if convention not in CONVENTIONS:
        raise ValidationError(f"Unknown branch naming convention: {convention}")

    identifier = ticket_id.lower()
    slug = slugify(title or "")
    with_slug = f"{identifier}-{slug}" if slug else identifier

    if convention == "simple":
        return with_slug
    if convention == "ticket-only":
        return identifier
    if convention == "custom" and template:
        name = (
            template.replace("{type}", "feat")
            .replace("{identifier}", identifier)
            .replace("{slug}", slug)
        )
        # an empty slug leaves a dangling separator behind
        return re.sub(r"[-_/]+$", "", name)
    return f"feat/{with_slug}"


def validate_branch_name(branch_name: Optional[str], strict: bool = True) -> str:
    """Validate a branch name, returning it stripped of surrounding whitespace.

    Args:
        branch_name: Name to check
        strict: Also enforce the character set used for generated names.
            Non-strict checks only reject empty names and embedded whitespace,
            which is enough for names of branches that already exist.

    Raises:
        ValidationError: If the name is empty or git would reject it
    """
    name = (branch_name or "").strip()
    if not name:
        raise ValidationError("Branch name cannot be empty")
    if not strict:
        if any(ch.isspace() for ch in name):
            raise ValidationError(f"Branch name contains whitespace: {name}")
        return name
    if not _ALLOWED_CHARS.match(name):
        raise ValidationError(f"Branch name contains invalid characters: {name}")
    if (
        name.startswith("-")
        or name.startswith("/")
        or name.endswith("/")
        or name.endswith(".")
        or name.endswith(".lock")
        or ".." in name
        or "//" in name
        or "/." in name
    ):
        raise ValidationError(f"Branch name is not a valid git ref: {name}")
    return name
