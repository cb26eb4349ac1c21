"""Error taxonomy for branch-ticket association operations."""

from typing import List, Optional


class BranchLinkError(Exception):
    """Base class for all branchlink errors."""


class ValidationError(BranchLinkError):
    """Empty or malformed input, rejected before any I/O."""


class GitError(BranchLinkError):
    """Git could not be run, or the workspace is not a repository."""

    def __init__(
        self,
        message: str,
        command: Optional[List[str]] = None,
        stderr: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.command = command or []
        self.stderr = stderr


class BranchNotFoundError(BranchLinkError):
    """A referenced local branch does not exist."""

    def __init__(self, branch_name: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Branch not found: {branch_name}")
        self.branch_name = branch_name


class CheckoutConflictError(BranchLinkError):
    """Checkout refused because the working tree has uncommitted changes."""

    def __init__(self, branch_name: str, changed_files: Optional[List[str]] = None) -> None:
        super().__init__(
            f"Uncommitted changes would be carried into or lost switching to {branch_name}"
        )
        self.branch_name = branch_name
        self.changed_files = changed_files or []


class StoreIOError(BranchLinkError):
    """The persistence substrate could not be read or written."""


class NotAssociatedError(BranchLinkError):
    """The ticket has no active branch association."""

    def __init__(self, ticket_id: str) -> None:
        super().__init__(f"No branch associated with {ticket_id}")
        self.ticket_id = ticket_id


class AlreadyAssociatedError(BranchLinkError):
    """The ticket already has an active association that would be replaced."""

    def __init__(self, ticket_id: str, branch_name: str) -> None:
        super().__init__(f"{ticket_id} is already associated with {branch_name}")
        self.ticket_id = ticket_id
        self.branch_name = branch_name


class StaleAssociationError(BranchNotFoundError):
    """The ticket's associated branch no longer exists locally."""

    def __init__(self, ticket_id: str, branch_name: str) -> None:
        super().__init__(
            branch_name,
            f"Branch '{branch_name}' associated with {ticket_id} no longer exists",
        )
        self.ticket_id = ticket_id
