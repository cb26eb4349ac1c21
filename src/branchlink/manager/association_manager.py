"""Association manager - orchestrates branch-ticket association lifecycle."""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

import structlog

from branchlink.errors import (
    AlreadyAssociatedError,
    BranchLinkError,
    NotAssociatedError,
    StaleAssociationError,
    StoreIOError,
    ValidationError,
)
from branchlink.manager.diagnostics import compute_analytics, compute_cleanup_suggestions
from branchlink.models.association import AssociationState, BranchAssociation, HistoryEntry
from branchlink.models.config import Settings
from branchlink.models.results import (
    AnalyticsSnapshot,
    BatchResult,
    Candidate,
    CheckoutDecision,
    CheckoutResult,
    CheckoutStatus,
    CleanupResult,
    CleanupSuggestion,
    DecisionRequest,
    ItemOutcome,
    SuggestionKind,
)
from branchlink.patterns.matcher import TicketPatternMatcher
from branchlink.patterns.naming import generate_branch_name, validate_branch_name
from branchlink.storage.association_store import AssociationStore
from branchlink.storage.kv import JsonFileKeyValueStore
from branchlink.tasks import run_to_completion
from branchlink.vcs.git_bridge import GitBridge

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def validate_ticket_id(ticket_id: Optional[str]) -> str:
    """Return the ticket id stripped of whitespace and uppercased.

    Ticket ids found in branch names are uppercased too, so both routes
    address the same record.

    Raises:
        ValidationError: If the ticket id is empty
    """
    value = (ticket_id or "").strip()
    if not value:
        raise ValidationError("Ticket id cannot be empty")
    return value.upper()


class AssociationManager:
    """Links tickets to branches and switches between them safely.

    Mutations of one ticket are serialized by a per-ticket lock. Reads take
    no lock and see whatever the store holds when they run.
    """

    def __init__(
        self,
        git_bridge: GitBridge,
        store: AssociationStore,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the association manager.

        Args:
            git_bridge: Git access for the workspace
            store: Association persistence
            settings: Application settings (loaded from environment if None)
            clock: Returns the current time (defaults to UTC now)
        """
        self.git = git_bridge
        self.store = store
        self.settings = settings or Settings()
        self.clock = clock or store.clock
        self.matcher = TicketPatternMatcher(self.settings.ticket_pattern)
        self._ticket_locks: Dict[str, asyncio.Lock] = {}

    @classmethod
    def for_workspace(
        cls, repo_path: Path, settings: Optional[Settings] = None
    ) -> "AssociationManager":
        """Build a manager persisting to the workspace's state directory.

        State lives in ``settings.state_dir`` if set, otherwise in
        ``<git dir>/branchlink`` so it stays scoped to the repository.
        """
        settings = settings or Settings()
        git_bridge = GitBridge(repo_path)
        state_dir = settings.state_dir or git_bridge.git_dir / "branchlink"
        store = AssociationStore(JsonFileKeyValueStore(state_dir))
        return cls(git_bridge, store, settings)

    def _lock_for(self, ticket_id: str) -> asyncio.Lock:
        lock = self._ticket_locks.get(ticket_id)
        if lock is None:
            lock = asyncio.Lock()
            self._ticket_locks[ticket_id] = lock
        return lock

    async def _store_call(self, operation: str, func: Callable[..., T], *args: Any) -> T:
        """Call the store, retrying once after a backoff on I/O errors."""
        # runs on the event loop thread: every ticket shares one state document,
        # so writes from different tickets must not interleave
        try:
            return func(*args)
        except StoreIOError as e:
            logger.warning("store_io_retry", operation=operation, error=str(e))
            await asyncio.sleep(self.settings.store_retry_backoff_seconds)
            return func(*args)

    # ============================================================================
    # Lifecycle
    # ============================================================================

    async def associate_branch(
        self,
        ticket_id: str,
        branch_name: str,
        is_auto_detected: bool = False,
    ) -> BranchAssociation:
        """Associate a ticket with a branch, superseding any previous branch.

        The branch does not need to exist yet.

        Args:
            ticket_id: Ticket identifier
            branch_name: Branch name
            is_auto_detected: Whether the pair came from auto-detection

        Returns:
            The active association

        Raises:
            ValidationError: If the ticket id or branch name is empty or invalid
        """
        ticket_id = validate_ticket_id(ticket_id)
        branch_name = validate_branch_name(branch_name, strict=False)

        async with self._lock_for(ticket_id):
            association = await self._store_call(
                "associate", self.store.set, ticket_id, branch_name, is_auto_detected
            )

        logger.info(
            "branch_associated",
            ticket_id=ticket_id,
            branch=branch_name,
            auto_detected=is_auto_detected,
        )
        return association

    async def disassociate(self, ticket_id: str) -> Optional[BranchAssociation]:
        """Remove a ticket's active association; its history is kept.

        Returns:
            The removed association, or None if the ticket had none
        """
        ticket_id = validate_ticket_id(ticket_id)

        async with self._lock_for(ticket_id):
            removed = await self._store_call("disassociate", self.store.remove, ticket_id)

        if removed is None:
            logger.info("disassociate_noop", ticket_id=ticket_id)
        else:
            logger.info("branch_disassociated", ticket_id=ticket_id, branch=removed.branch_name)
        return removed

    async def get_state(self, ticket_id: str) -> AssociationState:
        """Resolve a ticket's state, checking branch existence on demand."""
        association = await self.get_association(ticket_id)
        if association is None:
            return AssociationState.UNASSOCIATED
        if await self.git.branch_exists(association.branch_name):
            return AssociationState.ASSOCIATED
        return AssociationState.STALE

    async def get_association(self, ticket_id: str) -> Optional[BranchAssociation]:
        ticket_id = validate_ticket_id(ticket_id)
        return await self._store_call("get", self.store.get, ticket_id)

    async def list_associations(self) -> Dict[str, BranchAssociation]:
        return await self._store_call("list", self.store.all_associations)

    async def history_for(self, ticket_id: str) -> List[HistoryEntry]:
        """Get a ticket's branch timeline, most recent first."""
        ticket_id = validate_ticket_id(ticket_id)
        return await self._store_call("history", self.store.history_for, ticket_id)

    async def ticket_for_branch(self, branch_name: str) -> Optional[str]:
        return await self._store_call("ticket_for_branch", self.store.ticket_for_branch, branch_name)

    # ============================================================================
    # Safe checkout
    # ============================================================================

    def _stash_message(self, ticket_id: str, source: Optional[str], target: str) -> str:
        timestamp = self.clock().isoformat(timespec="seconds")
        return (
            f"branchlink: auto-stash for {ticket_id} from {source or 'detached HEAD'} "
            f"before switching to {target} at {timestamp}"
        )

    async def checkout_for_ticket(
        self,
        ticket_id: str,
        decision: Optional[CheckoutDecision] = None,
    ) -> CheckoutResult:
        """Check out the branch associated with a ticket.

        When the working tree has uncommitted changes and no decision is
        given, nothing is changed and a decision request is returned instead;
        the caller must come back with one of its three options.

        Args:
            ticket_id: Ticket identifier
            decision: How to handle uncommitted changes

        Returns:
            CheckoutResult

        Raises:
            NotAssociatedError: If the ticket has no association
            StaleAssociationError: If the associated branch no longer exists
            CheckoutConflictError: If changes appeared after they were checked
            GitError: If git fails
        """
        ticket_id = validate_ticket_id(ticket_id)
        if decision is not None:
            decision = CheckoutDecision(decision)

        async with self._lock_for(ticket_id):
            association = await self._store_call("get", self.store.get, ticket_id)
            if association is None:
                raise NotAssociatedError(ticket_id)
            branch_name = association.branch_name

            if not await self.git.branch_exists(branch_name):
                logger.warning("stale_association", ticket_id=ticket_id, branch=branch_name)
                raise StaleAssociationError(ticket_id, branch_name)

            current = await self.git.current_branch()
            if current == branch_name:
                await self._store_call("touch", self.store.touch, ticket_id)
                return CheckoutResult(
                    status=CheckoutStatus.CHECKED_OUT,
                    ticket_id=ticket_id,
                    branch_name=branch_name,
                )

            if decision == CheckoutDecision.CANCEL:
                logger.info("checkout_cancelled", ticket_id=ticket_id, branch=branch_name)
                return CheckoutResult(
                    status=CheckoutStatus.CANCELLED,
                    ticket_id=ticket_id,
                    branch_name=branch_name,
                )

            changes = await self.git.changed_files_summary(self.settings.changed_files_limit)
            if changes.total and decision is None:
                logger.info(
                    "checkout_decision_required",
                    ticket_id=ticket_id,
                    branch=branch_name,
                    changed_files=changes.total,
                )
                return CheckoutResult(
                    status=CheckoutStatus.DECISION_REQUIRED,
                    ticket_id=ticket_id,
                    branch_name=branch_name,
                    decision_request=DecisionRequest(
                        ticket_id=ticket_id,
                        branch_name=branch_name,
                        current_branch=current,
                        changes=changes,
                    ),
                )

            stash_message = None
            if changes.total and decision == CheckoutDecision.STASH_AND_CHECKOUT:
                stash_message = self._stash_message(ticket_id, current, branch_name)
            allow_uncommitted = bool(changes.total) and decision == CheckoutDecision.CHECKOUT_ANYWAY

            # git and store must both finish once the switch has started
            await run_to_completion(
                self._switch(ticket_id, branch_name, stash_message, allow_uncommitted)
            )

        return CheckoutResult(
            status=CheckoutStatus.CHECKED_OUT,
            ticket_id=ticket_id,
            branch_name=branch_name,
            stash_message=stash_message,
        )

    async def _switch(
        self,
        ticket_id: str,
        branch_name: str,
        stash_message: Optional[str],
        allow_uncommitted: bool,
    ) -> None:
        if stash_message:
            await self.git.stash(stash_message)
        try:
            await self.git.checkout(branch_name, allow_uncommitted=allow_uncommitted)
        except BranchLinkError as e:
            if stash_message:
                await self._restore_stash(ticket_id, branch_name, stash_message, e)
            raise
        await self._store_call("touch", self.store.touch, ticket_id)
        logger.info(
            "ticket_checked_out",
            ticket_id=ticket_id,
            branch=branch_name,
            stashed=stash_message is not None,
        )

    async def _restore_stash(
        self,
        ticket_id: str,
        branch_name: str,
        stash_message: str,
        error: Exception,
    ) -> None:
        """Put stashed changes back after the checkout they were made for failed."""
        logger.warning(
            "checkout_failed_after_stash",
            ticket_id=ticket_id,
            branch=branch_name,
            stash=stash_message,
            error=str(error),
        )
        try:
            await self.git.stash_pop()
        except BranchLinkError as pop_error:
            logger.error(
                "stash_not_restored",
                ticket_id=ticket_id,
                stash=stash_message,
                error=str(pop_error),
            )

    # ============================================================================
    # Detection
    # ============================================================================

    async def auto_detect_associations(self) -> List[Candidate]:
        """Propose ticket-branch pairs from branch names.

        Only tickets without an active association are proposed, and branches
        that are already some ticket's active branch are skipped. Nothing is
        written; pass the candidates the user accepts to
        ``confirm_candidates``.

        Returns:
            Candidates grouped by ticket id
        """
        branches = await self.git.list_local_branches()
        associations = await self.list_associations()
        active_branches = {a.branch_name for a in associations.values()}

        grouped: Dict[str, List[Candidate]] = {}
        skipped = 0
        for branch_name in branches:
            if branch_name in active_branches:
                continue
            try:
                ticket_id = self.matcher.extract(branch_name)
                if ticket_id is None or ticket_id in associations:
                    continue
                candidate = Candidate(ticket_id=ticket_id, branch_name=branch_name)
            except (ValueError, TypeError) as e:
                skipped += 1
                logger.warning("auto_detect_branch_skipped", branch=branch_name, error=str(e))
                continue
            grouped.setdefault(ticket_id, []).append(candidate)

        candidates = [c for ticket_id in sorted(grouped) for c in grouped[ticket_id]]
        logger.info(
            "auto_detect_completed",
            branches=len(branches),
            candidates=len(candidates),
            skipped=skipped,
        )
        return candidates

    async def confirm_candidates(self, candidates: Iterable[Candidate]) -> BatchResult:
        """Associate confirmed candidates, isolating per-item failures.

        A candidate whose ticket already has an association, including one
        made by an earlier candidate in the same batch, fails with
        ``AlreadyAssociatedError`` and leaves that association in place.
        """
        result = BatchResult()
        for candidate in candidates:
            outcome = ItemOutcome(ticket_id=candidate.ticket_id, branch_name=candidate.branch_name)
            try:
                await self._associate_unassociated(candidate)
            except BranchLinkError as e:
                outcome.error = str(e)
                result.failed.append(outcome)
                logger.warning(
                    "candidate_association_failed",
                    ticket_id=candidate.ticket_id,
                    branch=candidate.branch_name,
                    error=str(e),
                )
                continue
            result.succeeded.append(outcome)
        return result

    async def _associate_unassociated(self, candidate: Candidate) -> BranchAssociation:
        ticket_id = validate_ticket_id(candidate.ticket_id)
        branch_name = validate_branch_name(candidate.branch_name, strict=False)

        async with self._lock_for(ticket_id):
            existing = await self._store_call("get", self.store.get, ticket_id)
            if existing is not None:
                raise AlreadyAssociatedError(ticket_id, existing.branch_name)
            association = await self._store_call(
                "associate", self.store.set, ticket_id, branch_name, True
            )

        logger.info("branch_associated", ticket_id=ticket_id, branch=branch_name, auto_detected=True)
        return association

    async def suggest_branches_for_ticket(self, ticket_id: str) -> List[str]:
        """List local branches whose names refer to the ticket."""
        ticket_id = validate_ticket_id(ticket_id)
        branches = await self.git.list_local_branches()
        return [b for b in branches if self.matcher.matches_ticket(b, ticket_id)]

    async def auto_associate_current_branch(self) -> Optional[BranchAssociation]:
        """Associate the checked-out branch with the ticket named in it.

        Returns:
            The association, or None on a detached HEAD or when the branch
            name contains no ticket id
        """
        current = await self.git.current_branch()
        if current is None:
            return None
        ticket_id = self.matcher.extract(current)
        if ticket_id is None:
            return None

        existing = await self.get_association(ticket_id)
        if existing is not None and existing.branch_name == current:
            return existing
        return await self.associate_branch(ticket_id, current, is_auto_detected=True)

    async def start_work(
        self,
        ticket_id: str,
        title: Optional[str] = None,
        branch_name: Optional[str] = None,
        start_point: Optional[str] = None,
    ) -> BranchAssociation:
        """Create a branch for a ticket, check it out and associate it.

        The name comes from ``branch_name`` or, if omitted, from the
        configured naming convention. An existing branch is associated
        without being recreated.

        Args:
            ticket_id: Ticket identifier
            title: Ticket title for the branch slug
            branch_name: Explicit branch name
            start_point: Commit-ish to branch from

        Returns:
            The new association
        """
        ticket_id = validate_ticket_id(ticket_id)
        if branch_name is None:
            branch_name = generate_branch_name(
                ticket_id,
                title,
                self.settings.branch_naming_convention,
                self.settings.custom_branch_template,
            )
        branch_name = validate_branch_name(branch_name)

        async with self._lock_for(ticket_id):
            create = not await self.git.branch_exists(branch_name)
            association = await run_to_completion(
                self._create_and_associate(ticket_id, branch_name, start_point, create)
            )
        return association

    async def _create_and_associate(
        self,
        ticket_id: str,
        branch_name: str,
        start_point: Optional[str],
        create: bool,
    ) -> BranchAssociation:
        if create:
            await self.git.create_branch(branch_name, start_point)
        association = await self._store_call("associate", self.store.set, ticket_id, branch_name, False)
        logger.info("work_started", ticket_id=ticket_id, branch=branch_name, created=create)
        return association

    # ============================================================================
    # Diagnostics
    # ============================================================================

    async def get_analytics(self) -> AnalyticsSnapshot:
        """Aggregate association counts, aging and most-used branches."""
        branches = set(await self.git.list_local_branches())
        records = await self._store_call("records", self.store.records)
        return compute_analytics(
            records,
            branches,
            self.clock(),
            stale_after_days=self.settings.stale_after_days,
            limit=self.settings.analytics_limit,
        )

    async def get_cleanup_suggestions(self) -> List[CleanupSuggestion]:
        """Report stale, old and duplicate associations."""
        branches = set(await self.git.list_local_branches())
        records = await self._store_call("records", self.store.records)
        return compute_cleanup_suggestions(
            records,
            branches,
            self.clock(),
            stale_after_days=self.settings.stale_after_days,
        )

    async def apply_cleanup(self, suggestion_ids: Iterable[str]) -> CleanupResult:
        """Act on cleanup suggestions the caller has confirmed.

        Stale and old suggestions disassociate their ticket. Duplicate
        suggestions are advisory and always skipped. Ids that no longer match
        a current suggestion fail without affecting the rest of the batch.

        Args:
            suggestion_ids: Ids from ``get_cleanup_suggestions``

        Returns:
            CleanupResult
        """
        suggestions = {s.id: s for s in await self.get_cleanup_suggestions()}
        result = CleanupResult()

        for suggestion_id in suggestion_ids:
            suggestion = suggestions.get(suggestion_id)
            if suggestion is None:
                result.failed[suggestion_id] = "Unknown or outdated suggestion"
                continue
            if suggestion.kind == SuggestionKind.DUPLICATE:
                result.skipped.append(suggestion_id)
                continue

            try:
                removed = await self._remove_if_unchanged(suggestion.ticket_id, suggestion.branch_name)
            except BranchLinkError as e:
                result.failed[suggestion_id] = str(e)
                logger.warning("cleanup_item_failed", suggestion=suggestion_id, error=str(e))
                continue
            if not removed:
                result.failed[suggestion_id] = "Association changed since the suggestion was made"
                continue
            result.applied.append(suggestion_id)

        logger.info(
            "cleanup_applied",
            applied=len(result.applied),
            skipped=len(result.skipped),
            failed=len(result.failed),
        )
        return result

    async def _remove_if_unchanged(self, ticket_id: str, branch_name: str) -> bool:
        async with self._lock_for(ticket_id):
            current = await self._store_call("get", self.store.get, ticket_id)
            if current is None or current.branch_name != branch_name:
                return False
            await self._store_call("disassociate", self.store.remove, ticket_id)
        return True

    async def cleanup_stale_associations(self) -> int:
        """Remove every association whose branch no longer exists.

        Returns:
            Number of associations removed
        """
        suggestions = await self.get_cleanup_suggestions()
        stale_ids = [s.id for s in suggestions if s.auto_actionable]
        if not stale_ids:
            return 0
        result = await self.apply_cleanup(stale_ids)
        return len(result.applied)
