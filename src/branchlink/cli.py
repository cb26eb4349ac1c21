"""Command-line interface for branchlink."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from branchlink.errors import BranchLinkError
from branchlink.log import configure_logging
from branchlink.manager import AssociationManager, validate_ticket_id
from branchlink.models import (
    AssociationState,
    CheckoutDecision,
    CheckoutStatus,
    Settings,
    SuggestionKind,
)

app = typer.Typer(
    name="branchlink",
    help="Link git branches to tracking tickets and switch between them safely",
    add_completion=False,
)
console = Console()

REPO_OPTION = typer.Option(Path("."), "--repo", "-r", help="Path inside the git repository")

_DECISION_CHOICES = {
    "s": CheckoutDecision.STASH_AND_CHECKOUT,
    "a": CheckoutDecision.CHECKOUT_ANYWAY,
    "c": CheckoutDecision.CANCEL,
}


def _manager(repo_path: Path) -> AssociationManager:
    settings = Settings()
    configure_logging(settings.log_level)
    return AssociationManager.for_workspace(repo_path, settings)


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


@app.command()
def associate(
    ticket_id: str = typer.Argument(..., help="Ticket identifier, e.g. ENG-123"),
    branch_name: str = typer.Argument(..., help="Branch to associate"),
    repo_path: Path = REPO_OPTION,
) -> None:
    """Associate a ticket with a branch."""
    try:
        manager = _manager(repo_path)
        association = asyncio.run(manager.associate_branch(ticket_id, branch_name))
        console.print(
            f"[bold green]✓[/bold green] Associated [cyan]{association.ticket_id}[/cyan] "
            f"with [yellow]{association.branch_name}[/yellow]"
        )
    except BranchLinkError as e:
        _fail(e)


@app.command()
def disassociate(
    ticket_id: str = typer.Argument(..., help="Ticket identifier"),
    repo_path: Path = REPO_OPTION,
) -> None:
    """Remove a ticket's branch association (history is kept)."""
    try:
        manager = _manager(repo_path)
        removed = asyncio.run(manager.disassociate(ticket_id))
        if removed is None:
            console.print(f"[yellow]No branch associated with {ticket_id}[/yellow]")
        else:
            console.print(
                f"[bold green]✓[/bold green] Removed association {ticket_id} → {removed.branch_name}"
            )
    except BranchLinkError as e:
        _fail(e)


@app.command()
def checkout(
    ticket_id: str = typer.Argument(..., help="Ticket identifier"),
    decision: Optional[CheckoutDecision] = typer.Option(
        None, "--decision", "-d", help="What to do with uncommitted changes"
    ),
    repo_path: Path = REPO_OPTION,
) -> None:
    """Check out the branch associated with a ticket."""
    try:
        manager = _manager(repo_path)
        result = asyncio.run(manager.checkout_for_ticket(ticket_id, decision))

        if result.status == CheckoutStatus.DECISION_REQUIRED:
            request = result.decision_request
            console.print("[yellow]You have uncommitted changes.[/yellow]")
            console.print(request.changes.render())
            console.print(
                "[dim]Switching branches with uncommitted changes may cause conflicts.[/dim]"
            )
            choice = typer.prompt(
                "[s]tash & checkout, checkout [a]nyway, [c]ancel", default="c"
            ).strip().lower()
            decision = _DECISION_CHOICES.get(choice[:1], CheckoutDecision.CANCEL)
            result = asyncio.run(manager.checkout_for_ticket(ticket_id, decision))

        if result.status == CheckoutStatus.CANCELLED:
            console.print("[yellow]Checkout cancelled; working tree untouched.[/yellow]")
            return

        if result.stash_message:
            console.print("[green]Changes stashed. Use 'git stash pop' to restore them.[/green]")
        console.print(f"[bold green]✓[/bold green] Checked out branch: {result.branch_name}")
    except BranchLinkError as e:
        _fail(e)


@app.command()
def status(
    ticket_id: Optional[str] = typer.Argument(None, help="Ticket identifier (all if omitted)"),
    repo_path: Path = REPO_OPTION,
) -> None:
    """Show associations and their state."""
    try:
        manager = _manager(repo_path)

        async def collect():
            associations = await manager.list_associations()
            if ticket_id is not None:
                wanted = validate_ticket_id(ticket_id)
                associations = {k: v for k, v in associations.items() if k == wanted}
            return [
                (association, await manager.get_state(tid))
                for tid, association in associations.items()
            ]

        rows = asyncio.run(collect())
        if not rows:
            console.print("[yellow]No branch associations[/yellow]")
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Ticket", style="cyan")
        table.add_column("Branch", style="yellow")
        table.add_column("State")
        table.add_column("Updated", style="blue")
        table.add_column("Auto", justify="center")

        for association, state in rows:
            state_style = "green" if state == AssociationState.ASSOCIATED else "red"
            table.add_row(
                association.ticket_id,
                association.branch_name,
                f"[{state_style}]{state.value}[/{state_style}]",
                association.last_updated.strftime("%Y-%m-%d %H:%M"),
                "✓" if association.is_auto_detected else "",
            )
        console.print(table)
    except BranchLinkError as e:
        _fail(e)


@app.command()
def history(
    ticket_id: str = typer.Argument(..., help="Ticket identifier"),
    repo_path: Path = REPO_OPTION,
) -> None:
    """Show every branch ever associated with a ticket."""
    try:
        manager = _manager(repo_path)
        entries = asyncio.run(manager.history_for(ticket_id))
        if not entries:
            console.print(f"[yellow]No branch history for {ticket_id}[/yellow]")
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Branch", style="yellow")
        table.add_column("Associated", style="blue")
        table.add_column("Last used", style="blue")
        table.add_column("Uses", justify="right")
        table.add_column("Active", justify="center")
        for entry in entries:
            table.add_row(
                entry.branch_name,
                entry.associated_at.strftime("%Y-%m-%d %H:%M"),
                entry.last_used.strftime("%Y-%m-%d %H:%M"),
                str(entry.use_count),
                "[green]✓[/green]" if entry.is_active else "",
            )
        console.print(table)
    except BranchLinkError as e:
        _fail(e)


@app.command()
def detect(
    yes: bool = typer.Option(False, "--yes", "-y", help="Accept every candidate without asking"),
    repo_path: Path = REPO_OPTION,
) -> None:
    """Detect ticket ids in branch names and offer to associate them."""
    try:
        manager = _manager(repo_path)
        candidates = asyncio.run(manager.auto_detect_associations())
        if not candidates:
            console.print("[green]No new ticket branches detected.[/green]")
            return

        accepted = []
        for candidate in candidates:
            label = f"{candidate.ticket_id} → {candidate.branch_name}"
            if yes or typer.confirm(f"Associate {label}?", default=True):
                accepted.append(candidate)

        if not accepted:
            console.print("[yellow]Nothing associated.[/yellow]")
            return

        result = asyncio.run(manager.confirm_candidates(accepted))
        console.print(f"[bold green]✓[/bold green] Associated {len(result.succeeded)} branches")
        for outcome in result.failed:
            console.print(f"[red]✗ {outcome.ticket_id} → {outcome.branch_name}: {outcome.error}[/red]")
    except BranchLinkError as e:
        _fail(e)


@app.command()
def analytics(repo_path: Path = REPO_OPTION) -> None:
    """Show association counts, aging and usage."""
    try:
        manager = _manager(repo_path)
        snapshot = asyncio.run(manager.get_analytics())

        console.print("\n[bold]Branch Analytics[/bold]")
        console.print(f"[cyan]Total associations:[/cyan] {snapshot.total_associations}")
        console.print(f"[cyan]Active:[/cyan] {snapshot.active_associations}")
        console.print(f"[cyan]Stale:[/cyan] {snapshot.stale_associations}")

        if snapshot.most_used_branches:
            console.print("\n[bold]Most used branches:[/bold]")
            for usage in snapshot.most_used_branches:
                console.print(f"  • {usage.branch_name} ({usage.ticket_id}): {usage.usage_count} checkouts")

        if snapshot.oldest_associations:
            console.print("\n[bold]Oldest associations:[/bold]")
            for aged in snapshot.oldest_associations:
                console.print(
                    f"  • {aged.ticket_id} → {aged.branch_name}: {aged.days_since_last_update} days"
                )
    except BranchLinkError as e:
        _fail(e)


@app.command()
def cleanup(
    stale_only: bool = typer.Option(
        False, "--stale", help="Remove stale associations without asking"
    ),
    repo_path: Path = REPO_OPTION,
) -> None:
    """Review and apply cleanup suggestions."""
    try:
        manager = _manager(repo_path)

        if stale_only:
            removed = asyncio.run(manager.cleanup_stale_associations())
            console.print(f"[bold green]✓[/bold green] Removed {removed} stale associations")
            return

        suggestions = asyncio.run(manager.get_cleanup_suggestions())
        if not suggestions:
            console.print("[green]Nothing to clean up.[/green]")
            return

        selected = []
        for suggestion in suggestions:
            console.print(f"[yellow]{suggestion.kind.value}[/yellow] {suggestion.reason}")
            if suggestion.kind == SuggestionKind.DUPLICATE:
                console.print("  [dim]Advisory only; re-associate one of the tickets to resolve.[/dim]")
                continue
            if typer.confirm(f"  Remove association for {suggestion.ticket_id}?", default=suggestion.auto_actionable):
                selected.append(suggestion.id)

        if not selected:
            return
        result = asyncio.run(manager.apply_cleanup(selected))
        console.print(f"[bold green]✓[/bold green] Removed {len(result.applied)} associations")
        for suggestion_id, error in result.failed.items():
            console.print(f"[red]✗ {suggestion_id}: {error}[/red]")
    except BranchLinkError as e:
        _fail(e)


@app.command()
def start(
    ticket_id: str = typer.Argument(..., help="Ticket identifier"),
    title: Optional[str] = typer.Option(None, "--title", "-t", help="Ticket title for the branch slug"),
    branch_name: Optional[str] = typer.Option(None, "--branch", "-b", help="Explicit branch name"),
    repo_path: Path = REPO_OPTION,
) -> None:
    """Create a branch for a ticket and associate it."""
    try:
        manager = _manager(repo_path)
        association = asyncio.run(manager.start_work(ticket_id, title=title, branch_name=branch_name))
        console.print(
            f"[bold green]✓[/bold green] Working on [cyan]{association.ticket_id}[/cyan] "
            f"in [yellow]{association.branch_name}[/yellow]"
        )
    except BranchLinkError as e:
        _fail(e)


if __name__ == "__main__":
    app()
