"""Rich rendering for the status and billing commands."""

from rich import box
from rich.console import Console
from rich.table import Table

from fork_orchestrator.monitor.health import HealthSummary
from fork_orchestrator.rotation.state import ForkStatus, OrchestratorState


STATUS_STYLES = {
    ForkStatus.SOURCE: "[blue]● source[/blue]",
    ForkStatus.ACTIVE: "[green]● active[/green]",
    ForkStatus.EXHAUSTED: "[yellow]● exhausted[/yellow]",
    ForkStatus.DISABLED: "[dim]● disabled[/dim]",
}

QUOTA_STYLES = {
    "ok": "[green]OK[/green]",
    "warning": "[yellow]Warning[/yellow]",
    "exhausted": "[red]Exhausted[/red]",
}


def render_status(console: Console, state: OrchestratorState, ceiling_hours: float) -> None:
    """Print the fork chain, read-only."""
    if not state.fork_chain:
        console.print("[yellow]No forks recorded yet.[/yellow]")
        return

    table = Table(title="Fork Chain", box=box.ROUNDED)
    table.add_column("Status")
    table.add_column("Index", justify="right", style="cyan")
    table.add_column("Account", style="green")
    table.add_column("Repository")
    table.add_column("Parent", style="dim")
    table.add_column("Usage", justify="right")

    for node in state.fork_chain:
        table.add_row(
            STATUS_STYLES[node.status],
            str(node.identity_index),
            f"@{node.username}",
            node.repo,
            node.parent or "-",
            f"{node.quota_used:.1f}/{ceiling_hours:.1f}h",
        )

    console.print(table)
    console.print(
        f"Active index: [bold]{state.current_active_index}[/bold]"
        f"  Identities: {state.total_identities}"
    )
    if state.last_rotation:
        console.print(f"Last rotation: {state.last_rotation.strftime('%Y-%m-%d %H:%M UTC')}")
    if state.active_node() is None:
        console.print(
            "[yellow]No active fork: rotation is stalled until a fork is created.[/yellow]"
        )


def render_billing(console: Console, summary: HealthSummary, ceiling_hours: float) -> None:
    """Print one quota row per identity and the pool summary."""
    table = Table(title="Billing Status", box=box.ROUNDED)
    table.add_column("Index", justify="right", style="cyan")
    table.add_column("Account", style="green")
    table.add_column("Used", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_column("Status")

    for identity, report in summary.reports:
        status = QUOTA_STYLES[report.status]
        if report.probe_failed:
            status += " [dim](probe failed)[/dim]"
        table.add_row(
            str(identity.index),
            f"@{report.username}",
            f"{report.hours_equivalent:.1f}/{ceiling_hours:.1f}h",
            f"{report.hours_remaining:.1f}h",
            status,
        )

    console.print(table)
    console.print(
        f"Total: {summary.total}  "
        f"[green]OK: {summary.ok}[/green]  "
        f"[yellow]Warning: {summary.warning}[/yellow]  "
        f"[red]Exhausted: {summary.exhausted}[/red]"
    )
