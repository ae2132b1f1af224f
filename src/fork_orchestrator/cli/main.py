"""Command-line entry point for the fork orchestrator."""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from structlog import get_logger

from fork_orchestrator import __version__
from fork_orchestrator.cli.display import render_billing, render_status
from fork_orchestrator.config.settings import Settings, get_settings
from fork_orchestrator.context import OrchestratorContext
from fork_orchestrator.core.logging import setup_logging
from fork_orchestrator.exceptions import ConfigurationError, OrchestratorError
from fork_orchestrator.rotation.state import StateStore


app = typer.Typer(
    name="fork-orchestrator",
    help="Keep a chain of forks alive by rotating identities on quota exhaustion",
    no_args_is_help=True,
)
proxies_app = typer.Typer(name="proxies", help="Proxy binding management")
accounts_app = typer.Typer(name="accounts", help="Identity pool management")
app.add_typer(proxies_app)
app.add_typer(accounts_app)

console = Console()
logger = get_logger(__name__)


@contextmanager
def handle_errors(operation: str, context: OrchestratorContext | None = None) -> Iterator[None]:
    """Render orchestrator errors in red and exit non-zero."""
    try:
        yield
    except OrchestratorError as e:
        logger.error(
            "command_failed",
            operation=operation,
            error_type=str(e.error_type),
            error=e.message,
        )
        if context is not None and not isinstance(e, ConfigurationError):
            context.alerts.failure(operation, e)
        console.print(f"[red]{operation} failed:[/red] {escape(e.message)}")
        raise typer.Exit(1) from e


def get_context_settings(ctx: typer.Context) -> Settings:
    settings: Settings = ctx.obj
    return settings


def build_context(settings: Settings) -> OrchestratorContext:
    """Wire the components for one command invocation."""
    return OrchestratorContext.from_settings(settings)


def load_context(ctx: typer.Context, operation: str) -> OrchestratorContext:
    with handle_errors(operation):
        return build_context(get_context_settings(ctx))


@app.callback()
def app_main(
    ctx: typer.Context,
    config_dir: Annotated[
        Path | None,
        typer.Option(
            "--config-dir",
            help="Directory holding tokens.txt, proxies.txt and cache/",
        ),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option("--config", help="Path to a TOML configuration file"),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Minimum log level"),
    ] = None,
    json_logs: Annotated[
        bool,
        typer.Option("--json-logs", help="Emit JSON log lines"),
    ] = False,
) -> None:
    """Resolve settings once and configure logging."""
    overrides: dict[str, Any] = {}
    if config_dir is not None:
        overrides["paths"] = {"config_dir": config_dir}

    logging_overrides: dict[str, Any] = {}
    if log_level is not None:
        logging_overrides["level"] = log_level
    if json_logs:
        logging_overrides["json_logs"] = True
    if logging_overrides:
        overrides["logging"] = logging_overrides

    with handle_errors("configuration"):
        settings = get_settings(config, **overrides)

    setup_logging(settings.logging.level, settings.logging.json_logs)
    ctx.obj = settings


@app.command()
def version() -> None:
    """Show the installed version."""
    console.print(f"fork-orchestrator {__version__}")


@app.command()
def status(ctx: typer.Context) -> None:
    """Show the fork chain without contacting the remote service."""
    settings = get_context_settings(ctx)
    with handle_errors("status"):
        state = StateStore(settings.paths.state_file).load()
    render_status(console, state, settings.quota.ceiling_hours)


@app.command()
def rotate(ctx: typer.Context) -> None:
    """Check the active fork's quota and rotate if it is exhausted."""
    context = load_context(ctx, "rotate")
    with handle_errors("rotate", context):
        rotated, state = context.controller().check_and_rotate()

    if rotated:
        console.print(
            f"[green]Rotated.[/green] Next identity index: "
            f"[bold]{state.current_active_index}[/bold]"
        )
        console.print("Run [bold]fork-orchestrator fork[/bold] to create the next fork.")
    else:
        console.print("No rotation needed.")


@app.command()
def fork(
    ctx: typer.Context,
    parent: Annotated[
        str | None,
        typer.Option("--parent", help="Repository to fork (owner/name)"),
    ] = None,
) -> None:
    """Create the fork for the current identity index."""
    context = load_context(ctx, "fork")
    lifecycle = context.lifecycle()

    with handle_errors("fork", context):
        state = context.store.load()
        parent_repo = parent or lifecycle.next_parent_repo(state)
        if parent_repo is None:
            raise ConfigurationError(
                "No parent repository: register a source with 'source OWNER/NAME' or pass --parent"
            )

        identity = context.identities.get(state.current_active_index)
        _, repo = lifecycle.create(
            state, identity, parent_repo, lifecycle.binding_for(identity)
        )

    console.print(f"[green]Fork ready:[/green] {repo}")


@app.command()
def source(
    ctx: typer.Context,
    repo: Annotated[str, typer.Argument(help="Root repository (owner/name)")],
    identity_index: Annotated[
        int,
        typer.Option("--identity-index", help="Pool index of the owning identity"),
    ] = 0,
) -> None:
    """Register the root Source repository of the chain."""
    context = load_context(ctx, "source")

    with handle_errors("source"):
        state = context.lifecycle().register_source(
            context.store.load(),
            repo,
            identity_index,
            total_identities=len(context.identities),
        )

    node = state.source_node()
    console.print(f"[green]Source:[/green] {node.repo if node else repo}")


@app.command()
def trigger(
    ctx: typer.Context,
    wait: Annotated[
        bool,
        typer.Option("--wait", help="Wait for the run to complete"),
    ] = False,
) -> None:
    """Enable and dispatch the automation on the active fork."""
    context = load_context(ctx, "trigger")
    lifecycle = context.lifecycle()

    with handle_errors("trigger", context):
        found = context.store.load().active_node()
        if found is None:
            raise ConfigurationError("No active fork to trigger")

        node = found[1]
        identity = context.identities.get(node.identity_index)
        binding = lifecycle.binding_for(identity)

        lifecycle.enable_automation(node.repo, identity, binding)
        run_id = lifecycle.run_automation(node.repo, identity, binding)
        if run_id is None:
            console.print(f"[yellow]Triggered {node.repo}; no run visible yet.[/yellow]")
            return

        console.print(f"[green]Triggered[/green] {node.repo}, run {run_id}")
        if wait:
            conclusion = lifecycle.wait_for_run(node.repo, run_id, identity, binding)
            console.print(f"Run {run_id} finished: [bold]{conclusion}[/bold]")


@app.command()
def cleanup(ctx: typer.Context) -> None:
    """Delete every exhausted fork."""
    context = load_context(ctx, "cleanup")

    with handle_errors("cleanup", context):
        _, failed = context.lifecycle().cleanup_exhausted(context.store.load())

    if failed:
        for repo in failed:
            console.print(f"[red]Failed to delete[/red] {repo}")
        context.alerts.send(f"Cleanup failed for: {', '.join(failed)}")
        raise typer.Exit(1)

    console.print("[green]Cleanup complete.[/green]")


@app.command()
def billing(ctx: typer.Context) -> None:
    """Show quota usage for every identity."""
    context = load_context(ctx, "billing")
    summary = context.health_monitor().check_all()
    render_billing(console, summary, context.settings.quota.ceiling_hours)


@proxies_app.command(name="bind")
def bind_proxies(ctx: typer.Context) -> None:
    """Pair proxies.txt with tokens.txt line by line."""
    context = load_context(ctx, "proxies bind")
    proxies_file = context.settings.paths.proxies_file

    with handle_errors("proxies bind"):
        bindings = context.proxies.bind_from_file(list(context.identities), proxies_file)

    console.print(f"[green]Bound {len(bindings)} proxies[/green] from {proxies_file}")


@proxies_app.command(name="check")
def check_proxies(ctx: typer.Context) -> None:
    """Probe every bound proxy."""
    context = load_context(ctx, "proxies check")

    if not len(context.proxies):
        console.print("[yellow]No proxies bound.[/yellow]")
        return

    failed = context.proxies.validate_all()
    if failed:
        for prefix in failed:
            console.print(f"[red]Unreachable[/red] proxy for token {prefix}...")
        raise typer.Exit(1)

    console.print(f"[green]All {len(context.proxies)} proxies reachable.[/green]")


@accounts_app.command(name="validate")
def validate_accounts(ctx: typer.Context) -> None:
    """Resolve every identity's name and drop the invalid ones."""
    context = load_context(ctx, "accounts validate")

    with handle_errors("accounts validate"):
        valid = context.identities.validate(
            context.client_factory, context.proxies, sleep=context.sleep
        )

    table = Table(title="Identities")
    table.add_column("Index", justify="right", style="cyan")
    table.add_column("Account", style="green")
    table.add_column("Token")
    table.add_column("Status")

    valid_indices = {identity.index for identity in valid}
    for identity in context.identities:
        if identity.index in valid_indices:
            name = valid.get(identity.index).name
            table.add_row(
                str(identity.index),
                f"@{name}",
                f"{identity.token_prefix}...",
                "[green]Valid[/green]",
            )
        else:
            table.add_row(
                str(identity.index), "-", f"{identity.token_prefix}...", "[red]Invalid[/red]"
            )

    console.print(table)
    console.print(f"{len(valid)}/{len(context.identities)} identities valid")


def main() -> None:
    app()
