"""CLI entry point for the ListGenie client gateway.

Provides commands:
  - login: Store an access/refresh token pair in the system keyring
  - logout: Forget the stored tokens
  - whoami: Show token and connected-service status
  - upload: Upload images and (optionally) watch the job to completion
  - poll: Watch an existing job by processing id
  - health: Check backend health (no authentication)
  - account: Connected services and settings
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, NoReturn, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from listgenie.config import load_gateway_config
from listgenie.exceptions import (
    AuthError,
    FileValidationError,
    GatewayError,
    StepFailedError,
)
from listgenie.models import ClientStepState, GatewayConfig
from listgenie.pipeline.progress import UploadProgressTracker
from listgenie.pipeline.steps import ClientStep, StepBoard
from listgenie.session import GatewaySession

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="ListGenie - Turn product photos into Etsy draft listings",
    rich_markup_mode="rich",
)
console = Console()

# Account command group
account_app = typer.Typer(help="Connected services and settings")
app.add_typer(account_app, name="account")

_STATE_MARKUP: dict[ClientStepState, str] = {
    ClientStepState.WAITING: "[dim]waiting[/dim]",
    ClientStepState.PENDING: "[yellow]pending[/yellow]",
    ClientStepState.IN_PROGRESS: "[cyan]in progress[/cyan]",
    ClientStepState.COMPLETED: "[green]completed[/green]",
    ClientStepState.ERROR: "[bold red]error[/bold red]",
}


@dataclass
class CliState:
    """Options shared by every command."""

    config: GatewayConfig


def create_session(config: GatewayConfig) -> GatewaySession:
    """Build the session used by a command."""
    return GatewaySession(config)


@app.callback()
def app_callback(
    ctx: typer.Context,
    base_url: Annotated[
        Optional[str],
        typer.Option("--base-url", "-u", help="Backend URL (overrides config file)"),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to gateway_config.json"),
    ] = None,
    debug: Annotated[
        bool, typer.Option("--debug", help="Write debug log to ~/.listgenie/debug.log")
    ] = False,
) -> None:
    """Load configuration for all commands."""
    try:
        config = load_gateway_config(config_path)
    except (ValueError, json.JSONDecodeError) as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(code=1)
    if base_url:
        config.base_url = base_url

    if debug:
        debug_dir = Path.home() / ".listgenie"
        debug_dir.mkdir(exist_ok=True)
        fh = logging.FileHandler(debug_dir / "debug.log")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        package_logger = logging.getLogger("listgenie")
        package_logger.setLevel(logging.DEBUG)
        package_logger.addHandler(fh)

    ctx.obj = CliState(config=config)


def get_state(ctx: typer.Context) -> CliState:
    """Type-safe accessor for CliState from Typer context."""
    if ctx.obj is None:
        console.print("[red]Application state not initialized.[/red]")
        raise typer.Exit(code=1)
    return ctx.obj


def _fail(message: str, error: BaseException) -> NoReturn:
    console.print(f"[red]{message}:[/red] {error}")
    raise typer.Exit(code=1)


def _mask(token: str) -> str:
    if len(token) > 8:
        return token[:8] + "*" * (len(token) - 8)
    return token[:2] + "*" * max(1, len(token) - 2)


def _parse_fields(fields: list[str]) -> dict[str, str]:
    metadata: dict[str, str] = {}
    for item in fields:
        key, sep, value = item.partition("=")
        if not sep or not key:
            console.print(f"[red]Invalid --field {item!r}; expected KEY=VALUE[/red]")
            raise typer.Exit(code=1)
        metadata[key] = value
    return metadata


def _steps_table(steps: list[ClientStep], title: str = "Processing steps") -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Step")
    table.add_column("State")
    for number, step in enumerate(steps, start=1):
        table.add_row(str(number), step.name, _STATE_MARKUP[step.state])
    return table


def _show_failure(error: GatewayError, steps: list[ClientStep]) -> None:
    console.print(_steps_table(steps))
    console.print(
        Panel(
            str(error),
            title="[red]Processing failed[/red]",
            border_style="red",
        )
    )


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


@app.command()
def login(
    ctx: typer.Context,
    token: Annotated[
        str,
        typer.Option(
            "--token",
            "-t",
            prompt="Access token",
            hide_input=True,
            help="Access token issued by the ListGenie backend",
        ),
    ],
    refresh_token: Annotated[
        Optional[str],
        typer.Option("--refresh-token", "-r", help="Refresh token (enables silent renewal)"),
    ] = None,
) -> None:
    """Store an access token (and optional refresh token) in the system keyring."""
    state = get_state(ctx)
    if not token.strip():
        console.print("[red]Error:[/red] Access token cannot be empty")
        raise typer.Exit(code=1)

    session = create_session(state.config)
    try:
        session.login(token.strip(), refresh_token.strip() if refresh_token else None)
    finally:
        asyncio.run(session.aclose())
    console.print(
        f"[green]✓[/green] Logged in to {state.config.base_url} "
        f"[dim](keyring service: {state.config.keyring_service})[/dim]"
    )


@app.command()
def logout(ctx: typer.Context) -> None:
    """Forget the stored tokens."""
    state = get_state(ctx)
    session = create_session(state.config)
    try:
        if not session.logged_in:
            console.print("[yellow]Not logged in.[/yellow] Nothing to remove.")
            return
        session.logout()
    finally:
        asyncio.run(session.aclose())
    console.print("[green]✓[/green] Logged out")


@app.command()
def whoami(ctx: typer.Context) -> None:
    """Show stored token status and connected services."""
    state = get_state(ctx)

    async def _run() -> dict:
        async with create_session(state.config) as session:
            pair = session.store.get()
            if pair is None:
                return {}
            console.print(f"[green]Access token:[/green] {_mask(pair.access_token)}")
            console.print(
                "[green]Refresh token:[/green] "
                + ("stored" if pair.refresh_token else "[yellow]none[/yellow]")
            )
            return await session.account.get_auth_status()

    status = asyncio.run(_run())
    if not status:
        console.print(
            "[yellow]Not logged in.[/yellow]\n"
            "Log in with: [bold]listgenie login --token TOKEN[/bold]"
        )
        raise typer.Exit(code=1)
    _print_auth_status(status)


def _print_auth_status(status: dict) -> None:
    authenticated = status.get("authenticated", False)
    console.print(
        "[green]Authenticated[/green]"
        if authenticated
        else "[yellow]Not authenticated[/yellow]"
    )
    table = Table(title="Connected services")
    table.add_column("Service")
    table.add_column("Connected")
    for name, info in (status.get("services") or {}).items():
        connected = isinstance(info, dict) and info.get("connected")
        table.add_row(name, "[green]yes[/green]" if connected else "[dim]no[/dim]")
    console.print(table)


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------


@app.command()
def upload(
    ctx: typer.Context,
    files: Annotated[
        list[Path],
        typer.Argument(
            help="Image files to upload (JPEG, PNG or WebP)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    field: Annotated[
        Optional[list[str]],
        typer.Option("--field", "-f", help="Extra form field as KEY=VALUE (repeatable)"),
    ] = None,
    watch: Annotated[
        bool,
        typer.Option("--watch/--no-watch", help="Poll the job until it finishes"),
    ] = True,
    retry: Annotated[
        bool,
        typer.Option("--retry/--no-retry", help="Re-run failed jobs up to max_retries times"),
    ] = False,
) -> None:
    """Upload images and create a processing job."""
    state = get_state(ctx)
    metadata = _parse_fields(field or [])

    async def _upload_only() -> None:
        async with create_session(state.config) as session:
            with UploadProgressTracker(console=console) as tracker:
                result = await session.transport.upload(
                    files, metadata, on_progress=tracker.upload_progress
                )
        if result.job_id:
            console.print(f"[green]✓[/green] Job created: [bold]{result.job_id}[/bold]")
            console.print(f"[dim]Watch it with: listgenie poll {result.job_id}[/dim]")
        else:
            console.print("[green]✓[/green] Upload complete (no processing job)")

    async def _watch() -> None:
        async with create_session(state.config) as session:
            runner = session.runner

            async def _attempt(run) -> tuple[object, GatewayError | None]:
                with UploadProgressTracker(console=console) as tracker:

                    def _refresh(_status: object) -> None:
                        tracker.show_steps(runner.board.steps)

                    try:
                        outcome = await run(
                            on_progress=tracker.upload_progress, on_update=_refresh
                        )
                    except (FileValidationError, AuthError):
                        raise
                    except GatewayError as error:
                        tracker.show_steps(runner.board.steps)
                        return None, error
                return outcome, None

            outcome, error = await _attempt(
                lambda **callbacks: runner.process(files, metadata, **callbacks)
            )
            while error is not None:
                _show_failure(error, runner.board.steps)
                if not (retry and runner.retry_session.can_retry):
                    console.print(
                        "[yellow]Complete the listing manually, or re-run with --retry.[/yellow]"
                    )
                    raise typer.Exit(code=1)
                console.print(f"[dim]Retrying: {runner.retry_session.describe()}[/dim]")
                outcome, error = await _attempt(runner.retry)

        console.print(_steps_table(outcome.steps))
        console.print(
            Panel(
                f"Job [bold]{outcome.job_id or '-'}[/bold] finished.",
                title="[green]Listing ready[/green]",
                border_style="green",
            )
        )

    try:
        asyncio.run(_watch() if watch else _upload_only())
    except GatewayError as e:
        _fail("Upload failed", e)


@app.command()
def poll(
    ctx: typer.Context,
    job_id: Annotated[str, typer.Argument(help="Processing id returned by upload")],
) -> None:
    """Watch an existing job until it finishes or fails."""
    state = get_state(ctx)
    board = StepBoard()

    async def _run() -> None:
        async with create_session(state.config) as session:
            with console.status(f"Polling job {job_id}...") as spinner:

                def _on_update(status: object) -> None:
                    current = board.current_step
                    spinner.update(
                        f"Polling job {job_id}... "
                        f"[dim]{current.value if current else 'done'}[/dim]"
                    )

                await session.poller.poll(job_id, on_update=_on_update, board=board)

    try:
        asyncio.run(_run())
    except StepFailedError as e:
        _show_failure(e, board.steps)
        raise typer.Exit(code=1)
    except GatewayError as e:
        console.print(_steps_table(board.steps))
        _fail("Polling failed", e)
    console.print(_steps_table(board.steps, title=f"Job {job_id}"))
    console.print("[green]✓[/green] Job finished")


@app.command()
def health(ctx: typer.Context) -> None:
    """Check backend health (no authentication required)."""
    state = get_state(ctx)

    async def _run() -> dict:
        async with create_session(state.config) as session:
            return await session.account.get_health_status()

    status = asyncio.run(_run())
    label = status.get("status", "unknown")
    if status.get("success") is False or label == "unhealthy":
        detail = status.get("error") or label
        console.print(f"[red]Backend unhealthy:[/red] {detail}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Backend {label} at {state.config.api_url}")


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


@account_app.command("status")
def account_status(ctx: typer.Context) -> None:
    """Show which third-party services are connected."""
    state = get_state(ctx)

    async def _run() -> dict:
        async with create_session(state.config) as session:
            return await session.account.get_auth_status()

    _print_auth_status(asyncio.run(_run()))


@account_app.command("connect")
def account_connect(
    ctx: typer.Context,
    service: Annotated[str, typer.Argument(help="Service to connect: google or etsy")],
) -> None:
    """Print the OAuth consent URL for a service."""
    state = get_state(ctx)

    async def _run() -> str:
        async with create_session(state.config) as session:
            return await session.account.initiate_oauth(service)

    try:
        url = asyncio.run(_run())
    except (GatewayError, ValueError) as e:
        _fail(f"Could not start {service} authentication", e)
    console.print(f"Open this URL to connect {service}:\n[bold]{url}[/bold]")


@account_app.command("disconnect")
def account_disconnect(
    ctx: typer.Context,
    service: Annotated[str, typer.Argument(help="Service to disconnect: google or etsy")],
) -> None:
    """Disconnect a third-party service."""
    state = get_state(ctx)

    async def _run() -> dict:
        async with create_session(state.config) as session:
            return await session.account.disconnect_service(service)

    try:
        asyncio.run(_run())
    except (GatewayError, ValueError) as e:
        _fail(f"Could not disconnect {service}", e)
    console.print(f"[green]✓[/green] Disconnected {service}")


@account_app.command("settings")
def account_settings(ctx: typer.Context) -> None:
    """Print the stored processing settings as JSON."""
    state = get_state(ctx)

    async def _run() -> dict:
        async with create_session(state.config) as session:
            return await session.account.get_settings()

    try:
        settings = asyncio.run(_run())
    except GatewayError as e:
        _fail("Could not load settings", e)
    console.print_json(data=settings)
