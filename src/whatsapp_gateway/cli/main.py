"""
WhatsApp Gateway CLI

Command-line interface for running and administering gateway sessions.

Commands:
- run: Start sessions, print QR codes and status, fan events out to webhooks
- list-credentials: List sessions with stored credentials
- delete-credentials: Remove a session's stored credentials
- generate-key: Generate a WHATSAPP_ENCRYPTION_KEY value
"""

import asyncio
import importlib
import logging
import signal
from typing import List, Optional

import qrcode
import typer
from cryptography.fernet import Fernet
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from whatsapp_gateway.config import get_settings
from whatsapp_gateway.contracts.event_types import DEFAULT_WEBHOOK_EVENTS, SessionEventType
from whatsapp_gateway.contracts.events import GatewayEvent, SessionQr, SessionStatusChanged
from whatsapp_gateway.errors import GatewayError
from whatsapp_gateway.logging_setup import setup_logging
from whatsapp_gateway.sessions.orchestrator import SessionOrchestrator
from whatsapp_gateway.transport.base import TransportFactory
from whatsapp_gateway.webhooks.dispatcher import EventFanoutDispatcher

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="whatsapp-gateway",
    help="WhatsApp multi-session gateway CLI",
)

console = Console()

DEFAULT_TRANSPORT = "whatsapp_gateway.transport.stub:stub_transport_factory"

STATUS_COLORS = {
    "initializing": "cyan",
    "qr_ready": "yellow",
    "connected": "green",
    "disconnected": "red",
    "logged_out": "magenta",
}


def load_transport_factory(path: str) -> TransportFactory:
    """
    Import a transport factory from a "module:callable" path.

    Raises:
        typer.BadParameter: If the path cannot be resolved to a callable
    """
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise typer.BadParameter(f"Expected module:callable, got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise typer.BadParameter(f"Cannot import {module_name}: {e}")
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise typer.BadParameter(f"{path} is not callable")
    return factory


def print_qr(session_id: str, payload: str) -> None:
    rprint(f"[yellow]Scan QR code for session {session_id}:[/yellow]")
    qr = qrcode.QRCode()
    qr.add_data(payload)
    qr.print_ascii(invert=True)


def print_event(event: GatewayEvent) -> None:
    """Render orchestrator events on the console."""
    if isinstance(event, SessionQr):
        print_qr(event.session_id, event.qr)
    elif isinstance(event, SessionStatusChanged):
        info = event.info
        color = STATUS_COLORS.get(info.status.value, "white")
        line = f"[{color}]{info.id}: {info.status.value}[/{color}]"
        if info.phone_number:
            line += f" ({info.phone_number})"
        if info.last_error:
            line += f" [dim]{info.last_error}[/dim]"
        rprint(line)


async def run_gateway(
    session_ids: list[str],
    transport_factory: TransportFactory,
    webhooks: list[str],
    events: list[str],
    secret: str | None,
) -> int:
    """Run sessions until SIGINT/SIGTERM. Returns the process exit code."""
    settings = get_settings()
    auth_store = settings.build_auth_store()

    orchestrator = SessionOrchestrator(
        transport_factory,
        auth_store,
        policy=settings.reconnect_policy(),
        auto_reconnect=settings.auto_reconnect,
    )
    orchestrator.events.subscribe(
        print_event,
        kinds={SessionEventType.QR, SessionEventType.STATUS},
    )

    dispatcher = EventFanoutDispatcher()
    for index, url in enumerate(webhooks):
        dispatcher.add_endpoint(
            f"cli-{index + 1}",
            url,
            events=events or DEFAULT_WEBHOOK_EVENTS,
            secret=secret,
            on_error=lambda event, error: rprint(f"[red]Webhook delivery failed for {event}: {error}[/red]"),
        )
    if webhooks:
        dispatcher.attach(orchestrator.events)

    # Graceful shutdown
    loop = asyncio.get_running_loop()
    shutdown_requested = asyncio.Event()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, requesting shutdown...")
        loop.call_soon_threadsafe(shutdown_requested.set)

    previous_handlers = {
        sig: signal.signal(sig, signal_handler) for sig in (signal.SIGTERM, signal.SIGINT)
    }

    started = 0
    try:
        for session_id in session_ids:
            try:
                await orchestrator.create_session(session_id)
                started += 1
            except GatewayError as e:
                rprint(f"[red]Failed to start session {session_id}: {e}[/red]")

        if started:
            rprint(f"[cyan]Running {started} session(s). Press Ctrl+C to stop.[/cyan]")
            await shutdown_requested.wait()
    finally:
        rprint("[cyan]Shutting down...[/cyan]")
        await orchestrator.shutdown()
        await dispatcher.aclose()
        await auth_store.close()
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler)

    return 0 if started else 1


@app.command()
def run(
    session_ids: List[str] = typer.Argument(..., help="Session ids to start"),
    transport: str = typer.Option(DEFAULT_TRANSPORT, help="Transport factory as module:callable"),
    webhook: Optional[List[str]] = typer.Option(None, "--webhook", help="Webhook URL (repeatable)"),
    event: Optional[List[str]] = typer.Option(None, "--event", help="Event kind to deliver (repeatable)"),
    secret: Optional[str] = typer.Option(None, help="Shared webhook secret (enables signatures)"),
):
    """
    Start sessions and keep them running.

    QR codes are printed in the terminal; scan them with the phone to pair.
    Status changes are printed as they happen. Stop with Ctrl+C.
    """
    factory = load_transport_factory(transport)

    try:
        setup_logging(get_settings().log_level)
        exit_code = asyncio.run(run_gateway(session_ids, factory, webhook or [], event or [], secret))
    except ValueError as e:
        rprint(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(1)

    if exit_code:
        raise typer.Exit(exit_code)


@app.command()
def list_credentials():
    """List sessions that have stored credentials."""
    settings = get_settings()

    async def collect() -> list[str]:
        store = settings.build_auth_store()
        try:
            return await store.list_ids()
        finally:
            await store.close()

    try:
        session_ids = asyncio.run(collect())
    except GatewayError as e:
        rprint(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if not session_ids:
        rprint("[yellow]No stored credentials found[/yellow]")
        return

    table = Table(title=f"Stored credentials ({settings.auth_backend})")
    table.add_column("Session ID", style="cyan")
    for session_id in sorted(session_ids):
        table.add_row(session_id)

    console.print(table)


@app.command()
def delete_credentials(
    session_id: str = typer.Argument(..., help="Session id"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
):
    """
    Delete a session's stored credentials.

    The session will need to pair again (new QR code) on its next start.
    """
    if not force:
        confirm = typer.confirm(f"Delete credentials for session {session_id}?")
        if not confirm:
            raise typer.Abort()

    settings = get_settings()

    async def remove() -> bool:
        store = settings.build_auth_store()
        try:
            return await store.delete(session_id)
        finally:
            await store.close()

    try:
        deleted = asyncio.run(remove())
    except GatewayError as e:
        rprint(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if deleted:
        rprint(f"[green]Deleted credentials for session {session_id}[/green]")
    else:
        rprint(f"[yellow]No credentials stored for session {session_id}[/yellow]")


@app.command()
def generate_key():
    """Generate a Fernet key for WHATSAPP_ENCRYPTION_KEY."""
    key = Fernet.generate_key().decode()
    rprint("[green]Add this to your environment:[/green]")
    typer.echo(f"WHATSAPP_ENCRYPTION_KEY={key}")


if __name__ == "__main__":
    app()
