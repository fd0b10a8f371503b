"""Mini README: Entry point CLI for running and driving the savings ledger.

This script exposes a Typer CLI that starts the FastAPI ledger API and lets
operators add to, reset, read and watch a device total from a terminal. The
client commands use the same optimistic single-flight client as interactive
front ends, and settings come from ``PIGGYLEDGER_*`` environment variables
when options are omitted.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
import uvicorn

from piggyledger.client import ActionResult, OptimisticSyncClient, VersionPoller
from piggyledger.configuration import get_settings
from piggyledger.logging_utils import configure_root_logger

cli = typer.Typer(help="Serve and operate the per-device savings ledger.")

DeviceOption = typer.Option(None, "--device", "-d", help="Device identifier.")
ServerOption = typer.Option(None, "--server", help="Base URL of the ledger API.")


def _report(result: ActionResult) -> None:
    """Echo the action status and exit non-zero when it failed."""

    typer.echo(result.message or result.outcome.value)
    typer.echo(f"total={result.total} version={result.version}")
    if not result.ok:
        raise typer.Exit(code=1)


async def _run_action(
    device: Optional[str],
    server: Optional[str],
    action: str,
    amount: Optional[str] = None,
    assume_yes: bool = False,
) -> ActionResult:
    confirm = (lambda _prompt: True) if assume_yes else typer.confirm
    async with OptimisticSyncClient(device, base_url=server, confirm=confirm) as client:
        if action == "add":
            # Start from the server total so the speculative value is meaningful.
            loaded = await client.refresh()
            if not loaded.ok:
                return loaded
            return await client.increment(amount)
        if action == "reset":
            return await client.reset()
        return await client.refresh()


@cli.command()
def serve(
    host: str = typer.Option(None, help="Host interface to bind."),
    port: int = typer.Option(None, help="Port to listen on."),
    production: bool = typer.Option(
        False, help="Use production server settings (disable auto-reload)."
    ),
) -> None:
    """Start the ledger API using uvicorn."""

    settings = get_settings()
    effective_host = host or settings.interface_host
    effective_port = port or settings.interface_port
    configure_root_logger(settings.log_level)

    # Browsers cannot open 0.0.0.0, so point operators at localhost instead.
    browser_host = "127.0.0.1" if effective_host in {"0.0.0.0", "::"} else effective_host
    typer.echo(
        f"Starting piggyledger on {effective_host}:{effective_port}.\n"
        f"Version endpoint: http://{browser_host}:{effective_port}"
        "/api/latest-savings?deviceId=<device>"
    )
    uvicorn.run(
        "piggyledger.interface.web_app:create_application",
        host=effective_host,
        port=effective_port,
        factory=True,
        reload=not production,
    )


@cli.command()
def show(device: Optional[str] = DeviceOption, server: Optional[str] = ServerOption) -> None:
    """Print the current total for a device."""

    configure_root_logger(get_settings().log_level)
    _report(asyncio.run(_run_action(device, server, "show")))


@cli.command()
def add(
    amount: str = typer.Argument(..., help="Amount in the smallest currency unit."),
    device: Optional[str] = DeviceOption,
    server: Optional[str] = ServerOption,
) -> None:
    """Add an amount to a device total."""

    configure_root_logger(get_settings().log_level)
    _report(asyncio.run(_run_action(device, server, "add", amount=amount)))


@cli.command()
def reset(
    device: Optional[str] = DeviceOption,
    server: Optional[str] = ServerOption,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Reset a device total to zero."""

    configure_root_logger(get_settings().log_level)
    _report(asyncio.run(_run_action(device, server, "reset", assume_yes=yes)))


@cli.command()
def watch(
    device: Optional[str] = DeviceOption,
    server: Optional[str] = ServerOption,
    interval: Optional[float] = typer.Option(None, help="Seconds between version checks."),
    count: Optional[int] = typer.Option(None, help="Stop after this many polls."),
) -> None:
    """Poll the version endpoint and print the total whenever it changes."""

    configure_root_logger(get_settings().log_level)

    async def _watch() -> int:
        poller = VersionPoller(device, base_url=server, interval=interval)
        try:
            return await poller.run(
                max_polls=count,
                on_change=lambda state: typer.echo(
                    f"{state.device_id}: total={state.total} version={state.version}"
                ),
            )
        finally:
            await poller.aclose()

    polls = asyncio.run(_watch())
    typer.echo(f"Finished after {polls} polls.")


if __name__ == "__main__":
    cli()
