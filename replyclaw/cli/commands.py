"""CLI commands for replyclaw."""

import asyncio
import sys
import time
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from replyclaw import __logo__, __version__

app = typer.Typer(
    name="replyclaw",
    help=f"{__logo__} replyclaw - chat auto-reply relay for command-line agents",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} replyclaw v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


def _load(config_path: Path | None):
    from replyclaw.config.loader import load_config
    from replyclaw.process import configure_command_queue

    config = load_config(config_path)
    configure_command_queue(
        max_concurrency=config.queue.max_concurrency,
        warn_after_ms=config.queue.warn_after_ms,
    )
    return config


def _print_payloads(result) -> None:
    payloads = result if isinstance(result, list) else ([result] if result else [])
    if not payloads:
        console.print("[dim](no reply)[/dim]")
        return
    for payload in payloads:
        if payload.text:
            console.print(f"\n{__logo__} {payload.text}")
        for media in payload.all_media():
            console.print(f"[cyan]media:[/cyan] {media}")


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", callback=version_callback, is_eager=True
    ),
):
    """replyclaw - chat auto-reply relay for command-line agents."""
    pass


@app.command()
def reply(
    message: str = typer.Option(..., "--message", "-m", help="Inbound message body"),
    sender: str = typer.Option("+10000000000", "--from", "-f", help="Sender identity (E.164 or group id)"),
    to: str = typer.Option(None, "--to", "-t", help="Recipient identity"),
    media_path: str = typer.Option(None, "--media-path", help="Local path of attached media"),
    media_type: str = typer.Option(None, "--media-type", help="MIME type of attached media"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Run one message through the reply engine and print the reply."""
    from replyclaw.auto_reply.reply import ReplyEngine
    from replyclaw.auto_reply.types import MsgContext

    _configure_logging(verbose)
    config = _load(config_path)
    if config.inbound.reply is None:
        console.print("[red]No inbound.reply configured.[/red]")
        raise typer.Exit(1)

    ctx = MsgContext(
        body=message,
        from_=sender,
        to=to,
        media_path=media_path,
        media_type=media_type,
        chat_type="group" if "@g.us" in sender or sender.startswith("group:") else "direct",
    )

    async def run_once():
        return await ReplyEngine(config).get_reply(ctx)

    _print_payloads(asyncio.run(run_once()))


@app.command()
def heartbeat(
    to: str = typer.Option(None, "--to", "-t", help="Recipient (defaults to the most recent session)"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Run one heartbeat and print what would be sent."""
    from replyclaw.auto_reply.heartbeat import resolve_reply_heartbeat_minutes, run_heartbeat_once
    from replyclaw.auto_reply.reply import ReplyEngine

    _configure_logging(verbose)
    config = _load(config_path)
    if resolve_reply_heartbeat_minutes(config) is None:
        console.print("[yellow]Heartbeats are disabled (command mode with heartbeatMinutes > 0 required).[/yellow]")
        raise typer.Exit(1)

    async def print_sender(recipient: str, text: str, media_url: str | None = None) -> None:
        console.print(f"[cyan]→ {recipient}[/cyan]\n{text}")
        if media_url:
            console.print(f"[cyan]media:[/cyan] {media_url}")

    async def run_once():
        engine = ReplyEngine(config)
        return await run_heartbeat_once(config, sender=print_sender, reply_resolver=engine.get_reply, to=to)

    if not asyncio.run(run_once()):
        console.print("[dim]Heartbeat OK, nothing sent.[/dim]")


@app.command()
def sessions(
    store: str = typer.Option(None, "--store", "-s", help="Session store path"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """List stored sessions."""
    from replyclaw.config.loader import load_config
    from replyclaw.session import SessionStore
    from replyclaw.session.store import resolve_store_path

    if store is None:
        config = load_config(config_path)
        session_cfg = config.inbound.reply.session if config.inbound.reply else None
        store = session_cfg.store if session_cfg else None

    entries = SessionStore(resolve_store_path(store)).load()
    if not entries:
        console.print("No sessions.")
        return

    table = Table(title="Sessions")
    table.add_column("Key", style="cyan")
    table.add_column("Session ID")
    table.add_column("Updated")
    table.add_column("Thinking")
    table.add_column("Verbose")
    table.add_column("Flags")

    for key, entry in sorted(entries.items(), key=lambda item: item[1].updated_at, reverse=True):
        updated = time.strftime("%Y-%m-%d %H:%M", time.localtime(entry.updated_at / 1000))
        flags = []
        if entry.system_sent:
            flags.append("system-sent")
        if entry.aborted_last_run:
            flags.append("[red]aborted[/red]")
        table.add_row(
            key,
            entry.session_id,
            updated,
            entry.thinking_level or "",
            entry.verbose_level or "",
            ", ".join(flags),
        )

    console.print(table)


if __name__ == "__main__":
    app()
