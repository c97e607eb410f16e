"""Command line interface for actiontap."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
from dataclasses import asdict
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from . import config as config_mod
from .config import ConfigError, require_credentials
from .extractor import extract_action_items
from .models import ActionItem, Config, ItemStatus, TranscriptSegment
from .session import MeetingSession
from .sources import ChunkSource, HttpStreamSource, ReplaySource

app = typer.Typer(add_completion=False, help="Pull action items out of live meeting transcripts.")
console = Console()

_STATUS_STYLE = {
    ItemStatus.PENDING: "yellow",
    ItemStatus.SENT: "green",
    ItemStatus.ERROR: "red",
}


def _load_config() -> Config:
    try:
        return config_mod.load_config()
    except ConfigError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


def _items_table(items: List[ActionItem], title: str = "Action items") -> Table:
    table = Table(title=title)
    table.add_column("Action item")
    table.add_column("Assignee")
    table.add_column("Due")
    table.add_column("Status")
    for item in items:
        status = item.status.value
        if item.error_detail:
            status = f"{status}: {item.error_detail}"
        table.add_row(
            item.text,
            item.assignee or "-",
            item.due_date.isoformat() if item.due_date else "-",
            f"[{_STATUS_STYLE[item.status]}]{status}[/]",
        )
    return table


def _item_to_dict(item: ActionItem) -> Dict[str, object]:
    return {
        "id": item.id,
        "text": item.text,
        "assignee": item.assignee,
        "due_date": item.due_date.isoformat() if item.due_date else None,
        "status": item.status.value,
        "error_detail": item.error_detail,
    }


def _print_segment(segment: TranscriptSegment) -> None:
    speaker = "You" if segment.is_local_speaker else "Other"
    console.print(
        f"[dim]{segment.captured_at:%H:%M:%S} {speaker} • {segment.device_label}[/dim]  {segment.text}"
    )


def _print_items(items: List[ActionItem]) -> None:
    for item in items:
        details = ", ".join(
            part
            for part in (
                item.assignee,
                f"due {item.due_date.isoformat()}" if item.due_date else "",
            )
            if part
        )
        suffix = f" [dim]({details})[/dim]" if details else ""
        console.print(f"[bold green]+ Action item:[/bold green] {item.text}{suffix}")


def _print_notice(message: str) -> None:
    console.print(f"[yellow]{message}[/yellow]")


async def _run_listen(session: MeetingSession, source: ChunkSource) -> None:
    await session.start(source)
    loop = asyncio.get_running_loop()

    def _interrupt() -> None:
        # A second interrupt while stopping abandons the final pass.
        if not session.force_stop():
            loop.create_task(session.stop())

    installed = False
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, _interrupt)
        installed = True
    try:
        await session.wait_closed()
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


async def _extract_and_submit(session: MeetingSession, text: str) -> None:
    try:
        await session.start(ReplaySource(text))
        await session.wait_closed()
        await session.submit_pending()
    finally:
        await session.aclose()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Log debug output to stderr."),
    version: bool = typer.Option(False, "--version", "-v", help="Show version and exit"),
) -> None:
    if version:
        typer.echo(f"actiontap v{__version__}")
        raise typer.Exit()

    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(message)s")

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command()
def listen(
    url: Optional[str] = typer.Option(None, "--url", help="Transcription stream URL (default: configured source)."),
    file: Optional[Path] = typer.Option(
        None, "--file", exists=True, readable=True, dir_okay=False, help="Replay a transcript file instead."
    ),
    delay: float = typer.Option(0.05, "--delay", min=0.0, help="Seconds between replayed words."),
    title: Optional[str] = typer.Option(None, "--title", help="Meeting title used for the summary and Notion."),
    submit: Optional[bool] = typer.Option(
        None, "--submit/--no-submit", help="Send action items to Notion (defaults to the auto-submit setting)."
    ),
) -> None:
    """Listen to a transcription stream and print action items as they appear."""

    cfg = _load_config()
    if title:
        cfg.meeting_title = title
    if submit is not None:
        cfg.auto_submit = submit

    source: ChunkSource
    if file is not None:
        source = ReplaySource(file.read_text(), delay=delay)
    else:
        source = HttpStreamSource(url or cfg.source_url)

    session = MeetingSession(
        config=cfg,
        on_segment=_print_segment,
        on_items=_print_items,
        on_notice=_print_notice,
    )
    origin = f"replay of {file}" if file is not None else url or cfg.source_url
    console.print(f"[bold]Listening[/bold] ({origin}). Press Ctrl-C to stop.")

    async def _run() -> None:
        try:
            await _run_listen(session, source)
            if cfg.auto_submit:
                try:
                    await session.submit_pending()
                except ConfigError as exc:
                    _print_notice(str(exc))
        finally:
            await session.aclose()

    asyncio.run(_run())

    if session.last_error is not None:
        typer.secho(str(session.last_error), fg=typer.colors.RED, err=True)
    if session.items:
        console.print(_items_table(session.items))
    else:
        console.print("No action items found.")
    if session.summary:
        typer.secho("\n" + session.summary, fg=typer.colors.GREEN)


@app.command()
def extract(
    transcript: Path = typer.Argument(..., exists=True, readable=True, dir_okay=False, help="Transcript text file."),
    as_json: bool = typer.Option(False, "--json", help="Print action items as JSON."),
    submit: bool = typer.Option(False, "--submit", help="Send the action items to Notion."),
    title: Optional[str] = typer.Option(None, "--title", help="Meeting title recorded in Notion."),
) -> None:
    """Run a single extraction pass over a finished transcript."""

    text = transcript.read_text()

    if submit:
        cfg = _load_config()
        if title:
            cfg.meeting_title = title
        try:
            require_credentials(cfg)
        except ConfigError as exc:
            typer.secho(str(exc), fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1) from exc
        session = MeetingSession(config=cfg)
        asyncio.run(_extract_and_submit(session, text))
        items = session.items
    else:
        items = extract_action_items(text)

    if as_json:
        typer.echo(json.dumps([_item_to_dict(item) for item in items], indent=2))
        return
    if not items:
        typer.echo("No action items found.")
        return
    console.print(_items_table(items))


@app.command()
def config(
    notion_api_key: Optional[str] = typer.Option(None, help="Notion integration token."),
    notion_database_id: Optional[str] = typer.Option(None, help="Notion database that receives tasks."),
    auto_submit: Optional[bool] = typer.Option(
        None, "--auto-submit/--no-auto-submit", help="Send new action items to Notion as they are found."
    ),
    meeting_title: Optional[str] = typer.Option(None, help="Default meeting title."),
    source_url: Optional[str] = typer.Option(None, help="Transcription stream URL."),
    stop_timeout: Optional[float] = typer.Option(None, help="Seconds before a hanging stop can be forced."),
    scan_window: Optional[int] = typer.Option(None, help="Characters scanned by periodic passes (0 scans everything)."),
    api_timeout: Optional[float] = typer.Option(None, help="HTTP timeout (seconds) for Notion calls."),
    show: bool = typer.Option(False, "--show", help="Display the active configuration."),
) -> None:
    """Update or inspect configuration settings."""

    updates: Dict[str, object] = {
        key: value
        for key, value in {
            "notion_api_key": notion_api_key,
            "notion_database_id": notion_database_id,
            "auto_submit": auto_submit,
            "meeting_title": meeting_title,
            "source_url": source_url,
            "stop_timeout": stop_timeout,
            "scan_window": scan_window,
            "api_timeout": api_timeout,
        }.items()
        if value is not None
    }

    if show or not updates:
        data = asdict(_load_config())
        if data.get("notion_api_key"):
            data["notion_api_key"] = "********"
        typer.echo(json.dumps(data, indent=2, default=str))
        return

    try:
        config_mod.update_config(**updates)
    except ConfigError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    typer.secho("Configuration updated.", fg=typer.colors.BLUE)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Interface to bind."),
    port: int = typer.Option(8000, help="Port to listen on."),
) -> None:  # pragma: no cover - runs a server
    """Run the HTTP API."""

    import uvicorn

    uvicorn.run("actiontap.api:app", host=host, port=port)


if __name__ == "__main__":  # pragma: no cover
    app()
