"""Command-line interface for scriptdeck."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from scriptdeck import __version__
from scriptdeck.errors import NotFoundError, ScriptDeckError
from scriptdeck.execution import EventKind, ExecutionController, ShellKind, ShellResolver
from scriptdeck.logging import get_logger, setup_logging
from scriptdeck.storage import ScriptStore

if TYPE_CHECKING:
    from scriptdeck.config.schema import Config
    from scriptdeck.execution import OutputEvent

log = get_logger("cli")

console = Console()
err_console = Console(stderr=True)

# Content used to preview each shell's command line
_SAMPLE_CONTENT = "echo hello"


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="scriptdeck",
        description="Save shell scripts and run them with live output",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (can be repeated)",
    )
    parser.add_argument(
        "--project",
        type=Path,
        help="Project directory whose .scriptdeck/config.yaml is merged in",
    )
    parser.add_argument(
        "--scripts-dir",
        type=Path,
        help="Directory holding saved scripts (overrides config)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command")

    subparsers.add_parser("list", help="List saved scripts")

    show_parser = subparsers.add_parser("show", help="Show a script")
    show_parser.add_argument("script", help="Script id or name")

    add_parser = subparsers.add_parser("add", help="Save a new script")
    add_parser.add_argument("name", help="Script name")
    add_parser.add_argument(
        "--shell",
        choices=[kind.value for kind in ShellKind],
        help="Shell to run the script with (default: platform default)",
    )
    _add_content_arguments(add_parser)

    edit_parser = subparsers.add_parser("edit", help="Update a saved script")
    edit_parser.add_argument("script", help="Script id or name")
    edit_parser.add_argument("--name", help="New name")
    edit_parser.add_argument(
        "--shell",
        choices=[kind.value for kind in ShellKind],
        help="New shell",
    )
    _add_content_arguments(edit_parser)

    delete_parser = subparsers.add_parser("delete", help="Delete a script")
    delete_parser.add_argument("script", help="Script id or name")

    run_parser = subparsers.add_parser(
        "run",
        help="Run a script, streaming its output (Ctrl-C stops it)",
    )
    run_parser.add_argument("script", help="Script id or name")
    run_parser.add_argument(
        "--json",
        action="store_true",
        help="Print events as JSON lines instead of raw output",
    )

    subparsers.add_parser("shells", help="Show how each shell resolves on this host")

    return parser


def _add_content_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--file", type=Path, help="Read script content from a file")
    group.add_argument("--content", help="Script content")


def _read_content(parsed: argparse.Namespace) -> str | None:
    if parsed.file is not None:
        return parsed.file.read_text(encoding="utf-8")
    return parsed.content


def _resolve_id(store: ScriptStore, ref: str) -> str:
    """Accept either a script id or a (case-insensitive) script name."""
    if store.exists(ref):
        return ref
    summary = store.find_by_name(ref)
    if summary is None:
        raise NotFoundError(ref)
    return summary.id


def _exit_code(event: OutputEvent) -> int:
    """Map a run's terminal event to a process exit status."""
    if event.kind is not EventKind.END:
        return 1
    if event.code is not None:
        return event.code
    if event.signal:
        try:
            return 128 + signal.Signals[event.signal].value
        except KeyError:
            pass
    return 1


def cmd_list(store: ScriptStore) -> int:
    summaries = store.list()
    if not summaries:
        console.print(f"[dim]No scripts in {store.directory}[/dim]")
        return 0

    table = Table(title="Scripts")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Shell")
    table.add_column("Updated", style="dim")
    for summary in summaries:
        table.add_row(
            summary.id,
            escape(summary.name),
            summary.shell.value,
            summary.updated_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)
    return 0


def cmd_show(store: ScriptStore, ref: str) -> int:
    record = store.get(_resolve_id(store, ref))
    console.print(f"[bold]{escape(record.name)}[/bold] [dim]({record.id}, {record.shell.value})[/dim]")
    console.print(record.content, markup=False, highlight=False)
    return 0


def cmd_add(store: ScriptStore, parsed: argparse.Namespace) -> int:
    record = store.save(name=parsed.name, shell=parsed.shell, content=_read_content(parsed) or "")
    console.print(f"Saved [bold]{escape(record.name)}[/bold] as {record.id}")
    return 0


def cmd_edit(store: ScriptStore, parsed: argparse.Namespace) -> int:
    script_id = _resolve_id(store, parsed.script)
    record = store.save(
        script_id=script_id,
        name=parsed.name,
        shell=parsed.shell,
        content=_read_content(parsed),
    )
    console.print(f"Updated [bold]{escape(record.name)}[/bold] ({record.id})")
    return 0


def cmd_delete(store: ScriptStore, ref: str) -> int:
    script_id = _resolve_id(store, ref)
    store.delete(script_id)
    console.print(f"Deleted {script_id}")
    return 0


def cmd_shells(config: Config) -> int:
    resolver = ShellResolver.from_config(config.execution)

    table = Table(title=f"Shells on {resolver.platform}")
    table.add_column("Shell", style="bold")
    table.add_column("Command")
    table.add_column("Note", style="dim")
    for kind in ShellKind:
        try:
            plan = resolver.resolve(kind, _SAMPLE_CONTENT)
        except ScriptDeckError as e:
            table.add_row(kind.value, "[red]unavailable[/red]", escape(str(e)))
            continue
        table.add_row(kind.value, plan.command_line, plan.platform_note or "")
    console.print(table)
    return 0


def _print_event(event: OutputEvent, as_json: bool) -> None:
    if as_json:
        console.out(json.dumps(event.to_dict()), highlight=False)
        return

    if event.kind is EventKind.START:
        err_console.print(f"[dim]{escape(event.message or '')}[/dim]", highlight=False)
    elif event.kind is EventKind.STDOUT:
        console.out(event.message or "", end="", highlight=False)
    elif event.kind is EventKind.STDERR:
        err_console.out(event.message or "", end="", style="red", highlight=False)
    elif event.kind is EventKind.ERROR:
        err_console.print(f"[red]error:[/red] {escape(event.message or '')}", highlight=False)
    elif event.signal:
        err_console.print(f"[yellow]Stopped ({event.signal})[/yellow]")
    else:
        err_console.print(f"[dim]Exited with code {event.code}[/dim]")


async def cmd_run(store: ScriptStore, config: Config, ref: str, as_json: bool) -> int:
    script_id = _resolve_id(store, ref)
    controller = ExecutionController.from_config(store, config)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, controller.stop, script_id)
        handles_sigint = True
    except (NotImplementedError, RuntimeError):
        # Windows event loops: KeyboardInterrupt cancels us and shutdown() stops the run
        handles_sigint = False

    try:
        handle = await controller.run(script_id)
        async for event in handle.channel:
            _print_event(event, as_json)
        terminal = await handle.wait()
    finally:
        if handles_sigint:
            loop.remove_signal_handler(signal.SIGINT)
        await controller.shutdown()

    return _exit_code(terminal)


def _scripts_store(config: Config, parsed: argparse.Namespace) -> ScriptStore:
    if parsed.scripts_dir is not None:
        config.scripts.directory = str(parsed.scripts_dir)
    return ScriptStore.from_config(config.scripts)


def run_cli(args: Sequence[str]) -> int:
    """Run the CLI with the given arguments."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.command is None:
        parser.print_help()
        return 1

    from scriptdeck.config import load_config

    project_root = str(parsed.project) if parsed.project else None
    config = load_config(project_root=project_root, reload=True)
    if parsed.verbose:
        config.logging.verbose = min(4, 2 + parsed.verbose)
    setup_logging(config.logging)

    try:
        store = _scripts_store(config, parsed)
        log.debug("Using scripts directory %s", store.directory)

        if parsed.command == "list":
            return cmd_list(store)
        elif parsed.command == "show":
            return cmd_show(store, parsed.script)
        elif parsed.command == "add":
            return cmd_add(store, parsed)
        elif parsed.command == "edit":
            return cmd_edit(store, parsed)
        elif parsed.command == "delete":
            return cmd_delete(store, parsed.script)
        elif parsed.command == "run":
            return asyncio.run(cmd_run(store, config, parsed.script, parsed.json))
        elif parsed.command == "shells":
            return cmd_shells(config)
        else:
            parser.print_help()
            return 1
    except ScriptDeckError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]", highlight=False)
        return 1
    except (OSError, ValueError, LookupError) as e:
        # Filesystem faults and bad config values (shell names, encodings)
        err_console.print(f"[red]Error:[/red] {escape(str(e))}", highlight=False)
        return 2
