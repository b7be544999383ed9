"""Command-line interface for stopwatch.

Stopwatch keeps named timers in a shared file so that a timer can be
started by one shell command and stopped by another.

CONCEPTS:
---------
- STOPWATCH: An identifier paired with the instant it was started.
             Running stopwatches live in $XDG_DATA_HOME/stopwatch/stopwatch.json.

- WAIT:      An in-process timer that is never written to the file. It runs
             until interrupted (Ctrl-C or SIGTERM) and prints how long it ran.

- FORMAT:    Durations print as "1m30.5s" by default, or as fractional
             seconds (-s) or whole milliseconds (--ms).
"""

import argparse
import logging
import signal
import sys
import threading
from datetime import timedelta
from typing import NoReturn

from rich.console import Console
from rich.control import Control
from rich.logging import RichHandler
from rich.markup import escape
from rich.segment import ControlType

from stopwatch import __version__
from stopwatch.commands import (
    RunContext,
    StopwatchNotFoundError,
    list_stopwatches,
    purge_stopwatches,
    start_stopwatch,
    stop_stopwatch,
    wait_for_signal,
)
from stopwatch.config import settings
from stopwatch.durations import OutputFormat, format_duration
from stopwatch.storage import StopwatchStorage, StorageError

console = Console()
err_console = Console(stderr=True, soft_wrap=True)

# Erase the whole line and return to column 0
CLEAR_LINE = Control((ControlType.ERASE_IN_LINE, 2), ControlType.CARRIAGE_RETURN)

PURGE_PROMPT = "Are you sure you want to remove the stopwatch file? [y/N] "

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging on stderr so stdout stays machine-readable."""
    level = logging.DEBUG if verbose else logging.WARNING
    fmt = "%(name)s: %(message)s" if verbose else "%(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        handlers=[RichHandler(rich_tracebacks=True, console=err_console, show_path=verbose)],
        force=True,
    )


def _get_storage() -> StopwatchStorage:
    return StopwatchStorage(settings.get_store_path())


def _output_format(args: argparse.Namespace) -> OutputFormat:
    return getattr(args, "output_format", None) or settings.output_format


def _fail(message: str) -> NoReturn:
    err_console.print(f"[red]Error:[/red] {escape(message)}")
    sys.exit(1)


def cmd_start(args: argparse.Namespace, ctx: RunContext) -> None:
    """Start a stopwatch and print its id."""
    try:
        stopwatch_id = start_stopwatch(_get_storage(), ctx, name=args.name)
    except StorageError as e:
        _fail(str(e))

    console.out(stopwatch_id, highlight=False)


def cmd_stop(args: argparse.Namespace, ctx: RunContext) -> None:
    """Stop a stopwatch and print how long it ran."""
    try:
        elapsed = stop_stopwatch(_get_storage(), ctx, args.id)
    except (StopwatchNotFoundError, StorageError) as e:
        _fail(str(e))

    console.out(format_duration(elapsed, _output_format(args)), highlight=False)


def cmd_list(args: argparse.Namespace, ctx: RunContext) -> None:
    """List running stopwatches."""
    try:
        statuses = list_stopwatches(_get_storage(), ctx)
    except StorageError as e:
        _fail(str(e))

    output_format = _output_format(args)
    for status in statuses:
        started = status.started_at.astimezone().isoformat(timespec="seconds")
        # Written directly: rich would expand the tabs
        row = (status.stopwatch_id, format_duration(status.elapsed, output_format), started)
        console.file.write("\t".join(row) + "\n")


def cmd_wait(args: argparse.Namespace, ctx: RunContext) -> None:
    """Run an unsaved stopwatch until SIGINT or SIGTERM."""
    output_format = _output_format(args)
    stop_event = threading.Event()

    def handle_signal(signum, frame):
        logger.debug(f"Received {signal.Signals(signum).name}")
        stop_event.set()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    def redraw(elapsed: timedelta) -> None:
        console.control(CLEAR_LINE)
        console.out(format_duration(elapsed, output_format), end="", highlight=False)

    elapsed = wait_for_signal(
        ctx,
        stop_event,
        live=args.live,
        on_tick=redraw,
        interval=timedelta(milliseconds=settings.live_interval_ms),
    )

    console.control(CLEAR_LINE)
    console.out(format_duration(elapsed, output_format), highlight=False)


def cmd_purge(args: argparse.Namespace, ctx: RunContext) -> None:
    """Remove the stopwatch file and every running stopwatch in it."""
    if not args.yes:
        try:
            response = err_console.input(escape(PURGE_PROMPT)).strip()
        except EOFError:
            response = ""
        if response not in ("y", "Y"):
            err_console.print("[dim]Aborted[/dim]")
            return

    try:
        purge_stopwatches(_get_storage())
    except StorageError as e:
        _fail(str(e))


def cmd_version(args: argparse.Namespace, ctx: RunContext) -> None:
    """Show version and storage location."""
    console.out(__version__, highlight=False)
    console.out(f"Store: {settings.get_store_path()}", highlight=False)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="stopwatch",
        description="Stopwatch - named timers that persist across shell commands",
        epilog="""Examples:
  id=$(stopwatch start)       Start an anonymous stopwatch
  stopwatch start -n build    Start a stopwatch named "build"
  stopwatch stop build --ms   Stop it and print milliseconds
  stopwatch wait -l           Count live until Ctrl-C""",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show detailed output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    # Shared duration format flags
    format_parser = argparse.ArgumentParser(add_help=False)
    format_group = format_parser.add_mutually_exclusive_group()
    format_group.add_argument(
        "-s", "--seconds",
        dest="output_format", action="store_const", const=OutputFormat.SECONDS,
        help="Output duration in seconds",
    )
    format_group.add_argument(
        "--ms", "--milliseconds",
        dest="output_format", action="store_const", const=OutputFormat.MILLISECONDS,
        help="Output duration in milliseconds",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    start_parser = subparsers.add_parser(
        "start",
        help="Start a new stopwatch and print its id",
        description="Start a stopwatch. Without a name a random 16 character id is generated. "
                    "Starting a name that is already running restarts it.",
    )
    start_parser.add_argument("-n", "--name", default=None, help="Id of the stopwatch")
    start_parser.set_defaults(func=cmd_start)

    stop_parser = subparsers.add_parser(
        "stop",
        parents=[format_parser],
        help="Stop a stopwatch and print the elapsed time",
    )
    stop_parser.add_argument("id", help="Id of the stopwatch to stop")
    stop_parser.set_defaults(func=cmd_stop)

    list_parser = subparsers.add_parser(
        "ls",
        parents=[format_parser],
        help="List all running stopwatches",
    )
    list_parser.set_defaults(func=cmd_list)

    wait_parser = subparsers.add_parser(
        "wait",
        parents=[format_parser],
        help="Time until Ctrl-C without saving to the stopwatch file",
    )
    wait_parser.add_argument("-l", "--live", action="store_true", help="Show the elapsed time live")
    wait_parser.set_defaults(func=cmd_wait)

    purge_parser = subparsers.add_parser(
        "purge",
        help="Remove the stopwatch file",
    )
    purge_parser.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")
    purge_parser.set_defaults(func=cmd_purge)

    version_parser = subparsers.add_parser("version", help="Show version information")
    version_parser.set_defaults(func=cmd_version)

    return parser


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for the stopwatch CLI."""
    ctx = RunContext.now()

    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    args.func(args, ctx)
    sys.exit(0)


if __name__ == "__main__":
    main()
