"""
Command-line interface for ftps_ingest.

Runs a single poll cycle against one FTPS server and stores the retrieved
files below a local directory.
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import ConfigLoader, GlobalConfig
from .exceptions import ConfigurationError
from .ftp import (
    FTPSPoller,
    LocalFileSink,
    PollSummary,
    RemoteEntry,
    SeenFileTracker,
    TransferStatus,
)
from .logging import cleanup_logging, setup_logging

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_CONFIG_ERROR = 2

_STATUS_STYLES = {
    TransferStatus.RETRIEVED: "green",
    TransferStatus.SKIPPED_DUPLICATE: "dim",
    TransferStatus.FAILED: "red",
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="ftps-ingest",
        description="Retrieve new files from an FTPS server once per run.",
        epilog="Settings not given on the command line are read from the config "
        "file and FTPS_INGEST_* environment variables.",
    )
    parser.add_argument("-c", "--config", type=Path, help="YAML or JSON config file")

    connection = parser.add_argument_group("connection")
    connection.add_argument("--host", help="FTPS server hostname")
    connection.add_argument("--port", type=int, help="FTPS server port")
    connection.add_argument("--username", help="Login name")
    connection.add_argument(
        "--tls-mode", choices=["explicit", "implicit"], help="TLS negotiation"
    )
    connection.add_argument(
        "--allow-self-signed",
        action="store_true",
        default=None,
        help="Accept self-signed server certificates",
    )

    poll = parser.add_argument_group("poll")
    poll.add_argument("--remote-path", help="Remote directory to poll")
    poll.add_argument("--file-filter", help="Regex file names must match")
    poll.add_argument("--path-filter", help="Regex relative directories must match")
    poll.add_argument(
        "-r", "--recursive", action="store_true", default=None, help="Search subdirectories"
    )
    poll.add_argument(
        "--keep-original",
        action="store_true",
        help="Do not delete remote files after retrieval",
    )
    poll.add_argument("--max-selects", type=int, help="Max files to retrieve")
    poll.add_argument(
        "--state-file",
        type=Path,
        help="JSON file keeping seen files between runs (needed with --keep-original)",
    )

    output = parser.add_argument_group("output")
    output.add_argument(
        "-o",
        "--output-dir",
        type=Path,
        default=Path("."),
        help="Directory for retrieved files (default: current directory)",
    )
    output.add_argument("--json", action="store_true", help="Print the summary as JSON")
    output.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    return parser


def build_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Turn the given command-line flags into a nested config override."""
    mapping = {
        "connection": {
            "host": args.host,
            "port": args.port,
            "username": args.username,
            "tls_mode": args.tls_mode,
            "allow_self_signed": args.allow_self_signed,
        },
        "poll": {
            "remote_path": args.remote_path,
            "file_filter": args.file_filter,
            "path_filter": args.path_filter,
            "recursive": args.recursive,
            "max_selects": args.max_selects,
            "delete_original": False if args.keep_original else None,
        },
        "logging": {"level": "DEBUG" if args.verbose else None},
    }
    overrides: Dict[str, Any] = {}
    for section, values in mapping.items():
        given = {k: v for k, v in values.items() if v is not None}
        if given:
            overrides[section] = given
    return overrides


def print_summary(summary: PollSummary, console: Console) -> None:
    """Render a poll summary as a table."""
    if summary.listing_skipped:
        console.print("Polling interval not elapsed; nothing listed.")
        return

    if summary.outcomes:
        table = Table(title=f"Poll of {summary.remote_path}")
        table.add_column("Path")
        table.add_column("Status")
        table.add_column("Bytes", justify="right")
        table.add_column("Note")
        for outcome in summary.outcomes:
            note = outcome.error or ""
            if outcome.delete_failed:
                note = f"delete failed: {outcome.delete_error}"
            style = _STATUS_STYLES.get(outcome.status, "")
            table.add_row(
                escape(outcome.entry.path),
                f"[{style}]{outcome.status.value}[/{style}]" if style else outcome.status.value,
                f"{outcome.bytes_transferred:,}",
                escape(note),
            )
        console.print(table)

    for warning in summary.warnings:
        console.print(f"[yellow]warning:[/yellow] {escape(warning)}")

    console.print(
        f"{summary.retrieved} retrieved, {summary.skipped_duplicate} already seen, "
        f"{summary.skipped_filtered} filtered, {summary.failed} failed"
    )
    if summary.error:
        console.print(f"[red]Poll aborted:[/red] {escape(summary.error)}")


def load_state(path: Optional[Path]) -> SeenFileTracker:
    """
    Build a tracker from the records saved by earlier runs.

    A missing file yields an empty tracker.

    Raises:
        ConfigurationError: If the file exists but cannot be read
    """
    tracker = SeenFileTracker()
    if path is None or not path.exists():
        return tracker
    try:
        records = json.loads(path.read_text(encoding="utf-8"))
        tracker.restore(
            {
                (r["directory"], r["filename"]): (
                    datetime.fromisoformat(r["modified_at"]) if r["modified_at"] else None
                )
                for r in records
            }
        )
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise ConfigurationError(f"Unreadable state file {path}: {e}") from e
    return tracker


def save_state(path: Path, tracker: SeenFileTracker) -> None:
    """Write the tracker records, replacing the file in one step."""
    records = [
        {
            "directory": directory,
            "filename": filename,
            "modified_at": modified_at.isoformat() if modified_at else None,
        }
        for (directory, filename), modified_at in sorted(
            tracker.snapshot().items(), key=lambda item: item[0]
        )
    ]
    temporary = path.with_name(path.name + ".tmp")
    temporary.write_text(json.dumps(records, indent=2), encoding="utf-8")
    temporary.replace(path)


async def run_poll(
    config: GlobalConfig, output_dir: Path, tracker: Optional[SeenFileTracker] = None
) -> PollSummary:
    """Run one poll cycle storing files below ``output_dir``."""
    remote_root = config.poll.remote_path

    def sink_factory(entry: RemoteEntry) -> LocalFileSink:
        return LocalFileSink(output_dir, entry, remote_root)

    async with FTPSPoller(
        config.connection, config.poll, sink_factory=sink_factory, tracker=tracker
    ) as poller:
        return await poller.poll()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point; returns the process exit code."""
    parser = create_parser()
    args = parser.parse_args(argv)
    console = Console()

    try:
        config = ConfigLoader().load_config(args.config, build_overrides(args))
        tracker = load_state(args.state_file)
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    setup_logging(config.logging)
    try:
        summary = asyncio.run(run_poll(config, args.output_dir, tracker))
    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        return EXIT_ABORTED
    finally:
        cleanup_logging()

    if args.state_file is not None:
        try:
            save_state(args.state_file, tracker)
        except OSError as e:
            print(f"Could not save state to {args.state_file}: {e}", file=sys.stderr)
            return EXIT_ABORTED

    if args.json:
        print(json.dumps(summary.to_dict(), indent=2))
    else:
        print_summary(summary, console)

    return EXIT_ABORTED if summary.aborted else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
