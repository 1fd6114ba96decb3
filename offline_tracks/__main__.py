"""
Entry point of the offline-tracks console script.
Application errors are rendered as panels with suggestions instead of tracebacks.
"""

import asyncio
import logging
import os
import sys

from rich.console import Console

from offline_tracks.cli.app import app
from offline_tracks.cli.formatters import format_error_with_suggestions
from offline_tracks.exceptions import OfflineTracksError

log = logging.getLogger("offline_tracks")


def _command_line() -> str:
    return " ".join(["offline-tracks", *sys.argv[1:]])


def main() -> None:
    """Runs the CLI and maps failures to exit codes."""
    if os.name == "nt":
        try:
            sys.stdout.reconfigure(encoding="utf-8")
            sys.stderr.reconfigure(encoding="utf-8")
        except (TypeError, AttributeError):
            pass

    console = Console(stderr=True)

    # Typer exits on its own for usage errors, aborts and Ctrl+C
    try:
        app()
    except asyncio.CancelledError:
        console.print("\n[yellow]⏸  Stopped. Playback positions were saved.[/yellow]")
        sys.exit(130)
    except OfflineTracksError as e:
        console.print(format_error_with_suggestions(e, {"command": _command_line()}))
        sys.exit(1)
    except Exception as e:
        log.debug("Full traceback:", exc_info=True)
        console.print(
            format_error_with_suggestions(
                e, {"type": "Unexpected", "command": _command_line()}
            )
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
