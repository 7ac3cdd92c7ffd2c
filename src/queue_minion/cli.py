"""
Queue Minion - Entry point

Runs the daemon in the foreground (`queue-minion daemon`) or sends one
command to a running daemon and prints the result.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from queue_minion.core import config as config_module
from queue_minion.domain.playback.player import format_time
from queue_minion.domain.queue import Track
from queue_minion.domain.queue.models import LIVE_DURATION
from queue_minion.ipc import client, protocol
from queue_minion.ipc.protocol import DaemonResponse

console = Console()
err_console = Console(stderr=True)


def render_status(status: dict) -> None:
    """Print a status snapshot as a now-playing line plus a queue table."""
    current = status.get("CurrentTrack")
    current_index = status.get("CurrentIndex", -1)
    state = "▶ Playing" if status.get("IsPlaying") else "⏸ Stopped"

    if current:
        position = format_time(status.get("TimePosition") or 0.0)
        duration = format_time(status.get("Duration") or 0.0)
        console.print(
            f"[bold]{state}[/bold]: {current.get('Title', '')} - "
            f"{current.get('Uploader', '')} [dim]({position} / {duration})[/dim]"
        )
    else:
        console.print(f"[bold]{state}[/bold]: nothing queued")

    tracks = status.get("Queue") or []
    if not tracks:
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("Uploader")
    table.add_column("Duration", justify="right")
    for index, track in enumerate(tracks):
        style = "bold green" if index == current_index else ("dim" if index < current_index else None)
        table.add_row(
            str(index),
            track.get("Title", ""),
            track.get("Uploader", ""),
            track.get("Duration", ""),
            style=style,
        )
    console.print(table)
    console.print(
        f"[dim]{status.get('PendingCount', 0)} pending of {status.get('TotalCount', 0)} tracks[/dim]"
    )


def report(response: DaemonResponse, show_status: bool = False) -> int:
    """
    Print a daemon response.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    if not response.ok:
        err_console.print(f"[red]Error:[/red] {response.message or 'unknown error'}")
        return 1

    if response.message:
        console.print(response.message)
    if show_status and response.data:
        render_status(response.data)
    return 0


def _read_tracks(source: str) -> list[Track]:
    text = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    return client.load_tracks_file(text)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="queue-minion",
        description="Queue Minion - background media queue for mpv",
    )
    parser.add_argument(
        "--socket",
        type=Path,
        help="Daemon socket path (default: from config)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.toml",
    )

    subparsers = parser.add_subparsers(dest="subcommand", required=True)

    subparsers.add_parser("daemon", help="Run the daemon in the foreground")

    status_parser = subparsers.add_parser("status", help="Show queue and playback status")
    status_parser.add_argument("--json", action="store_true", help="Print raw JSON")

    add_parser = subparsers.add_parser("add", help="Queue one track")
    add_parser.add_argument("--url", required=True, help="Playable URL or path")
    add_parser.add_argument("--title", default="", help="Track title")
    add_parser.add_argument("--uploader", default="", help="Uploader/artist name")
    add_parser.add_argument("--duration", default="", help='"MM:SS", "HH:MM:SS" or "LIVE"')
    add_parser.add_argument("--id", default="", help="Source-specific identifier")
    add_parser.add_argument("--thumbnail", default="", help="Thumbnail URL")

    add_json_parser = subparsers.add_parser(
        "add-json", help="Queue tracks from a JSON file ('-' for stdin)"
    )
    add_json_parser.add_argument("file", help="JSON list of tracks or {\"Tracks\": [...]}")

    subparsers.add_parser("play", help="Resume playback")
    subparsers.add_parser("pause", help="Pause playback")
    subparsers.add_parser("next", help="Skip to the next track")
    subparsers.add_parser("prev", help="Go back to the previous track")

    jump_parser = subparsers.add_parser("jump", help="Play the track at a queue index")
    jump_parser.add_argument("index", type=int, help="Zero-based queue index")

    subparsers.add_parser("clear", help="Clear the queue")
    subparsers.add_parser("stop", help="Stop the daemon")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the queue-minion command."""
    args = build_parser().parse_args(argv)

    cfg = config_module.load_config(args.config)
    socket_path = args.socket or config_module.get_daemon_socket_path(cfg)

    if args.subcommand == "daemon":
        from queue_minion.daemon import run_daemon

        if args.socket:
            cfg.daemon.socket_path = str(args.socket)
        return run_daemon(cfg)

    if args.subcommand == "status":
        response = client.send_command(protocol.GET_STATUS, socket_path=socket_path)
        if args.json and response.ok:
            print(json.dumps(response.data, indent=2))
            return 0
        return report(response, show_status=True)

    if args.subcommand == "add":
        track = Track(
            id=args.id,
            title=args.title,
            uploader=args.uploader,
            duration=args.duration.strip(),
            url=args.url,
            thumbnail=args.thumbnail,
        )
        if (
            track.duration
            and track.duration.upper() != LIVE_DURATION
            and track.duration_seconds is None
        ):
            err_console.print(f"[red]Error:[/red] Invalid duration: {args.duration!r}")
            return 1
        return report(client.add_track(track, socket_path))

    if args.subcommand == "add-json":
        try:
            tracks = _read_tracks(args.file)
        except (OSError, ValueError) as e:
            err_console.print(f"[red]Error:[/red] {e}")
            return 1
        return report(client.add_tracks(tracks, socket_path))

    if args.subcommand == "jump":
        return report(client.jump_to(args.index, socket_path), show_status=True)

    simple_commands = {
        "play": client.play,
        "pause": client.pause,
        "next": client.next_track,
        "prev": client.previous_track,
        "clear": client.clear_queue,
        "stop": client.stop_daemon,
    }
    return report(simple_commands[args.subcommand](socket_path))


if __name__ == "__main__":
    sys.exit(main())
