"""IPC client for sending commands to the running Queue Minion daemon."""

import json
import socket
from pathlib import Path
from typing import Any, Iterable, Optional

from queue_minion.core.config import get_daemon_socket_path
from queue_minion.domain.queue import Track
from queue_minion.ipc import protocol
from queue_minion.ipc.protocol import (
    DaemonCommand,
    DaemonResponse,
    ProtocolError,
    decode_response,
    encode_command,
)


def send_command(
    command: str,
    data: Any = None,
    socket_path: Optional[Path] = None,
    timeout: float = 5.0,
) -> DaemonResponse:
    """
    Send a command to the running daemon.

    Args:
        command: Command name (e.g., 'AddTrack', 'GetStatus')
        data: Command payload (optional)
        socket_path: Daemon socket (default: configured/XDG location)
        timeout: Seconds to wait for connect and response

    Returns:
        The daemon's response; connection problems come back as error responses
    """
    socket_path = Path(socket_path) if socket_path else get_daemon_socket_path()

    if not socket_path.exists():
        return DaemonResponse.error("Daemon is not running")

    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.settimeout(timeout)
            sock.connect(str(socket_path))
            sock.sendall(encode_command(DaemonCommand(command, data)))

            # Receive one response line
            response_data = b""
            while b"\n" not in response_data:
                chunk = sock.recv(4096)
                if not chunk:
                    break
                response_data += chunk

        if not response_data.strip():
            return DaemonResponse.error("No response from daemon")

        return decode_response(response_data.split(b"\n", 1)[0])

    except socket.timeout:
        return DaemonResponse.error("Daemon not responding (timeout)")
    except (ConnectionRefusedError, FileNotFoundError):
        return DaemonResponse.error("Daemon is not running")
    except ProtocolError as e:
        return DaemonResponse.error(f"Invalid response from daemon: {e}")
    except OSError as e:
        return DaemonResponse.error(f"Failed to send command: {e}")


def _tracks_payload(tracks: Iterable[Track]) -> list:
    return [track.to_dict() for track in tracks]


def get_status(socket_path: Optional[Path] = None) -> Optional[dict]:
    """Return the status snapshot dict, or None if the daemon can't be reached."""
    response = send_command(protocol.GET_STATUS, socket_path=socket_path)
    return response.data if response.ok else None


def add_track(track: Track, socket_path: Optional[Path] = None) -> DaemonResponse:
    return send_command(protocol.ADD_TRACK, {"Track": track.to_dict()}, socket_path)


def add_tracks(tracks: Iterable[Track], socket_path: Optional[Path] = None) -> DaemonResponse:
    return send_command(protocol.ADD_TRACKS, {"Tracks": _tracks_payload(tracks)}, socket_path)


def play(socket_path: Optional[Path] = None) -> DaemonResponse:
    return send_command(protocol.PLAY, socket_path=socket_path)


def pause(socket_path: Optional[Path] = None) -> DaemonResponse:
    return send_command(protocol.PAUSE, socket_path=socket_path)


def next_track(socket_path: Optional[Path] = None) -> DaemonResponse:
    return send_command(protocol.NEXT, socket_path=socket_path)


def previous_track(socket_path: Optional[Path] = None) -> DaemonResponse:
    return send_command(protocol.PREVIOUS, socket_path=socket_path)


def jump_to(index: int, socket_path: Optional[Path] = None) -> DaemonResponse:
    return send_command(protocol.JUMP_TO, {"Index": index}, socket_path)


def clear_queue(socket_path: Optional[Path] = None) -> DaemonResponse:
    return send_command(protocol.CLEAR_QUEUE, socket_path=socket_path)


def stop_daemon(socket_path: Optional[Path] = None) -> DaemonResponse:
    return send_command(protocol.STOP, socket_path=socket_path)


def is_daemon_running(socket_path: Optional[Path] = None) -> bool:
    return get_status(socket_path) is not None


def load_tracks_file(text: str) -> list[Track]:
    """Parse tracks from JSON text: a list of tracks or {"Tracks": [...]}.

    Raises:
        ValueError: If the text isn't valid track JSON
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e}") from e

    if isinstance(data, dict):
        return protocol.parse_tracks_payload(data)
    if isinstance(data, list):
        return [Track.from_dict(entry) for entry in data]
    raise ValueError("Expected a list of tracks or an object with Tracks")
