"""
MPV player integration with JSON IPC for the Queue Minion daemon
Functional core with a thin handle used by the playback engine
"""

import itertools
import json
import os
import socket
import subprocess
import time
from pathlib import Path
from typing import Any, NamedTuple, Optional, Sequence

from loguru import logger

from queue_minion.core.config import PlayerConfig
from queue_minion.domain.queue.models import Track

# Backoff bounds while waiting for the mpv socket at startup (seconds)
SOCKET_POLL_INITIAL = 0.05
SOCKET_POLL_MAX = 0.5

_request_ids = itertools.count(1)


class PlayerState(NamedTuple):
    """Immutable handle on the external mpv process."""

    socket_path: Optional[str] = None
    process: Optional[subprocess.Popen] = None
    command_timeout: float = 2.0
    telemetry_timeout: float = 0.5


def check_mpv_available(binary: str = "mpv") -> bool:
    """Check if MPV is available on the system."""
    try:
        result = subprocess.run(
            [binary, "--version"], capture_output=True, text=True, timeout=5
        )
        return result.returncode == 0
    except (subprocess.SubprocessError, FileNotFoundError, OSError):
        return False


def _socket_accepts(socket_path: str) -> bool:
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.settimeout(0.5)
            sock.connect(socket_path)
        return True
    except OSError:
        return False


def wait_for_socket(
    socket_path: str,
    timeout: float,
    process: Optional[subprocess.Popen] = None,
) -> bool:
    """Wait for the mpv socket to accept connections, backing off between polls.

    Gives up early if the mpv process exits while we wait.
    """
    deadline = time.monotonic() + timeout
    delay = SOCKET_POLL_INITIAL

    while True:
        if os.path.exists(socket_path) and _socket_accepts(socket_path):
            return True
        if process is not None and process.poll() is not None:
            logger.error(f"MPV exited with code {process.returncode} before its socket appeared")
            return False
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        time.sleep(min(delay, remaining))
        delay = min(delay * 2, SOCKET_POLL_MAX)


def start_mpv(config: PlayerConfig, socket_path: Path) -> Optional[PlayerState]:
    """Start MPV with JSON IPC and return initial state."""
    socket_path = str(socket_path)
    logger.info(f"Starting MPV player with socket: {socket_path}")

    try:
        # Remove stale socket left by a previous run
        if os.path.exists(socket_path):
            logger.debug(f"Removing existing socket: {socket_path}")
            os.unlink(socket_path)
        Path(socket_path).parent.mkdir(parents=True, exist_ok=True)

        # keep-open=no so mpv reports end-of-file and moves through its playlist
        cmd = [
            config.mpv_binary,
            "--idle=yes",
            "--no-video",
            "--no-terminal",
            f"--input-ipc-server={socket_path}",
            f"--volume={config.volume}",
            "--keep-open=no",
            *config.extra_args,
        ]

        process = subprocess.Popen(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            stdin=subprocess.DEVNULL,
        )
    except (subprocess.SubprocessError, OSError) as e:
        logger.error(f"Failed to start MPV: {e}")
        return None

    if not wait_for_socket(socket_path, config.startup_timeout, process):
        logger.error(f"MPV socket not ready after {config.startup_timeout}s")
        process.kill()
        return None

    logger.info("MPV started successfully")
    return PlayerState(
        socket_path=socket_path,
        process=process,
        command_timeout=config.command_timeout,
        telemetry_timeout=config.telemetry_timeout,
    )


def connect_mpv(config: PlayerConfig, socket_path: Path) -> Optional[PlayerState]:
    """Attach to an mpv instance started outside the daemon."""
    socket_path = str(socket_path)
    logger.info(f"Waiting for external MPV socket: {socket_path}")

    if not wait_for_socket(socket_path, config.startup_timeout):
        logger.error(f"MPV socket {socket_path} not ready after {config.startup_timeout}s")
        return None

    return PlayerState(
        socket_path=socket_path,
        command_timeout=config.command_timeout,
        telemetry_timeout=config.telemetry_timeout,
    )


def stop_mpv(state: PlayerState) -> None:
    """Ask MPV to quit, then make sure the process is gone and the socket removed."""
    if not state.socket_path:
        return

    if is_mpv_running(state):
        send_mpv_command(state.socket_path, ["quit"], timeout=1.0)

    if state.process:
        try:
            state.process.wait(timeout=2.0)
        except subprocess.TimeoutExpired:
            state.process.kill()
            try:
                state.process.wait(timeout=2.0)
            except subprocess.TimeoutExpired:
                logger.warning("MPV did not exit after kill")

        # Only remove the socket we created
        if os.path.exists(state.socket_path):
            try:
                os.unlink(state.socket_path)
            except OSError:
                pass


def is_mpv_running(state: PlayerState) -> bool:
    """Check if MPV is still reachable.

    A spawned process that has exited counts as gone; the daemon does not
    restart it.
    """
    if not state.socket_path:
        return False

    if state.process is not None and state.process.poll() is not None:
        return False

    return os.path.exists(state.socket_path)


def _read_reply(sock: socket.socket, request_id: int, timeout: float) -> Optional[dict]:
    """Read lines until the reply for request_id arrives.

    mpv interleaves event lines with replies on every connection; those are skipped.
    """
    deadline = time.monotonic() + timeout
    buffer = b""

    while True:
        while b"\n" in buffer:
            line, buffer = buffer.split(b"\n", 1)
            if not line.strip():
                continue
            try:
                message = json.loads(line.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError):
                continue
            if not isinstance(message, dict) or "event" in message:
                continue
            if message.get("request_id", request_id) != request_id:
                continue
            return message

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None
        sock.settimeout(remaining)
        chunk = sock.recv(4096)
        if not chunk:
            return None
        buffer += chunk


def mpv_request(
    socket_path: Optional[str], command: Sequence[Any], timeout: float = 2.0
) -> Optional[dict]:
    """Send one JSON IPC command and return mpv's reply, or None on any failure."""
    if not socket_path or not os.path.exists(socket_path):
        return None

    request_id = next(_request_ids)
    payload = {"command": list(command), "request_id": request_id}

    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.settimeout(timeout)
            sock.connect(socket_path)
            sock.sendall((json.dumps(payload) + "\n").encode("utf-8"))
            return _read_reply(sock, request_id, timeout)
    except (socket.timeout, OSError) as e:
        logger.debug(f"MPV command {command[0]!r} failed: {e}")
        return None


def send_mpv_command(
    socket_path: Optional[str], command: Sequence[Any], timeout: float = 2.0
) -> bool:
    """Send JSON IPC command to MPV. Returns True if mpv acknowledged it."""
    reply = mpv_request(socket_path, command, timeout)
    return reply is not None and reply.get("error") == "success"


def get_mpv_property(
    socket_path: Optional[str], property_name: str, timeout: float = 0.5
) -> Any:
    """Get a property value from MPV, or None if unavailable."""
    reply = mpv_request(socket_path, ["get_property", property_name], timeout)
    if reply and reply.get("error") == "success":
        return reply.get("data")
    return None


def _as_seconds(value: Any) -> float:
    # bool is an int subclass; mpv never reports time as a bool
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def play_track(state: PlayerState, track: Track) -> bool:
    """Replace mpv's playlist with track and start it."""
    if not is_mpv_running(state):
        return False
    return send_mpv_command(
        state.socket_path, ["loadfile", track.url, "replace"], state.command_timeout
    )


def append_track(state: PlayerState, track: Track) -> bool:
    """Append track to mpv's playlist without interrupting playback."""
    if not is_mpv_running(state):
        return False
    return send_mpv_command(
        state.socket_path, ["loadfile", track.url, "append-play"], state.command_timeout
    )


def load_playlist(state: PlayerState, tracks: Sequence[Track]) -> bool:
    """Load tracks as a fresh mpv playlist, playing the first one."""
    if not tracks or not is_mpv_running(state):
        return False

    success = play_track(state, tracks[0])
    for track in tracks[1:]:
        append_track(state, track)
    # loadfile keeps the pause flag, so clear it explicitly
    set_pause(state, False)
    return success


def set_pause(state: PlayerState, paused: bool) -> bool:
    if not is_mpv_running(state):
        return False
    return send_mpv_command(
        state.socket_path, ["set_property", "pause", paused], state.command_timeout
    )


def stop_playback(state: PlayerState) -> bool:
    """Stop playback and clear mpv's playlist."""
    if not is_mpv_running(state):
        return False
    return send_mpv_command(state.socket_path, ["stop"], state.command_timeout)


def playlist_next(state: PlayerState) -> bool:
    if not is_mpv_running(state):
        return False
    return send_mpv_command(state.socket_path, ["playlist-next"], state.command_timeout)


def get_time_position(state: PlayerState) -> float:
    """Elapsed seconds of the current file, 0.0 when unknown."""
    if not is_mpv_running(state):
        return 0.0
    return _as_seconds(
        get_mpv_property(state.socket_path, "time-pos", state.telemetry_timeout)
    )


def get_duration(state: PlayerState) -> float:
    """Total seconds of the current file, 0.0 when unknown."""
    if not is_mpv_running(state):
        return 0.0
    return _as_seconds(
        get_mpv_property(state.socket_path, "duration", state.telemetry_timeout)
    )


class MpvPlayer:
    """Handle the playback engine drives.

    Every intent is fire-and-forget: failures are logged at debug level inside
    the functions above and reported as False, never raised.
    """

    def __init__(self, state: Optional[PlayerState] = None):
        self.state = state or PlayerState()

    @property
    def socket_path(self) -> Optional[str]:
        return self.state.socket_path

    def append(self, track: Track) -> bool:
        return append_track(self.state, track)

    def load_playlist(self, tracks: Sequence[Track]) -> bool:
        return load_playlist(self.state, tracks)

    def set_pause(self, paused: bool) -> bool:
        return set_pause(self.state, paused)

    def stop(self) -> bool:
        return stop_playback(self.state)

    def next(self) -> bool:
        return playlist_next(self.state)

    def time_position(self) -> float:
        return get_time_position(self.state)

    def duration(self) -> float:
        return get_duration(self.state)

    def shutdown(self) -> None:
        stop_mpv(self.state)


def format_time(seconds: float) -> str:
    """Format time in seconds to MM:SS format."""
    if seconds < 0:
        return "00:00"

    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes:02d}:{secs:02d}"
