"""Watch mpv's event stream and report finished tracks to the daemon."""

import json
import socket
import threading
from enum import Enum
from typing import Callable, Optional

from loguru import logger


class PlayerEvent(Enum):
    """Events that reach the dispatcher without a client asking for them."""

    TRACK_ENDED = "track_ended"
    RESUME = "resume"


def parse_player_event(line: bytes) -> Optional[PlayerEvent]:
    """Map one line from mpv's socket to a PlayerEvent.

    Only end-file with reason "eof" counts as a finished track. "stop" is what
    mpv reports when we replace the file or skip ourselves.
    """
    try:
        message = json.loads(line.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None

    if not isinstance(message, dict):
        return None

    if message.get("event") == "end-file" and message.get("reason") == "eof":
        return PlayerEvent.TRACK_ENDED

    return None


class PlayerEventWatcher:
    """Keeps one connection open to mpv and forwards events from a background thread."""

    def __init__(
        self,
        socket_path: Optional[str],
        on_event: Callable[[PlayerEvent], None],
        poll_interval: float = 0.5,
    ):
        self.socket_path = socket_path
        self.on_event = on_event
        self.poll_interval = poll_interval
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self._sock: Optional[socket.socket] = None

    def start(self) -> bool:
        """Connect to mpv and start the reader thread.

        Returns:
            False if there is no player to watch
        """
        if self.running:
            return True
        if not self.socket_path:
            logger.warning("No MPV socket, end-of-track events disabled")
            return False

        try:
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            sock.settimeout(self.poll_interval)
            sock.connect(self.socket_path)
        except OSError as e:
            logger.warning(f"Could not attach event watcher to {self.socket_path}: {e}")
            return False

        self._sock = sock
        self.running = True
        self.thread = threading.Thread(
            target=self._run, name="mpv-events", daemon=True
        )
        self.thread.start()
        return True

    def stop(self) -> None:
        self.running = False
        if self.thread and self.thread.is_alive():
            self.thread.join(timeout=2.0)
        if self._sock:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None

    def _run(self) -> None:
        buffer = b""
        try:
            while self.running:
                try:
                    chunk = self._sock.recv(4096)
                except socket.timeout:
                    continue
                if not chunk:
                    if self.running:
                        logger.warning("MPV closed its socket, end-of-track events stopped")
                    break
                buffer += chunk
                while b"\n" in buffer:
                    line, buffer = buffer.split(b"\n", 1)
                    event = parse_player_event(line)
                    if event is not None:
                        logger.debug(f"MPV event: {event.value}")
                        self.on_event(event)
        except OSError as e:
            if self.running:
                logger.warning(f"MPV event stream failed: {e}")
        finally:
            self.running = False
