"""Shared fixtures: sample tracks, a recording fake player, and a fake mpv socket."""

import json
import shutil
import socket
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional

import pytest

from queue_minion.domain.playback import PlaybackEngine
from queue_minion.domain.queue import PlaybackQueue, Track


def make_track(n: int) -> Track:
    return Track(
        id=f"id{n}",
        title=f"Track {n}",
        uploader=f"Uploader {n}",
        duration="03:30",
        url=f"https://example.com/watch?v={n}",
        thumbnail=f"https://example.com/thumb/{n}.jpg",
    )


class FakePlayer:
    """Records every intent the engine sends instead of talking to mpv."""

    def __init__(self, position: float = 0.0, duration: float = 0.0):
        self.calls: list[tuple] = []
        self.position = position
        self.length = duration
        self.socket_path: Optional[str] = None

    def append(self, track: Track) -> bool:
        self.calls.append(("append", track.url))
        return True

    def load_playlist(self, tracks) -> bool:
        self.calls.append(("load", [track.url for track in tracks]))
        return True

    def set_pause(self, paused: bool) -> bool:
        self.calls.append(("pause", paused))
        return True

    def stop(self) -> bool:
        self.calls.append(("stop",))
        return True

    def next(self) -> bool:
        self.calls.append(("next",))
        return True

    def time_position(self) -> float:
        return self.position

    def duration(self) -> float:
        return self.length

    def shutdown(self) -> None:
        self.calls.append(("shutdown",))


class FakeMpv:
    """Minimal mpv JSON IPC server on a Unix socket.

    Replies to get_property from `properties`, acknowledges everything else,
    and records each command it receives.
    """

    def __init__(self, socket_path: Path):
        self.socket_path = socket_path
        self.properties: dict[str, Any] = {}
        self.commands: list[list] = []
        self.respond = True
        self.event_before_reply: Optional[dict] = None
        self._connections: list[socket.socket] = []
        self._lock = threading.Lock()
        self._server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        self._server.bind(str(socket_path))
        self._server.listen(8)
        self._server.settimeout(0.1)
        self._running = True
        self._thread = threading.Thread(target=self._accept, daemon=True)
        self._thread.start()

    def _accept(self) -> None:
        while self._running:
            try:
                conn, _ = self._server.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            with self._lock:
                self._connections.append(conn)
            threading.Thread(target=self._serve, args=(conn,), daemon=True).start()

    def _serve(self, conn: socket.socket) -> None:
        buffer = b""
        try:
            while True:
                chunk = conn.recv(4096)
                if not chunk:
                    break
                buffer += chunk
                while b"\n" in buffer:
                    line, buffer = buffer.split(b"\n", 1)
                    self._reply(conn, json.loads(line))
        except OSError:
            pass

    def _reply(self, conn: socket.socket, request: dict) -> None:
        command = request["command"]
        with self._lock:
            self.commands.append(command)
        if not self.respond:
            return
        if self.event_before_reply:
            conn.sendall((json.dumps(self.event_before_reply) + "\n").encode())
        reply = {"request_id": request.get("request_id", 0), "error": "success"}
        if command[0] == "get_property":
            if command[1] not in self.properties:
                reply["error"] = "property unavailable"
            else:
                reply["data"] = self.properties[command[1]]
        conn.sendall((json.dumps(reply) + "\n").encode())

    def broadcast(self, message: dict) -> None:
        """Send an event line to every open connection."""
        with self._lock:
            connections = list(self._connections)
        for conn in connections:
            try:
                conn.sendall((json.dumps(message) + "\n").encode())
            except OSError:
                pass

    def close(self) -> None:
        self._running = False
        self._server.close()
        with self._lock:
            for conn in self._connections:
                try:
                    conn.shutdown(socket.SHUT_RDWR)
                    conn.close()
                except OSError:
                    pass
        self._thread.join(timeout=1.0)


@pytest.fixture
def tracks() -> list[Track]:
    return [make_track(n) for n in range(1, 4)]


@pytest.fixture
def history_path(tmp_path: Path) -> Path:
    return tmp_path / "config" / "history.json"


@pytest.fixture
def playback_queue(history_path: Path) -> PlaybackQueue:
    return PlaybackQueue(history_path)


@pytest.fixture
def fake_player() -> FakePlayer:
    return FakePlayer()


@pytest.fixture
def engine(fake_player: FakePlayer, playback_queue: PlaybackQueue) -> PlaybackEngine:
    return PlaybackEngine(fake_player, playback_queue)


@pytest.fixture
def sock_dir():
    """Short temp dir for Unix sockets (paths are limited to ~100 bytes)."""
    path = Path(tempfile.mkdtemp(prefix="qm-", dir="/tmp"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def fake_mpv(sock_dir: Path):
    mpv = FakeMpv(sock_dir / "mpv.sock")
    yield mpv
    mpv.close()
