"""Tests for mpv event parsing and the background event watcher."""

import threading
import time

import pytest

from queue_minion.domain.playback import PlayerEvent, PlayerEventWatcher, parse_player_event


@pytest.mark.parametrize(
    "line,expected",
    [
        (b'{"event": "end-file", "reason": "eof"}', PlayerEvent.TRACK_ENDED),
        (b'{"event": "end-file", "reason": "stop"}', None),
        (b'{"event": "end-file", "reason": "error"}', None),
        (b'{"event": "start-file"}', None),
        (b'{"request_id": 3, "error": "success"}', None),
        (b"[1, 2]", None),
        (b"not json", None),
        (b"\xff\xfe", None),
    ],
)
def test_parse_player_event(line, expected):
    assert parse_player_event(line) is expected


class TestWatcher:
    def test_forwards_track_end(self, fake_mpv):
        received = []
        got_event = threading.Event()

        def on_event(event):
            received.append(event)
            got_event.set()

        watcher = PlayerEventWatcher(str(fake_mpv.socket_path), on_event, poll_interval=0.05)
        assert watcher.start() is True
        try:
            # Give the fake server a moment to register the connection
            for _ in range(50):
                fake_mpv.broadcast({"event": "start-file"})
                fake_mpv.broadcast({"event": "end-file", "reason": "eof"})
                if got_event.wait(timeout=0.05):
                    break
        finally:
            watcher.stop()

        assert received
        assert set(received) == {PlayerEvent.TRACK_ENDED}

    def test_no_socket_disables_watcher(self):
        watcher = PlayerEventWatcher(None, lambda event: None)
        assert watcher.start() is False
        watcher.stop()

    def test_unreachable_socket(self, sock_dir):
        watcher = PlayerEventWatcher(str(sock_dir / "gone.sock"), lambda event: None)
        assert watcher.start() is False
        assert watcher.running is False

    def test_stops_when_player_closes(self, fake_mpv):
        watcher = PlayerEventWatcher(str(fake_mpv.socket_path), lambda event: None, poll_interval=0.05)
        assert watcher.start() is True
        for _ in range(100):
            if fake_mpv._connections:
                break
            time.sleep(0.01)
        fake_mpv.close()
        watcher.thread.join(timeout=2.0)
        assert watcher.running is False
        watcher.stop()
