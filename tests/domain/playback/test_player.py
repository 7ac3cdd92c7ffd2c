"""Tests for the mpv JSON IPC channel against a fake mpv socket."""

import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from queue_minion.core.config import PlayerConfig
from queue_minion.domain.playback import player
from queue_minion.domain.playback.player import MpvPlayer, PlayerState


@pytest.fixture
def state(fake_mpv) -> PlayerState:
    return PlayerState(
        socket_path=str(fake_mpv.socket_path), command_timeout=1.0, telemetry_timeout=0.3
    )


def wait_for_commands(fake_mpv, count, timeout=2.0):
    deadline = time.monotonic() + timeout
    while len(fake_mpv.commands) < count and time.monotonic() < deadline:
        time.sleep(0.01)
    return fake_mpv.commands


class TestIntents:
    def test_play_replaces_playlist(self, fake_mpv, state, tracks):
        assert player.play_track(state, tracks[0]) is True
        assert fake_mpv.commands == [["loadfile", tracks[0].url, "replace"]]

    def test_append(self, fake_mpv, state, tracks):
        assert player.append_track(state, tracks[1]) is True
        assert fake_mpv.commands == [["loadfile", tracks[1].url, "append-play"]]

    def test_load_playlist(self, fake_mpv, state, tracks):
        assert player.load_playlist(state, tracks) is True
        assert fake_mpv.commands == [
            ["loadfile", tracks[0].url, "replace"],
            ["loadfile", tracks[1].url, "append-play"],
            ["loadfile", tracks[2].url, "append-play"],
            ["set_property", "pause", False],
        ]

    def test_load_empty_playlist_sends_nothing(self, fake_mpv, state):
        assert player.load_playlist(state, []) is False
        assert fake_mpv.commands == []

    def test_pause_stop_next(self, fake_mpv, state):
        player.set_pause(state, True)
        player.stop_playback(state)
        player.playlist_next(state)
        assert fake_mpv.commands == [
            ["set_property", "pause", True],
            ["stop"],
            ["playlist-next"],
        ]

    def test_reply_after_event_line(self, fake_mpv, state, tracks):
        fake_mpv.event_before_reply = {"event": "start-file"}
        assert player.play_track(state, tracks[0]) is True


class TestTelemetry:
    def test_reads_numeric_properties(self, fake_mpv, state):
        fake_mpv.properties = {"time-pos": 12.5, "duration": 200}
        assert player.get_time_position(state) == 12.5
        assert player.get_duration(state) == 200.0

    @pytest.mark.parametrize("value", [None, "12", True, [1]])
    def test_non_numeric_values_read_as_zero(self, fake_mpv, state, value):
        fake_mpv.properties = {"time-pos": value}
        assert player.get_time_position(state) == 0.0

    def test_unavailable_property_reads_as_zero(self, fake_mpv, state):
        assert player.get_duration(state) == 0.0

    def test_stalled_player_times_out_to_zero(self, fake_mpv, state):
        fake_mpv.respond = False
        started = time.monotonic()
        assert player.get_time_position(state) == 0.0
        assert time.monotonic() - started < 2.0


class TestUnreachable:
    def test_missing_socket_is_swallowed(self, sock_dir, tracks):
        state = PlayerState(socket_path=str(sock_dir / "missing.sock"))
        assert player.play_track(state, tracks[0]) is False
        assert player.get_duration(state) == 0.0

    def test_no_socket_configured(self, tracks):
        handle = MpvPlayer()
        assert handle.load_playlist(tracks) is False
        assert handle.append(tracks[0]) is False
        assert handle.time_position() == 0.0
        handle.shutdown()

    def test_exited_process_counts_as_gone(self, fake_mpv, tracks):
        process = MagicMock()
        process.poll.return_value = 1
        state = PlayerState(socket_path=str(fake_mpv.socket_path), process=process)
        assert player.is_mpv_running(state) is False
        assert player.play_track(state, tracks[0]) is False
        assert fake_mpv.commands == []


class TestStartup:
    def test_wait_for_socket_succeeds_when_ready(self, fake_mpv):
        assert player.wait_for_socket(str(fake_mpv.socket_path), timeout=1.0) is True

    def test_wait_for_socket_gives_up(self, sock_dir):
        started = time.monotonic()
        assert player.wait_for_socket(str(sock_dir / "never.sock"), timeout=0.3) is False
        assert time.monotonic() - started < 1.5

    def test_connect_mpv(self, fake_mpv):
        config = PlayerConfig(startup_timeout=1.0, telemetry_timeout=0.2)
        state = player.connect_mpv(config, fake_mpv.socket_path)
        assert state.socket_path == str(fake_mpv.socket_path)
        assert state.process is None
        assert state.telemetry_timeout == 0.2

    def test_connect_mpv_not_ready(self, sock_dir):
        config = PlayerConfig(startup_timeout=0.2)
        assert player.connect_mpv(config, sock_dir / "none.sock") is None

    def test_start_mpv_missing_binary(self, sock_dir):
        config = PlayerConfig(mpv_binary="/nonexistent/mpv", startup_timeout=0.2)
        assert player.start_mpv(config, sock_dir / "mpv.sock") is None

    def test_start_mpv_builds_command_and_removes_stale_socket(self, sock_dir):
        socket_path = sock_dir / "mpv.sock"
        socket_path.write_text("stale", encoding="utf-8")
        config = PlayerConfig(volume=30, extra_args=["--ao=null"], startup_timeout=0.2)
        process = MagicMock()

        with patch.object(player.subprocess, "Popen", return_value=process) as popen, \
                patch.object(player, "wait_for_socket", return_value=True):
            state = player.start_mpv(config, socket_path)

        assert not socket_path.exists()
        cmd = popen.call_args[0][0]
        assert cmd[0] == "mpv"
        assert f"--input-ipc-server={socket_path}" in cmd
        assert "--volume=30" in cmd
        assert "--keep-open=no" in cmd
        assert cmd[-1] == "--ao=null"
        assert state.process is process

    def test_start_mpv_kills_process_when_socket_never_appears(self, sock_dir):
        process = MagicMock()
        with patch.object(player.subprocess, "Popen", return_value=process), \
                patch.object(player, "wait_for_socket", return_value=False):
            assert player.start_mpv(PlayerConfig(), sock_dir / "mpv.sock") is None
        process.kill.assert_called_once()


def test_stop_mpv_sends_quit(fake_mpv):
    state = PlayerState(socket_path=str(fake_mpv.socket_path))
    player.stop_mpv(state)
    assert ["quit"] in wait_for_commands(fake_mpv, 1)
    # Sockets owned by an external mpv are left alone
    assert Path(fake_mpv.socket_path).exists()


@pytest.mark.parametrize(
    "seconds,expected", [(0, "00:00"), (65.4, "01:05"), (3599, "59:59"), (-3, "00:00")]
)
def test_format_time(seconds, expected):
    assert player.format_time(seconds) == expected


def test_check_mpv_available_missing_binary():
    assert player.check_mpv_available("/nonexistent/mpv") is False
