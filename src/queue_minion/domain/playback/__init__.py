"""Playback domain - MPV integration and the playback engine.

This domain handles:
- MPV player control via JSON IPC
- End-of-track events from MPV
- Keeping the queue cursor and MPV's playlist in step
"""

from .engine import PlaybackEngine
from .events import PlayerEvent, PlayerEventWatcher, parse_player_event
from .player import (
    MpvPlayer,
    PlayerState,
    check_mpv_available,
    connect_mpv,
    format_time,
    get_duration,
    get_mpv_property,
    get_time_position,
    is_mpv_running,
    send_mpv_command,
    start_mpv,
    stop_mpv,
)

__all__ = [
    "PlaybackEngine",
    "PlayerEvent",
    "PlayerEventWatcher",
    "parse_player_event",
    "MpvPlayer",
    "PlayerState",
    "check_mpv_available",
    "connect_mpv",
    "format_time",
    "get_duration",
    "get_mpv_property",
    "get_time_position",
    "is_mpv_running",
    "send_mpv_command",
    "start_mpv",
    "stop_mpv",
]
