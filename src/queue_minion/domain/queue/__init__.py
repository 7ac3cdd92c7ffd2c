"""Queue domain - track records and the persisted playback queue.

This domain handles:
- Track values and their JSON shape
- Cursor movement (next, previous, jump, clear)
- Queue history persistence
"""

from .models import Track, get_field, parse_duration
from .queue import NO_CURRENT, PlaybackQueue

__all__ = [
    "Track",
    "get_field",
    "parse_duration",
    "NO_CURRENT",
    "PlaybackQueue",
]
