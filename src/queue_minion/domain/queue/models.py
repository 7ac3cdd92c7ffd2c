"""
Queue domain models.

Contains the immutable track record and its JSON representation.
"""

from typing import Any, Mapping, NamedTuple, Optional

LIVE_DURATION = "LIVE"

# JSON field name for each Track attribute
TRACK_FIELDS = {
    "id": "Id",
    "title": "Title",
    "uploader": "Uploader",
    "duration": "Duration",
    "url": "Url",
    "thumbnail": "Thumbnail",
}


def get_field(mapping: Mapping[str, Any], name: str, default: Any = None) -> Any:
    """Look up a JSON field by name, ignoring case.

    An exact match wins over a case-insensitive one.
    """
    if name in mapping:
        return mapping[name]
    lowered = name.lower()
    for key, value in mapping.items():
        if isinstance(key, str) and key.lower() == lowered:
            return value
    return default


def parse_duration(duration: str) -> Optional[int]:
    """Convert an "MM:SS" or "HH:MM:SS" string to seconds.

    Returns None for live streams and strings that don't parse.
    """
    if not duration or duration.strip().upper() == LIVE_DURATION:
        return None

    parts = duration.strip().split(":")
    if not 2 <= len(parts) <= 3:
        return None

    try:
        values = [int(part) for part in parts]
    except ValueError:
        return None

    if any(value < 0 for value in values):
        return None

    seconds = 0
    for value in values:
        seconds = seconds * 60 + value
    return seconds


class Track(NamedTuple):
    """A playable item discovered by a front end.

    Tracks are plain values: created once, stored in the queue, never mutated.
    The url is what gets handed to the player.
    """

    id: str
    title: str = ""
    uploader: str = ""
    duration: str = ""  # "MM:SS", "HH:MM:SS" or "LIVE"
    url: str = ""
    thumbnail: str = ""

    @property
    def duration_seconds(self) -> Optional[int]:
        return parse_duration(self.duration)

    def to_dict(self) -> dict[str, str]:
        """Serialize to the wire/history JSON shape."""
        return {json_name: getattr(self, attr) for attr, json_name in TRACK_FIELDS.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Track":
        """Build a Track from a JSON object, matching field names case-insensitively.

        Raises:
            ValueError: If data is not a JSON object
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"Track must be a JSON object, got {type(data).__name__}")

        values = {}
        for attr, json_name in TRACK_FIELDS.items():
            value = get_field(data, json_name)
            values[attr] = "" if value is None else str(value)
        return cls(**values)

    def __str__(self) -> str:
        return f"{self.title} - {self.uploader} ({self.duration})"
