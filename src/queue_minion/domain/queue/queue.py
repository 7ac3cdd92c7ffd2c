"""
Playback queue with a cursor and write-through history persistence.

The queue is not thread-safe on its own. The daemon only touches it from the
dispatcher's worker thread.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional

from loguru import logger

from .models import Track, get_field

# Cursor value meaning "before the first item"
NO_CURRENT = -1


class PlaybackQueue:
    """Ordered tracks plus a cursor marking the current one.

    Invariant: NO_CURRENT <= cursor < len(items). Inserting never moves the
    cursor; only next/previous/jump_to/clear do.
    """

    def __init__(self, history_path: Path):
        self.history_path = Path(history_path)
        self._tracks: List[Track] = []
        self._cursor = NO_CURRENT

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def items(self) -> tuple[Track, ...]:
        return tuple(self._tracks)

    @property
    def current_track(self) -> Optional[Track]:
        if 0 <= self._cursor < len(self._tracks):
            return self._tracks[self._cursor]
        return None

    @property
    def pending_count(self) -> int:
        """Number of tracks after the cursor."""
        return len(self._tracks) - (self._cursor + 1)

    @property
    def total_count(self) -> int:
        return len(self._tracks)

    def remaining_tracks(self) -> List[Track]:
        """Current track followed by everything still pending."""
        if self._cursor < 0:
            return []
        return self._tracks[self._cursor:]

    def enqueue(self, track: Track) -> None:
        self._tracks.append(track)

    def enqueue_many(self, tracks: Iterable[Track]) -> None:
        self._tracks.extend(tracks)

    def next(self) -> Optional[Track]:
        """Advance the cursor.

        Returns:
            The new current track, or None when the queue is exhausted. An
            exhausted queue keeps its cursor on the last item.
        """
        self._cursor += 1
        if self._cursor < len(self._tracks):
            return self._tracks[self._cursor]
        self._cursor = len(self._tracks) - 1
        return None

    def previous(self) -> Optional[Track]:
        """Step the cursor back one track.

        Returns:
            The new current track, or None if already at the first track
            (or there is no current track).
        """
        if self._cursor > 0:
            self._cursor -= 1
            return self._tracks[self._cursor]
        return None

    def jump_to(self, index: int) -> Optional[Track]:
        """Move the cursor to index.

        Returns:
            The track at index, or None if index is out of range (nothing changes).
        """
        if 0 <= index < len(self._tracks):
            self._cursor = index
            return self._tracks[index]
        return None

    def clear(self) -> None:
        self._tracks.clear()
        self._cursor = NO_CURRENT

    def to_dict(self) -> dict:
        return {
            "CurrentIndex": self._cursor,
            "Tracks": [track.to_dict() for track in self._tracks],
        }

    def save_history(self) -> bool:
        """Write the queue to the history file.

        Writes to a temp file in the same directory and renames it over the
        old file, so a crash mid-write leaves the previous history intact.

        Returns:
            True if the file was written
        """
        tmp_path = None
        try:
            self.history_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.history_path.parent, prefix=".history-", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.history_path)
            tmp_path = None
            return True
        except OSError as e:
            logger.warning(f"Failed to save queue history to {self.history_path}: {e}")
            return False
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass

    def load_history(self) -> bool:
        """Replace the queue contents with the history file.

        A missing or corrupt file leaves the queue empty.

        Returns:
            True if history was loaded
        """
        self.clear()

        if not self.history_path.exists():
            logger.info(f"No queue history at {self.history_path}, starting empty")
            return False

        try:
            with open(self.history_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable queue history {self.history_path}: {e}")
            return False

        if not isinstance(data, dict):
            logger.warning(f"Ignoring queue history {self.history_path}: not a JSON object")
            return False

        raw_tracks = get_field(data, "Tracks") or []
        if not isinstance(raw_tracks, list):
            logger.warning(f"Ignoring queue history {self.history_path}: Tracks is not a list")
            return False

        tracks = []
        for entry in raw_tracks:
            try:
                tracks.append(Track.from_dict(entry))
            except ValueError:
                logger.warning(f"Skipping malformed track in history: {entry!r}")

        cursor = get_field(data, "CurrentIndex", NO_CURRENT)
        if isinstance(cursor, bool) or not isinstance(cursor, int):
            logger.warning(f"Invalid CurrentIndex {cursor!r} in history, resetting")
            cursor = NO_CURRENT
        clamped = max(NO_CURRENT, min(cursor, len(tracks) - 1))
        if clamped != cursor:
            logger.warning(f"CurrentIndex {cursor} out of range, clamped to {clamped}")

        self._tracks = tracks
        self._cursor = clamped
        logger.info(
            f"Loaded queue history: {len(tracks)} tracks, current index {clamped}"
        )
        return True
