"""Read-only status snapshots for clients."""

from typing import List, NamedTuple, Optional

from queue_minion.domain.playback.engine import PlaybackEngine
from queue_minion.domain.queue import Track


class StatusSnapshot(NamedTuple):
    """Point-in-time view of the queue and playback, built per request."""

    current_track: Optional[Track]
    queue: List[Track]
    current_index: int
    is_playing: bool
    total_count: int
    pending_count: int
    time_position: float = 0.0  # seconds, 0.0 when mpv can't say
    duration: float = 0.0

    def to_dict(self) -> dict:
        return {
            "CurrentTrack": self.current_track.to_dict() if self.current_track else None,
            "Queue": [track.to_dict() for track in self.queue],
            "CurrentIndex": self.current_index,
            "IsPlaying": self.is_playing,
            "TotalCount": self.total_count,
            "PendingCount": self.pending_count,
            "TimePosition": self.time_position,
            "Duration": self.duration,
        }


def build_status(engine: PlaybackEngine) -> StatusSnapshot:
    """Assemble a snapshot, querying mpv for position and duration.

    Telemetry failures come back as 0.0 from the player channel, so this
    always produces a snapshot even when mpv is unreachable.
    """
    queue = engine.queue
    return StatusSnapshot(
        current_track=queue.current_track,
        queue=list(queue.items),
        current_index=queue.cursor,
        is_playing=engine.is_playing,
        total_count=queue.total_count,
        pending_count=queue.pending_count,
        time_position=engine.time_position(),
        duration=engine.duration(),
    )
