"""
Playback engine: keeps the queue and mpv moving together.

The engine's is_playing flag is its own belief, updated optimistically after
each intent is sent. It is never reconciled with mpv, so it can drift if mpv
fails silently. mpv's playlist mirrors the queue from the cursor onwards:
play_current() loads it, add_track() appends to it while playing, and mpv
walks through it on its own as tracks finish.
"""

from typing import Iterable, Optional

from loguru import logger

from queue_minion.domain.queue import PlaybackQueue, Track


class PlaybackEngine:
    """Orchestrates the playback queue and the player control channel.

    Not thread-safe: callers serialize access (see ipc.dispatcher).
    """

    def __init__(self, player, queue: PlaybackQueue):
        self.player = player
        self.queue = queue
        self.is_playing = False
        # Set when an advance ran off the end; the cursor still points at the
        # last (finished) track
        self.exhausted = False
        # True while mpv holds the mirrored playlist (queue from the cursor on)
        self.loaded = False

    def _persist(self) -> None:
        self.queue.save_history()

    def ensure_playing(self) -> None:
        """Start playback if idle and there is something to play.

        With no current track (or a finished queue) the cursor first moves
        onto the next pending track.
        """
        if self.is_playing:
            return

        if self.queue.current_track is None or self.exhausted:
            if self.queue.pending_count == 0:
                return
            self.queue.next()
            self._persist()

        if self.queue.current_track is not None:
            self.play_current()

    def play_current(self) -> bool:
        """Load the current track and everything after it as mpv's playlist."""
        track = self.queue.current_track
        if track is None:
            return False

        logger.info(f"Playing: {track}")
        self.player.load_playlist(self.queue.remaining_tracks())
        self.is_playing = True
        self.exhausted = False
        self.loaded = True
        return True

    def play(self) -> None:
        """Resume playback."""
        if self.queue.current_track is None or self.exhausted:
            self.ensure_playing()
            return
        if not self.loaded:
            # Restarted without resume, so mpv has nothing to unpause
            self.play_current()
            return

        self.player.set_pause(False)
        self.is_playing = True

    def pause(self) -> None:
        self.player.set_pause(True)
        self.is_playing = False

    def next(self) -> Optional[Track]:
        """Advance to the next track at a client's request."""
        return self._advance(player_advanced=False)

    def handle_track_end(self) -> Optional[Track]:
        """mpv finished a file on its own and has already moved its playlist on."""
        logger.debug("Track ended, advancing queue")
        return self._advance(player_advanced=True)

    def _advance(self, player_advanced: bool) -> Optional[Track]:
        was_playing = self.is_playing
        track = self.queue.next()
        self._persist()

        if track is None:
            logger.info("Queue exhausted")
            self.is_playing = False
            self.exhausted = True
            self.loaded = False
            return None

        if player_advanced:
            self.is_playing = True
            self.exhausted = False
            logger.info(f"Now playing: {track}")
        elif was_playing:
            self.player.next()
            self.player.set_pause(False)
            self.is_playing = True
            self.exhausted = False
            logger.info(f"Skipped to: {track}")
        else:
            # mpv holds no mirrored playlist while idle or paused
            self.play_current()
        return track

    def previous(self) -> Optional[Track]:
        track = self.queue.previous()
        if track is None:
            return None

        self._persist()
        # The previous track is no longer in mpv's playlist
        self.play_current()
        return track

    def jump_to(self, index: int) -> Optional[Track]:
        """Move to index and play it. Returns None (no change) if out of range."""
        track = self.queue.jump_to(index)
        if track is None:
            return None

        self._persist()
        self.play_current()
        return track

    def add_track_to_playlist(self, track: Track) -> None:
        """Append to mpv's live playlist; while idle the track just waits in the queue."""
        if self.is_playing:
            self.player.append(track)

    def add_track(self, track: Track) -> None:
        self.add_tracks([track])

    def add_tracks(self, tracks: Iterable[Track]) -> None:
        tracks = list(tracks)
        if not tracks:
            return

        self.queue.enqueue_many(tracks)
        self._persist()
        for track in tracks:
            self.add_track_to_playlist(track)
        logger.info(f"Queued {len(tracks)} track(s), {self.queue.total_count} total")
        self.ensure_playing()

    def clear(self) -> None:
        self.queue.clear()
        self._persist()
        self.player.stop()
        self.is_playing = False
        self.exhausted = False
        self.loaded = False
        logger.info("Queue cleared")

    def resume(self) -> bool:
        """Pick up the persisted current track after a restart."""
        if self.queue.current_track is None:
            return False
        return self.play_current()

    def time_position(self) -> float:
        return self.player.time_position()

    def duration(self) -> float:
        return self.player.duration()

    def shutdown(self) -> None:
        self.player.shutdown()
