"""Serialized command dispatch.

Connection threads and the mpv event watcher never touch the engine
directly. They put work into one inbox and a single worker thread applies it
in arrival order, so a client's Next and an end-of-track advance can't both
see the same cursor.
"""

import queue
import threading
from typing import Any, Callable, Optional

from loguru import logger

from queue_minion.domain.playback import PlaybackEngine, PlayerEvent
from queue_minion.domain.status import build_status
from queue_minion.ipc import protocol
from queue_minion.ipc.protocol import DaemonCommand, DaemonResponse, ProtocolError

_STOP = object()


class CommandDispatcher:
    """Owns the engine and runs every command and player event on one worker thread."""

    def __init__(
        self,
        engine: PlaybackEngine,
        on_shutdown: Optional[Callable[[], None]] = None,
    ):
        self.engine = engine
        self.on_shutdown = on_shutdown
        self.inbox: queue.Queue = queue.Queue()
        self.running = False
        self.thread: Optional[threading.Thread] = None
        # Guards running + inbox.put so nothing is queued behind the stop marker
        self._lock = threading.Lock()
        self._handlers: dict[str, Callable[[Any], DaemonResponse]] = {
            protocol.ADD_TRACK: self._add_track,
            protocol.ADD_TRACKS: self._add_tracks,
            protocol.PLAY: self._play,
            protocol.PAUSE: self._pause,
            protocol.NEXT: self._next,
            protocol.PREVIOUS: self._previous,
            protocol.JUMP_TO: self._jump_to,
            protocol.GET_STATUS: self._get_status,
            protocol.CLEAR_QUEUE: self._clear_queue,
            protocol.STOP: self._stop,
        }

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self.running = True
        self.thread = threading.Thread(target=self._run, name="dispatcher", daemon=True)
        self.thread.start()

    def stop(self) -> None:
        """Finish everything already queued, then stop the worker."""
        with self._lock:
            if not self.running:
                return
            self.running = False
            self.inbox.put(_STOP)
        if self.thread and self.thread.is_alive():
            self.thread.join()

    def submit(self, command: DaemonCommand) -> DaemonResponse:
        """Queue a client command and block until the worker has answered it."""
        reply: queue.Queue = queue.Queue(maxsize=1)
        with self._lock:
            if not self.running:
                return DaemonResponse.error("Daemon is shutting down")
            self.inbox.put((command, reply))
        return reply.get()

    def notify(self, event: PlayerEvent) -> None:
        """Queue a player event; returns immediately."""
        with self._lock:
            if not self.running:
                return
            self.inbox.put((event, None))

    def _run(self) -> None:
        while True:
            item = self.inbox.get()
            if item is _STOP:
                break
            message, reply = item
            if isinstance(message, PlayerEvent):
                self.handle_event(message)
            else:
                reply.put(self.handle_command(message))

    def handle_event(self, event: PlayerEvent) -> None:
        try:
            if event is PlayerEvent.TRACK_ENDED:
                self.engine.handle_track_end()
            elif event is PlayerEvent.RESUME:
                self.engine.resume()
        except Exception:
            logger.exception(f"Error handling player event {event.value}")

    def handle_command(self, command: DaemonCommand) -> DaemonResponse:
        """Run one command against the engine. Must only be called from one thread at a time."""
        handler = self._handlers.get(command.command)
        if handler is None:
            logger.warning(f"Unknown command: {command.command}")
            return DaemonResponse.error(f"Unknown command: {command.command}")

        logger.debug(f"Handling {command.command}")
        try:
            return handler(command.data)
        except ProtocolError as e:
            logger.warning(f"Bad {command.command} request: {e}")
            return DaemonResponse.error(str(e))
        except Exception as e:
            logger.exception(f"Error processing {command.command}")
            return DaemonResponse.error(f"Error processing command: {e}")

    def _success(self) -> DaemonResponse:
        return DaemonResponse.success(build_status(self.engine).to_dict())

    def _add_track(self, data: Any) -> DaemonResponse:
        self.engine.add_track(protocol.parse_track_payload(data))
        return self._success()

    def _add_tracks(self, data: Any) -> DaemonResponse:
        self.engine.add_tracks(protocol.parse_tracks_payload(data))
        return self._success()

    def _play(self, data: Any) -> DaemonResponse:
        self.engine.play()
        return self._success()

    def _pause(self, data: Any) -> DaemonResponse:
        self.engine.pause()
        return self._success()

    def _next(self, data: Any) -> DaemonResponse:
        self.engine.next()
        return self._success()

    def _previous(self, data: Any) -> DaemonResponse:
        self.engine.previous()
        return self._success()

    def _jump_to(self, data: Any) -> DaemonResponse:
        index = protocol.parse_index_payload(data)
        if self.engine.jump_to(index) is None:
            return DaemonResponse.error(f"Index out of range: {index}")
        return self._success()

    def _get_status(self, data: Any) -> DaemonResponse:
        return self._success()

    def _clear_queue(self, data: Any) -> DaemonResponse:
        self.engine.clear()
        return self._success()

    def _stop(self, data: Any) -> DaemonResponse:
        logger.info("Stop requested by client")
        response = self._success()
        if self.on_shutdown:
            self.on_shutdown()
        return response
