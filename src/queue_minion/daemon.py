"""
Queue Minion daemon - startup, main wait loop and shutdown

Startup loads the persisted queue, brings up mpv, starts the dispatcher and
the socket server, then resumes the current track. Shutdown runs in reverse
and always ends by saving the queue.
"""

import signal
import threading
from typing import Optional

from loguru import logger

from queue_minion.core import config as config_module
from queue_minion.core.config import Config
from queue_minion.core.output import setup_loguru
from queue_minion.domain.playback import (
    MpvPlayer,
    PlaybackEngine,
    PlayerEvent,
    PlayerEventWatcher,
    PlayerState,
    check_mpv_available,
    connect_mpv,
    start_mpv,
)
from queue_minion.domain.queue import PlaybackQueue
from queue_minion.ipc.dispatcher import CommandDispatcher
from queue_minion.ipc.server import DaemonServer


class Daemon:
    """Wires the queue, engine, dispatcher, event watcher and server together."""

    def __init__(self, config: Config, player: Optional[MpvPlayer] = None):
        self.config = config
        self.shutdown_event = threading.Event()
        self.queue = PlaybackQueue(config_module.get_history_path(config))
        self.player = player
        self.engine: Optional[PlaybackEngine] = None
        self.dispatcher: Optional[CommandDispatcher] = None
        self.watcher: Optional[PlayerEventWatcher] = None
        self.server: Optional[DaemonServer] = None

    def _start_player(self) -> MpvPlayer:
        mpv_socket = config_module.get_mpv_socket_path(self.config)
        if self.config.player.spawn:
            if check_mpv_available(self.config.player.mpv_binary):
                state = start_mpv(self.config.player, mpv_socket)
            else:
                logger.error(f"MPV binary not found: {self.config.player.mpv_binary}")
                state = None
        else:
            state = connect_mpv(self.config.player, mpv_socket)

        if state is None:
            # Keep serving the queue; player intents become no-ops
            logger.error("MPV unavailable, continuing without playback")
            state = PlayerState()
        return MpvPlayer(state)

    def start(self) -> None:
        """Bring every component up. Raises OSError if the client socket can't be bound."""
        self.queue.load_history()

        if self.player is None:
            self.player = self._start_player()

        self.engine = PlaybackEngine(self.player, self.queue)
        self.dispatcher = CommandDispatcher(self.engine, on_shutdown=self.request_shutdown)
        self.dispatcher.start()

        self.watcher = PlayerEventWatcher(self.player.socket_path, self.dispatcher.notify)
        self.watcher.start()

        self.server = DaemonServer(
            config_module.get_daemon_socket_path(self.config), self.dispatcher.submit
        )
        self.server.start()

        if self.config.daemon.resume_on_startup and self.queue.current_track is not None:
            self.dispatcher.notify(PlayerEvent.RESUME)

        logger.info("Daemon started")

    def request_shutdown(self) -> None:
        self.shutdown_event.set()

    def wait(self) -> None:
        # Short waits keep the main thread responsive to signals
        while not self.shutdown_event.wait(timeout=0.5):
            pass

    def stop(self) -> None:
        """Stop in reverse order; the queue is flushed last."""
        logger.info("Shutting down daemon...")
        if self.server:
            self.server.stop()
        if self.watcher:
            self.watcher.stop()
        if self.dispatcher:
            self.dispatcher.stop()
        if self.player:
            self.player.shutdown()
        self.queue.save_history()
        logger.info("Daemon stopped")


def install_signal_handlers(daemon: Daemon) -> None:
    """Route SIGINT/SIGTERM into the same cooperative shutdown as the Stop command."""

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signal.Signals(signum).name}")
        daemon.request_shutdown()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)


def run_daemon(config: Config) -> int:
    """Run the daemon in the foreground until Stop or a signal.

    Returns:
        Exit code (0 for clean shutdown, 1 if startup failed)
    """
    setup_loguru(
        config_module.get_log_file_path(config),
        level=config.logging.level,
        max_file_size_mb=config.logging.max_file_size_mb,
        backup_count=config.logging.backup_count,
        console_output=config.logging.console_output,
    )
    config_module.ensure_directories(config)

    daemon = Daemon(config)
    install_signal_handlers(daemon)

    try:
        daemon.start()
    except OSError as e:
        logger.error(f"Failed to start daemon: {e}")
        daemon.stop()
        return 1

    try:
        daemon.wait()
    finally:
        daemon.stop()
    return 0
