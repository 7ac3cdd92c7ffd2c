"""IPC server accepting client connections on the daemon's Unix socket."""

import os
import socket
import threading
from pathlib import Path
from typing import Callable, Optional, Set

from loguru import logger

from queue_minion.ipc.protocol import (
    DaemonCommand,
    DaemonResponse,
    ProtocolError,
    decode_command,
    encode_response,
)

# Requests longer than this without a newline get the connection dropped
MAX_LINE_BYTES = 1024 * 1024


class DaemonServer:
    """Unix socket server for daemon commands.

    Accepts connections on a background thread and gives each connection its
    own thread. Connection threads only do socket I/O; every decoded command
    goes to the handler (the dispatcher), which serializes them.
    """

    def __init__(
        self,
        socket_path: Path,
        handler: Callable[[DaemonCommand], DaemonResponse],
        poll_interval: float = 1.0,
        write_timeout: float = 5.0,
    ):
        """
        Initialize the server.

        Args:
            socket_path: Path of the Unix socket to listen on
            handler: Called with each decoded command, returns the response
            poll_interval: How often blocked accept/recv calls re-check for shutdown
            write_timeout: Give up on a client that won't read its response
        """
        self.socket_path = Path(socket_path)
        self.handler = handler
        self.poll_interval = poll_interval
        self.write_timeout = write_timeout
        self.server_socket: Optional[socket.socket] = None
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self._clients: Set[threading.Thread] = set()
        self._clients_lock = threading.Lock()

    def start(self) -> None:
        """Bind the socket and start accepting connections.

        Raises:
            OSError: If the socket can't be bound
        """
        if self.running:
            return

        # Remove stale socket if it exists
        if self.socket_path.exists() or self.socket_path.is_symlink():
            self.socket_path.unlink()
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)

        self.server_socket = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        self.server_socket.bind(str(self.socket_path))
        os.chmod(self.socket_path, 0o600)
        self.server_socket.listen(16)
        self.server_socket.settimeout(self.poll_interval)

        self.running = True
        self.thread = threading.Thread(target=self._run_server, name="accept", daemon=True)
        self.thread.start()
        logger.info(f"Daemon listening on {self.socket_path}")

    def stop(self) -> None:
        """Stop accepting, let open connections finish their current exchange, cleanup."""
        self.running = False

        if self.thread and self.thread.is_alive():
            self.thread.join(timeout=self.poll_interval + 2.0)

        if self.server_socket:
            try:
                self.server_socket.close()
            except OSError:
                pass
            self.server_socket = None

        with self._clients_lock:
            clients = list(self._clients)
        for client in clients:
            client.join(timeout=self.poll_interval + self.write_timeout)

        # Remove socket file
        if self.socket_path.exists():
            try:
                self.socket_path.unlink()
            except OSError:
                pass

        logger.info("Daemon server stopped")

    def _run_server(self) -> None:
        """Accept loop."""
        while self.running:
            try:
                client_socket, _ = self.server_socket.accept()
            except socket.timeout:
                # Timeout is normal, just check if we should continue
                continue
            except OSError as e:
                if self.running:
                    logger.error(f"Error accepting connection: {e}")
                    continue
                break

            thread = threading.Thread(
                target=self._handle_client, args=(client_socket,), daemon=True
            )
            with self._clients_lock:
                self._clients.add(thread)
            thread.start()

    def _handle_client(self, client_socket: socket.socket) -> None:
        """
        Serve one connection: one response line per request line until the
        client disconnects or the server stops.

        Args:
            client_socket: Connected client socket
        """
        buffer = b""
        client_socket.settimeout(self.poll_interval)
        try:
            while self.running:
                if b"\n" not in buffer:
                    if len(buffer) > MAX_LINE_BYTES:
                        self._send(client_socket, DaemonResponse.error("Request too large"))
                        break
                    try:
                        chunk = client_socket.recv(4096)
                    except socket.timeout:
                        continue
                    if not chunk:
                        break
                    buffer += chunk
                    continue

                line, buffer = buffer.split(b"\n", 1)
                if not line.strip():
                    continue

                self._send(client_socket, self._process_line(line))

        except OSError as e:
            # Client went away mid-exchange; other connections are unaffected
            logger.debug(f"Client connection error: {e}")
        finally:
            try:
                client_socket.close()
            except OSError:
                pass
            with self._clients_lock:
                self._clients.discard(threading.current_thread())

    def _process_line(self, line: bytes) -> DaemonResponse:
        try:
            command = decode_command(line)
        except ProtocolError as e:
            logger.warning(f"Rejected request: {e}")
            return DaemonResponse.error(str(e))
        return self.handler(command)

    def _send(self, client_socket: socket.socket, response: DaemonResponse) -> None:
        client_socket.settimeout(self.write_timeout)
        try:
            client_socket.sendall(encode_response(response))
        finally:
            client_socket.settimeout(self.poll_interval)
