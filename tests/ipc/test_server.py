"""Tests for DaemonServer over a real Unix socket."""

import json
import socket
import stat
import threading

import pytest

from conftest import make_track
from queue_minion.ipc import client, protocol
from queue_minion.ipc.dispatcher import CommandDispatcher
from queue_minion.ipc.server import DaemonServer


@pytest.fixture
def dispatcher(engine):
    dispatcher = CommandDispatcher(engine)
    dispatcher.start()
    yield dispatcher
    dispatcher.stop()


@pytest.fixture
def server(sock_dir, dispatcher):
    server = DaemonServer(sock_dir / "daemon.sock", dispatcher.submit, poll_interval=0.05)
    server.start()
    yield server
    server.stop()


def connect(server) -> socket.socket:
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.settimeout(5.0)
    sock.connect(str(server.socket_path))
    return sock


def read_line(sock, buffer=b""):
    while b"\n" not in buffer:
        chunk = sock.recv(4096)
        if not chunk:
            break
        buffer += chunk
    line, _, rest = buffer.partition(b"\n")
    return json.loads(line), rest


class TestServer:
    def test_socket_is_private(self, server):
        mode = stat.S_IMODE(server.socket_path.stat().st_mode)
        assert mode == 0o600

    def test_get_status(self, server):
        response = client.send_command(protocol.GET_STATUS, socket_path=server.socket_path)
        assert response.ok
        assert response.data["TotalCount"] == 0
        assert response.data["CurrentIndex"] == -1

    def test_many_requests_on_one_connection(self, server, tracks):
        with connect(server) as sock:
            for track in tracks:
                request = {"Command": "AddTrack", "Data": {"Track": track.to_dict()}}
                sock.sendall((json.dumps(request) + "\n").encode())
            rest = b""
            counts = []
            for _ in tracks:
                reply, rest = read_line(sock, rest)
                counts.append(reply["Data"]["TotalCount"])

        assert counts == [1, 2, 3]

    def test_malformed_line_keeps_connection_open(self, server):
        with connect(server) as sock:
            sock.sendall(b"{not json\n\n")
            reply, rest = read_line(sock)
            assert reply["Status"] == "error"
            assert reply["Message"].startswith("Invalid JSON")

            sock.sendall(b'{"Command": "GetStatus"}\n')
            reply, _ = read_line(sock, rest)
            assert reply["Status"] == "success"

    def test_request_split_across_writes(self, server):
        with connect(server) as sock:
            sock.sendall(b'{"Command": "Get')
            sock.sendall(b'Status"}\n')
            reply, _ = read_line(sock)
        assert reply["Status"] == "success"

    def test_unknown_command_over_the_wire(self, server):
        response = client.send_command("Frobnicate", socket_path=server.socket_path)
        assert not response.ok
        assert response.message == "Unknown command: Frobnicate"

    def test_concurrent_clients(self, server, engine):
        count = 10
        results = []
        lock = threading.Lock()

        def add(n):
            response = client.add_track(make_track(n), server.socket_path)
            with lock:
                results.append(response.ok)

        threads = [threading.Thread(target=add, args=(n,)) for n in range(count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10.0)

        assert results == [True] * count
        status = client.get_status(server.socket_path)
        assert status["TotalCount"] == count
        assert engine.queue.total_count == count

    def test_client_disconnect_does_not_affect_others(self, server):
        sock = connect(server)
        sock.sendall(b'{"Command": "GetSt')
        sock.close()

        assert client.is_daemon_running(server.socket_path)


class TestLifecycle:
    def test_stale_socket_is_replaced(self, sock_dir, dispatcher):
        path = sock_dir / "daemon.sock"
        path.write_text("stale", encoding="utf-8")

        server = DaemonServer(path, dispatcher.submit, poll_interval=0.05)
        server.start()
        try:
            assert client.is_daemon_running(path)
        finally:
            server.stop()

    def test_stop_removes_socket(self, sock_dir, dispatcher):
        path = sock_dir / "daemon.sock"
        server = DaemonServer(path, dispatcher.submit, poll_interval=0.05)
        server.start()
        server.stop()

        assert not path.exists()
        assert client.send_command(protocol.GET_STATUS, socket_path=path).message == (
            "Daemon is not running"
        )
