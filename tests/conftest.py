import contextlib
import socket
import socketserver
import threading
from typing import Dict, Iterator, List, Optional

import pytest


class _Server(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True


def make_handler(greeting: bytes = b"", reply: Optional[bytes] = None):
    """
    greeting: sent as soon as a client connects.
    reply:    sent after the first request chunk arrives, then the
              connection is closed.
    """

    class _Handler(socketserver.BaseRequestHandler):
        def handle(self):
            self.request.settimeout(2.0)
            try:
                if greeting:
                    self.request.sendall(greeting)
                if reply is not None:
                    self.request.recv(4096)
                    self.request.sendall(reply)
                    return
                # Hold the connection until the client goes away
                self.request.recv(1)
            except OSError:
                pass

    return _Handler


@contextlib.contextmanager
def serve(greeting: bytes = b"", reply: Optional[bytes] = None) -> Iterator[int]:
    with _Server(("127.0.0.1", 0), make_handler(greeting, reply)) as server:
        port = server.server_address[1]
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        try:
            yield port
        finally:
            server.shutdown()
            thread.join()


@pytest.fixture
def closed_port() -> Iterator[int]:
    # Bound but never listening: connects are refused.
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    try:
        yield sock.getsockname()[1]
    finally:
        sock.close()


class FakeNetwork:
    """
    Stand-in for probe.open_connection. Ports listed in `services` accept
    and immediately have their payload waiting; every other port is closed.
    """

    def __init__(self, services: Optional[Dict[int, bytes]] = None, latency_ms: int = 1):
        self.services = services or {}
        self.latency_ms = latency_ms
        self.calls: List[int] = []
        self._peers: List[socket.socket] = []
        self._lock = threading.Lock()

    def __call__(self, ip: str, port: int, timeout: float):
        with self._lock:
            self.calls.append(port)
        payload = self.services.get(port)
        if payload is None:
            return None
        ours, theirs = socket.socketpair()
        ours.settimeout(timeout)
        theirs.sendall(payload)
        theirs.shutdown(socket.SHUT_WR)
        with self._lock:
            self._peers.append(theirs)
        return ours, self.latency_ms

    def close(self) -> None:
        for peer in self._peers:
            peer.close()
        self._peers.clear()


@pytest.fixture
def fake_network():
    networks: List[FakeNetwork] = []

    def factory(services: Optional[Dict[int, bytes]] = None, latency_ms: int = 1) -> FakeNetwork:
        net = FakeNetwork(services, latency_ms)
        networks.append(net)
        return net

    yield factory
    for net in networks:
        net.close()


SSH_GREETING = b"SSH-2.0-OpenSSH_8.4p1\r\n"
HTTP_RESPONSE = (
    b"HTTP/1.1 200 OK\r\n"
    b"Server: nginx/1.18.0\r\n"
    b"Content-Length: 0\r\n"
    b"\r\n"
)
