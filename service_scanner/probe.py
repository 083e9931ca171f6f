from __future__ import annotations

import socket
import time
from typing import Optional, Tuple

CLOSED = -1

STANDARD_TIMEOUT = 0.2
SERVICE_DETECTION_TIMEOUT = 0.5


def open_connection(ip: str, port: int, timeout: float) -> Optional[Tuple[socket.socket, int]]:
    """
    One TCP connect attempt, no retries.

    Returns (sock, latency_ms) with the socket still open and its timeout set
    to `timeout`, or None if the port did not accept the connection.
    The caller owns the returned socket.
    """
    start = time.perf_counter()
    try:
        sock = socket.create_connection((ip, port), timeout=timeout)
    except (socket.timeout, ConnectionRefusedError, OSError):
        return None
    latency_ms = int((time.perf_counter() - start) * 1000)
    return sock, latency_ms


def measure_latency(ip: str, port: int, timeout: float) -> int:
    """Latency in whole milliseconds, or CLOSED."""
    conn = open_connection(ip, port, timeout)
    if conn is None:
        return CLOSED
    sock, latency_ms = conn
    sock.close()
    return latency_ms


def is_port_open(ip: str, port: int, timeout: float = STANDARD_TIMEOUT) -> bool:
    return measure_latency(ip, port, timeout) != CLOSED
