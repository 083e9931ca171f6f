from __future__ import annotations

import logging
import re
import socket
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

HTTP_PORTS = frozenset({80, 443, 8080, 8443, 8000, 8888, 3000, 9090})
SSH_PORTS = frozenset({22})
SMTP_PORTS = frozenset({25, 465, 587})
FTP_PORTS = frozenset({21})
MYSQL_PORTS = frozenset({3306})

GREETING_BYTES = 2048
MYSQL_BYTES = 512
HTTP_MAX_LINES = 20
DETAILED_HTTP_MAX_LINES = 30
SMTP_MAX_LINES = 5
SMTP_CONTINUATION = "220-"

USER_AGENT = "service-scanner/1.0"

# Control characters except tab, LF and CR; those are folded by _WHITESPACE.
_CONTROL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")


def sanitize(text: Optional[str]) -> str:
    if not text:
        return ""
    text = _CONTROL.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="ignore")


def _read_lines(
    sock: socket.socket,
    limit: int,
    keep_going: Optional[Callable[[str], bool]] = None,
) -> List[str]:
    """
    Read up to `limit` lines (terminators stripped), each capped at
    GREETING_BYTES. Stops early at EOF or once `keep_going(line)` returns
    False for the line just read.
    """
    lines: List[str] = []
    with sock.makefile("rb") as f:
        while len(lines) < limit:
            raw = f.readline(GREETING_BYTES)
            if not raw:
                break
            line = _decode(raw).rstrip("\r\n")
            lines.append(line)
            if keep_going is not None and not keep_going(line):
                break
    return lines


def _read_greeting(sock: socket.socket, n: int = GREETING_BYTES) -> str:
    data = sock.recv(n)
    return sanitize(_decode(data)) if data else ""


def _send_head(sock: socket.socket, host: str, detailed: bool = False) -> None:
    req = f"HEAD / HTTP/1.1\r\nHost: {host}\r\n"
    if detailed:
        req += f"User-Agent: {USER_AGENT}\r\nAccept: */*\r\n"
    req += "Connection: close\r\n\r\n"
    sock.sendall(req.encode())


def _probe_http(sock: socket.socket, host: str) -> str:
    _send_head(sock, host)
    lines = _read_lines(sock, HTTP_MAX_LINES)
    return sanitize("  ".join(lines))


def _probe_http_detailed(sock: socket.socket, host: str) -> str:
    # Stop at the blank line that ends the headers.
    _send_head(sock, host, detailed=True)
    lines = _read_lines(sock, DETAILED_HTTP_MAX_LINES, keep_going=bool)
    return sanitize("  ".join(lines))


def _read_first_line(sock: socket.socket) -> str:
    lines = _read_lines(sock, 1)
    return sanitize(lines[0]) if lines else ""


def _read_smtp_greeting(sock: socket.socket) -> str:
    # Multi-line greetings use "220-" on every line but the last.
    lines = _read_lines(sock, SMTP_MAX_LINES, keep_going=lambda line: line.startswith(SMTP_CONTINUATION))
    return sanitize("  ".join(lines))


def grab_banner(sock: socket.socket, host: str, port: int) -> str:
    """
    Standard banner grab on an already connected socket.

    HTTP-like ports get a HEAD request; everything else gets one passive
    read of the service greeting. Any failure yields "".
    """
    try:
        if port in HTTP_PORTS:
            return _probe_http(sock, host)
        return _read_greeting(sock)
    except OSError as e:
        logger.debug("Banner grab failed on port %d: %s", port, e)
        return ""


def grab_service_banner(sock: socket.socket, host: str, port: int) -> str:
    """
    Protocol-aware banner grab used by service detection.
    Any failure yields "".
    """
    try:
        if port in HTTP_PORTS:
            return _probe_http_detailed(sock, host)
        if port in SSH_PORTS or port in FTP_PORTS:
            return _read_first_line(sock)
        if port in SMTP_PORTS:
            return _read_smtp_greeting(sock)
        if port in MYSQL_PORTS:
            # Binary handshake packet; kept as an opaque blob.
            return _read_greeting(sock, MYSQL_BYTES)
        return _read_greeting(sock)
    except OSError as e:
        logger.debug("Service banner grab failed on port %d: %s", port, e)
        return ""
