from __future__ import annotations

import ipaddress
import socket
from typing import Tuple


def sanitize_host(value: str) -> str:
    """
    Turn user input into something resolvable:
      - "https://example.com:8443/path?q=1" -> "example.com"
      - "пример.рф" -> "xn--e1afmkfd.xn--p1ai"
    Bracketed IPv6 literals keep their colons.
    """
    host = (value or "").strip()
    if not host:
        return ""

    lower = host.lower()
    for scheme in ("https://", "http://"):
        if lower.startswith(scheme):
            host = host[len(scheme):]
            break

    # Drop path, query and fragment
    for sep in ("/", "?", "#"):
        host = host.split(sep, 1)[0]

    if host.startswith("[") and "]" in host:
        host = host[1:host.index("]")]
    elif host.count(":") == 1:
        host = host.split(":", 1)[0]

    return _to_ascii(host).strip()


def _to_ascii(host: str) -> str:
    if host.isascii():
        return host
    try:
        return host.encode("idna").decode("ascii")
    except UnicodeError:
        pass
    # Label by label, leaving any label the codec rejects untouched
    labels = []
    for label in host.split("."):
        try:
            labels.append(label.encode("idna").decode("ascii") if label else label)
        except UnicodeError:
            labels.append(label)
    return ".".join(labels)


def resolve_host(host: str) -> Tuple[str, str]:
    """
    Resolve a hostname or literal IP once.
    Returns (ip, canonical_hostname); raises ValueError for an unknown host.
    """
    host = host.strip()
    try:
        ip = str(ipaddress.ip_address(host))
    except ValueError:
        try:
            ip = socket.gethostbyname(host)
        except (socket.gaierror, UnicodeError) as e:
            raise ValueError(f"unknown host: {host}") from e

    try:
        hostname = socket.getfqdn(ip)
    except OSError:
        hostname = ip
    return ip, hostname or ip
