from __future__ import annotations

from typing import Tuple

from .models import MAX_PORT, MIN_PORT


def parse_port_range(spec: str) -> Tuple[int, int]:
    """
    Parses a port range specification into an inclusive (start, end) pair.
    Supports:
    - Single ports: "80"
    - Ranges: "1-1024"
    """
    spec = (spec or "").strip()
    if not spec:
        raise ValueError("Empty port spec")

    if "-" in spec:
        start_s, end_s = spec.split("-", 1)
    else:
        start_s = end_s = spec

    try:
        start = int(start_s.strip())
        end = int(end_s.strip())
    except ValueError:
        raise ValueError(f"Invalid port range: {spec}") from None

    if start < MIN_PORT or end > MAX_PORT or start > end:
        raise ValueError(f"Invalid port range: {spec}")
    return start, end
