from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict

MIN_PORT = 1
MAX_PORT = 65535
MIN_WORKERS = 10
MAX_WORKERS = 500
DEFAULT_WORKERS = 100

STATE_OPEN = "Open"


class ScanMode(str, Enum):
    STANDARD = "Standard"
    SERVICE_DETECTION = "Service Detection"


@dataclass(frozen=True)
class ScanTarget:
    """
    What to scan: a pre-sanitized host, an inclusive port range and the
    worker-pool size. Invalid values raise ValueError before anything runs.
    """
    host: str
    start_port: int
    end_port: int
    workers: int = DEFAULT_WORKERS

    def __post_init__(self) -> None:
        if not self.host or not self.host.strip():
            raise ValueError("Host is required")
        if not (MIN_PORT <= self.start_port <= self.end_port <= MAX_PORT):
            raise ValueError(f"Invalid port range: {self.start_port}-{self.end_port}")
        if not (MIN_WORKERS <= self.workers <= MAX_WORKERS):
            raise ValueError(
                f"Invalid worker count: {self.workers} (expected {MIN_WORKERS}-{MAX_WORKERS})"
            )

    @property
    def ports(self) -> range:
        return range(self.start_port, self.end_port + 1)

    @property
    def total_ports(self) -> int:
        return self.end_port - self.start_port + 1


@dataclass(frozen=True)
class ScanResult:
    port: int
    service: str
    protocol: str
    latency_ms: int
    version: str = ""
    banner: str = ""
    state: str = STATE_OPEN
    mode: str = ScanMode.STANDARD.value

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
