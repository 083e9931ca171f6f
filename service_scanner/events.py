"""
Events emitted by a scan run.

A sink is any callable that accepts one event. Every run emits exactly one
terminal event (Completed, Cancelled or Failed) and nothing after it.
"""
from __future__ import annotations

import logging
import queue
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Union

from .models import ScanResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostResolved:
    ip: str


@dataclass(frozen=True)
class ScanStarted:
    ip: str
    hostname: str
    total_ports: int


@dataclass(frozen=True)
class PortOpen:
    result: ScanResult


@dataclass(frozen=True)
class Progress:
    completed: int
    total: int

    @property
    def fraction(self) -> float:
        return self.completed / self.total if self.total else 0.0


@dataclass(frozen=True)
class SubnetDetected:
    cidr: str
    gateway: str


@dataclass(frozen=True)
class Status:
    message: str


@dataclass(frozen=True)
class Completed:
    pass


@dataclass(frozen=True)
class Cancelled:
    pass


@dataclass(frozen=True)
class Failed:
    reason: str


ScanEvent = Union[
    HostResolved, ScanStarted, PortOpen, Progress, SubnetDetected,
    Status, Completed, Cancelled, Failed,
]
EventSink = Callable[[ScanEvent], None]

TERMINAL_EVENTS = (Completed, Cancelled, Failed)


def is_terminal(event: ScanEvent) -> bool:
    return isinstance(event, TERMINAL_EVENTS)


def safe_sink(sink: EventSink) -> EventSink:
    """Wrap a sink so a failing consumer can never break the scan."""
    def _emit(event: ScanEvent) -> None:
        try:
            sink(event)
        except Exception:
            logger.exception("Event sink raised on %s", type(event).__name__)
    return _emit


class EventChannel:
    """
    Queue-backed sink. Producers call it; a consumer drains it by iterating,
    which stops after the terminal event.
    """

    def __init__(self, maxsize: int = 0):
        self._queue: "queue.Queue[ScanEvent]" = queue.Queue(maxsize)
        self.closed = False

    def __call__(self, event: ScanEvent) -> None:
        self._queue.put(event)

    def get(self, timeout: Optional[float] = None) -> ScanEvent:
        """Next event; raises queue.Empty if `timeout` expires first."""
        return self._queue.get(timeout=timeout)

    def __iter__(self) -> Iterator[ScanEvent]:
        while not self.closed:
            event = self._queue.get()
            if is_terminal(event):
                self.closed = True
            yield event

    def drain(self) -> List[ScanEvent]:
        return list(self)
