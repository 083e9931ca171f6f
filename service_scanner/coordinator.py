from __future__ import annotations

import logging
import threading
from typing import Dict, Optional, Union

from .events import EventChannel, EventSink
from .models import ScanMode, ScanTarget
from .registry import PortRegistry
from .strategies import ScanStrategy, ServiceDetectionStrategy, StandardScanStrategy

logger = logging.getLogger(__name__)

StrategyName = Union[str, ScanMode]


def _key(name: StrategyName) -> str:
    return name.value if isinstance(name, ScanMode) else name


class ScanCoordinator:
    """
    Named registry of scan strategies with one active entry.
    execute/cancel/progress go to whichever strategy is active.
    """

    def __init__(self) -> None:
        self._strategies: Dict[str, ScanStrategy] = {}
        self._active: Optional[ScanStrategy] = None
        self._active_name: Optional[str] = None

    @classmethod
    def default(cls, registry: Optional[PortRegistry] = None) -> "ScanCoordinator":
        """Both built-in strategies registered, standard scanning active."""
        coordinator = cls()
        coordinator.register(ScanMode.STANDARD, StandardScanStrategy(registry))
        coordinator.register(ScanMode.SERVICE_DETECTION, ServiceDetectionStrategy(registry))
        coordinator.set_active(ScanMode.STANDARD)
        return coordinator

    @property
    def names(self):
        return list(self._strategies)

    @property
    def active_name(self) -> Optional[str]:
        return self._active_name

    @property
    def active(self) -> Optional[ScanStrategy]:
        return self._active

    def register(self, name: StrategyName, strategy: ScanStrategy) -> None:
        self._strategies[_key(name)] = strategy

    def set_active(self, name: StrategyName) -> None:
        key = _key(name)
        strategy = self._strategies.get(key)
        if strategy is None:
            raise ValueError(f"Unknown strategy: {key}")
        self._active = strategy
        self._active_name = key

    def execute(self, target: ScanTarget, sink: EventSink) -> None:
        """Run a scan with the active strategy, blocking until it ends."""
        if self._active is None:
            raise RuntimeError("No strategy selected")
        self._active.execute(target, sink)

    def start(self, target: ScanTarget, channel: Optional[EventChannel] = None) -> EventChannel:
        """
        Run a scan in the background and return the channel its events
        arrive on. Configuration errors are raised here, before any work.
        """
        if self._active is None:
            raise RuntimeError("No strategy selected")
        channel = channel if channel is not None else EventChannel()
        strategy = self._active
        # The run exists before the thread does, so an immediate cancel() sticks.
        run = strategy.prepare(target)
        threading.Thread(
            target=strategy.execute,
            args=(target, channel, run),
            name=f"scan-{target.host}",
            daemon=True,
        ).start()
        return channel

    def cancel(self) -> None:
        if self._active is not None:
            self._active.cancel()

    @property
    def is_scanning(self) -> bool:
        return self._active is not None and self._active.is_running

    @property
    def progress(self) -> float:
        return self._active.progress if self._active is not None else 0.0

    @property
    def status_prefix(self) -> str:
        return self._active.status_prefix if self._active is not None else ""

    def describe(self, name: StrategyName) -> str:
        strategy = self._strategies.get(_key(name))
        return strategy.description if strategy is not None else "Unknown scan mode"

    def shutdown(self) -> None:
        for strategy in self._strategies.values():
            strategy.shutdown()
        self._strategies.clear()
        self._active = None
        self._active_name = None
