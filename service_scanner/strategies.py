"""
Scan strategies.

Both strategies share one orchestration skeleton (`ScanStrategy.execute`):
resolve the host once, fan out one task per port on a bounded pool, emit one
terminal event. They differ only in how an open port is inspected.
"""
from __future__ import annotations

import logging
import socket
from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple

from .banner import grab_banner, grab_service_banner
from .events import (
    Cancelled,
    Completed,
    EventSink,
    Failed,
    HostResolved,
    PortOpen,
    ScanEvent,
    ScanStarted,
    Status,
    SubnetDetected,
    safe_sink,
)
from .fingerprint import refine_protocol, refine_service_name, tag_service
from .models import ScanMode, ScanResult, ScanTarget
from .probe import SERVICE_DETECTION_TIMEOUT, STANDARD_TIMEOUT, open_connection
from .registry import PortRegistry, default_registry
from .scanner import ScanRun, fan_out
from .subnet import UNKNOWN, SubnetScanner
from .targets import resolve_host
from .versions import extract_version

logger = logging.getLogger(__name__)

Connector = Callable[[str, int, float], Optional[Tuple[socket.socket, int]]]


class ScanStrategy(ABC):
    mode: ScanMode
    status_prefix = ""
    description = ""
    timeout = STANDARD_TIMEOUT

    def __init__(
        self,
        registry: Optional[PortRegistry] = None,
        connect: Connector = open_connection,
    ):
        self.registry = registry if registry is not None else default_registry()
        self.connect = connect
        self._run: Optional[ScanRun] = None

    @property
    def name(self) -> str:
        return self.mode.value

    @property
    def is_running(self) -> bool:
        return self._run is not None and not self._run.finished

    @property
    def progress(self) -> float:
        return self._run.progress if self._run is not None else 0.0

    @property
    def active_run(self) -> Optional[ScanRun]:
        return self._run

    def cancel(self) -> None:
        if self._run is not None and not self._run.finished:
            logger.info("%s cancelling scan of %s", self.status_prefix, self._run.target.host)
            self._run.cancel()

    def shutdown(self) -> None:
        if self._run is not None:
            self._run.cancel()
            self._run.shutdown()

    def prepare(self, target: ScanTarget) -> ScanRun:
        """Make `target` the active run; cancel() and progress apply to it from here on."""
        run = ScanRun(target)
        self._run = run
        return run

    def execute(self, target: ScanTarget, sink: EventSink, run: Optional[ScanRun] = None) -> None:
        """
        Scan `target` and report everything through `sink`. Blocks until the
        run reaches a terminal state and always emits exactly one of
        Completed, Cancelled or Failed. Never raises.

        `run` is a run already returned by prepare() for this target.
        """
        emit = safe_sink(sink)
        if run is None:
            run = self.prepare(target)

        outcome: ScanEvent
        try:
            outcome = self._scan(run, emit)
        except Exception as e:
            logger.exception("%s scan of %s failed", self.status_prefix, target.host)
            outcome = Failed(str(e) or type(e).__name__)
        finally:
            run.shutdown()

        logger.info(
            "%s %s finished: %s (%d/%d ports)",
            self.status_prefix, target.host, type(outcome).__name__, run.completed, run.total,
        )
        emit(outcome)

    def _scan(self, run: ScanRun, emit: EventSink) -> ScanEvent:
        target = run.target
        try:
            run.ip, run.hostname = resolve_host(target.host)
        except ValueError as e:
            emit(Status(f"Error: unknown host {target.host}"))
            return Failed(str(e))

        emit(HostResolved(run.ip))
        self.before_scan(run, emit)

        emit(ScanStarted(run.ip, run.hostname, run.total))
        emit(Status(self.scan_status(run)))
        logger.info(
            "%s scanning %s (%s) ports %d-%d with %d workers",
            self.status_prefix, target.host, run.ip, target.start_port, target.end_port, target.workers,
        )

        fan_out(run, lambda port: self._scan_port(run, port, emit))
        return Cancelled() if run.cancelled else Completed()

    def _scan_port(self, run: ScanRun, port: int, emit: EventSink) -> None:
        try:
            if run.cancelled:
                return
            result = self.inspect(run, port)
            if result is not None:
                emit(PortOpen(result))
                self.after_result(result, emit)
        except Exception as e:
            # A single port never takes the scan down.
            logger.debug("Port %d on %s failed: %s", port, run.ip, e)
        finally:
            run.advance(emit)

    def scan_status(self, run: ScanRun) -> str:
        t = run.target
        return f"Scanning {t.host} ({run.ip}) - ports {t.start_port}-{t.end_port}"

    def before_scan(self, run: ScanRun, emit: EventSink) -> None:
        pass

    def after_result(self, result: ScanResult, emit: EventSink) -> None:
        pass

    @abstractmethod
    def inspect(self, run: ScanRun, port: int) -> Optional[ScanResult]:
        """Probe one port; a ScanResult if it is open, otherwise None."""


class StandardScanStrategy(ScanStrategy):
    """Connect, generic banner grab, registry lookup."""

    mode = ScanMode.STANDARD
    status_prefix = "[FAST]"
    description = "Standard Scanning mode: Basic TCP port scanning with service detection"
    timeout = STANDARD_TIMEOUT

    def inspect(self, run: ScanRun, port: int) -> Optional[ScanResult]:
        conn = self.connect(run.ip, port, self.timeout)
        if conn is None:
            return None
        sock, latency_ms = conn
        with sock:
            banner = grab_banner(sock, run.target.host, port)

        return ScanResult(
            port=port,
            service=self.registry.service_name(port),
            protocol=self.registry.protocol(port, banner),
            latency_ms=latency_ms,
            version=extract_version(banner),
            banner=banner,
            mode=self.mode.value,
        )


class ServiceDetectionStrategy(ScanStrategy):
    """
    Deeper fingerprinting: protocol-specific banner probes, banner-driven
    service/protocol refinement, CDN/WAF detection and subnet inference.
    Uses a longer connect timeout than the standard scan.
    """

    mode = ScanMode.SERVICE_DETECTION
    status_prefix = "[SD]"
    description = "Service Detection mode: Enhanced service fingerprinting with real-time detection"
    timeout = SERVICE_DETECTION_TIMEOUT

    def __init__(
        self,
        registry: Optional[PortRegistry] = None,
        connect: Connector = open_connection,
        subnet_scanner: Optional[SubnetScanner] = None,
    ):
        super().__init__(registry, connect)
        self.subnet_scanner = subnet_scanner if subnet_scanner is not None else SubnetScanner()

    def scan_status(self, run: ScanRun) -> str:
        return "Service Detection: " + super().scan_status(run)

    def before_scan(self, run: ScanRun, emit: EventSink) -> None:
        cidr, gateway = self.subnet_scanner.detect(run.ip)
        if cidr or gateway:
            emit(SubnetDetected(cidr or UNKNOWN, gateway or UNKNOWN))

    def inspect(self, run: ScanRun, port: int) -> Optional[ScanResult]:
        conn = self.connect(run.ip, port, self.timeout)
        if conn is None:
            return None
        sock, latency_ms = conn
        with sock:
            banner = grab_service_banner(sock, run.target.host, port)

        service = self.registry.service_name(port)
        protocol = self.registry.protocol(port, banner)
        if banner:
            service = refine_service_name(service, banner)
            protocol = refine_protocol(protocol, banner)
            service = tag_service(service, banner)

        return ScanResult(
            port=port,
            service=service,
            protocol=protocol,
            latency_ms=latency_ms,
            version=extract_version(banner),
            banner=banner,
            mode=self.mode.value,
        )

    def after_result(self, result: ScanResult, emit: EventSink) -> None:
        if "[" in result.service and "]" in result.service:
            emit(Status(f"[SECURITY] Security detected: {result.service} on port {result.port}"))
        else:
            emit(Status(f"Detected: {result.service} on port {result.port}"))
