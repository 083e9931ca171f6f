from __future__ import annotations

import argparse
import logging
import time
from typing import List, Optional

from .coordinator import ScanCoordinator
from .events import (
    Cancelled,
    Completed,
    Failed,
    HostResolved,
    PortOpen,
    Progress,
    ScanEvent,
    ScanStarted,
    Status,
    SubnetDetected,
)
from .logger import create_logger, log_scan_event, setup_logging
from .models import DEFAULT_WORKERS, ScanMode, ScanResult, ScanTarget
from .output import print_results, save_results
from .ports import parse_port_range
from .registry import PortRegistry, default_registry
from .targets import sanitize_host

MODES = {
    "standard": ScanMode.STANDARD,
    "service": ScanMode.SERVICE_DETECTION,
}

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="TCP port scanner with service fingerprinting")
    p.add_argument("--target", required=True, help="Hostname, IP or URL")
    p.add_argument("--ports", default="1-1024", help="Port range: 1-1024 or a single port (default: 1-1024)")
    p.add_argument("--mode", choices=sorted(MODES), default="standard", help="Scan depth (default: standard)")
    p.add_argument("--threads", type=int, default=DEFAULT_WORKERS, help=f"Worker count, 10-500 (default: {DEFAULT_WORKERS})")
    p.add_argument("--registry", help="Directory with index.txt and port definition files")
    p.add_argument("--format", choices=["txt", "csv", "json", "html"], help="Save results to file")
    p.add_argument("--out-dir", default="SCANS", help="Output directory for saved files")
    p.add_argument("--log-file", help="Write every scan event as a JSON line to this file")
    p.add_argument("--progress-every", type=int, default=1000, help="Progress update interval (default: 1000)")
    p.add_argument("--quiet", action="store_true", help="Only print the final results")
    p.add_argument("--verbose", action="store_true", help="Debug logging")
    return p


class _Console:
    """Renders scan events on the terminal and collects results."""

    def __init__(self, prefix: str, progress_every: int, quiet: bool):
        self.prefix = prefix
        self.progress_every = progress_every
        self.quiet = quiet
        self.results: List[ScanResult] = []
        self.outcome: Optional[ScanEvent] = None
        self.started = time.perf_counter()

    def say(self, msg: str) -> None:
        if not self.quiet:
            print(f"\n{self.prefix} {msg}" if self.prefix else f"\n{msg}", end="", flush=True)

    def handle(self, event: ScanEvent) -> None:
        if isinstance(event, PortOpen):
            self.results.append(event.result)
        elif isinstance(event, Progress):
            self._progress(event)
        elif isinstance(event, HostResolved):
            self.say(f"Resolved: {event.ip}")
        elif isinstance(event, ScanStarted):
            self.started = time.perf_counter()
            self.say(f"Host: {event.hostname} ({event.ip}) | Ports: {event.total_ports}")
        elif isinstance(event, SubnetDetected):
            self.say(f"Subnet: {event.cidr} | Gateway: {event.gateway}")
        elif isinstance(event, Status):
            self.say(event.message)
        elif isinstance(event, (Completed, Cancelled, Failed)):
            self.outcome = event

    def _progress(self, event: Progress) -> None:
        if self.quiet or self.progress_every <= 0:
            return
        if event.completed % self.progress_every and event.completed != event.total:
            return
        elapsed = time.perf_counter() - self.started
        rate = event.completed / elapsed if elapsed > 0 else 0.0
        print(
            f"\r[*] Scanned {event.completed}/{event.total} | open={len(self.results)} | {rate:.0f} ports/s",
            end="",
            flush=True,
        )


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    host = sanitize_host(args.target)
    if not host:
        raise SystemExit("--target is empty")

    try:
        start, end = parse_port_range(args.ports)
        target = ScanTarget(host, start, end, args.threads)
        registry = PortRegistry.from_directory(args.registry) if args.registry else default_registry()
    except ValueError as e:
        raise SystemExit(str(e))

    coordinator = ScanCoordinator.default(registry)
    coordinator.set_active(MODES[args.mode])
    event_log = create_logger(args.log_file) if args.log_file else None

    console = _Console(coordinator.status_prefix, args.progress_every, args.quiet)
    if not args.quiet:
        print(f"[*] {coordinator.describe(coordinator.active_name)}")
        print(f"[*] Target: {host} | Ports: {start}-{end} | Threads: {args.threads}", end="")

    channel = coordinator.start(target)
    try:
        for event in channel:
            console.handle(event)
            if event_log is not None:
                log_scan_event(event_log, event)
    except KeyboardInterrupt:
        console.say("Cancelling, waiting for in-flight probes...")
        coordinator.cancel()
        for event in channel:
            console.handle(event)
            if event_log is not None:
                log_scan_event(event_log, event)
    finally:
        coordinator.shutdown()
    print()

    outcome = console.outcome
    if isinstance(outcome, Failed):
        print(f"[!] Scan failed: {outcome.reason}")
        return EXIT_FAILED

    if isinstance(outcome, Cancelled):
        print("[!] Scan cancelled; partial results follow")
    print_results(console.results, host)

    if args.format:
        path = save_results(console.results, fmt=args.format, host=host, out_dir=args.out_dir)
        print(f"Saved results to {path}")

    logging.getLogger(__name__).debug("Scan of %s done with %s", host, type(outcome).__name__)
    return EXIT_CANCELLED if isinstance(outcome, Cancelled) else EXIT_OK
