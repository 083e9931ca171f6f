import ipaddress
import threading
import time

import pytest
from conftest import HTTP_RESPONSE, SSH_GREETING, serve

from service_scanner.events import (
    Cancelled,
    Completed,
    Failed,
    HostResolved,
    PortOpen,
    Progress,
    ScanStarted,
    Status,
    SubnetDetected,
    is_terminal,
)
from service_scanner.models import ScanTarget
from service_scanner.strategies import ServiceDetectionStrategy, StandardScanStrategy
from service_scanner.subnet import SubnetScanner

CLOUDFLARE_RESPONSE = (
    b"HTTP/1.1 403 Forbidden\r\n"
    b"Server: cloudflare\r\n"
    b"CF-RAY: 7d1c2e\r\n"
    b"\r\n"
)


def _no_subnet():
    return SubnetScanner(lambda: [])


def _run(strategy, target):
    events = []
    strategy.execute(target, events.append)
    return events


def _of(events, kind):
    return [e for e in events if isinstance(e, kind)]


def _worker_threads():
    return [t for t in threading.enumerate() if t.name.startswith("scan-worker") and t.is_alive()]


def test_standard_scan_reports_open_ports(fake_network):
    net = fake_network({22: SSH_GREETING, 80: HTTP_RESPONSE})
    events = _run(StandardScanStrategy(connect=net), ScanTarget("127.0.0.1", 1, 100, workers=10))

    assert isinstance(events[0], HostResolved)
    assert events[0].ip == "127.0.0.1"
    started = _of(events, ScanStarted)
    assert len(started) == 1 and started[0].total_ports == 100

    results = {e.result.port: e.result for e in _of(events, PortOpen)}
    assert sorted(results) == [22, 80]

    ssh = results[22]
    assert ssh.service == "SSH"
    assert ssh.protocol == "TCP (SSH)"
    assert ssh.version == "OpenSSH_8.4p1"
    assert ssh.banner == "SSH-2.0-OpenSSH_8.4p1"
    assert ssh.state == "Open"
    assert ssh.mode == "Standard"
    assert ssh.latency_ms == 1

    http = results[80]
    assert http.service == "HTTP"
    assert http.protocol == "TCP (HTTP)"
    assert http.version == "nginx/1.18.0"

    assert sorted(net.calls) == list(range(1, 101))
    assert [e for e in events if is_terminal(e)] == [Completed()]
    assert is_terminal(events[-1])


def test_status_line_names_host_and_range(fake_network):
    net = fake_network()
    events = _run(StandardScanStrategy(connect=net), ScanTarget("127.0.0.1", 5, 20, workers=10))
    messages = [e.message for e in _of(events, Status)]
    assert "Scanning 127.0.0.1 (127.0.0.1) - ports 5-20" in messages
    assert not _of(events, PortOpen)
    assert events[-1] == Completed()


def test_progress_is_monotonic_and_reaches_total(fake_network):
    net = fake_network({7: b"hello\r\n"})
    events = _run(StandardScanStrategy(connect=net), ScanTarget("127.0.0.1", 1, 250, workers=20))

    progress = _of(events, Progress)
    completed = [p.completed for p in progress]
    assert completed == list(range(1, 251))
    assert all(p.total == 250 for p in progress)
    assert progress[-1].fraction == 1.0


def test_repeated_scans_are_identical(fake_network):
    net = fake_network({22: SSH_GREETING, 80: HTTP_RESPONSE})
    strategy = StandardScanStrategy(connect=net)
    target = ScanTarget("127.0.0.1", 1, 100, workers=10)

    first = sorted((e.result for e in _of(_run(strategy, target), PortOpen)), key=lambda r: r.port)
    second = sorted((e.result for e in _of(_run(strategy, target), PortOpen)), key=lambda r: r.port)
    assert first == second
    assert len(net.calls) == 200


def test_cancel_stops_new_probes():
    gate = threading.Event()
    calls = []
    lock = threading.Lock()

    def blocking_connect(ip, port, timeout):
        with lock:
            calls.append(port)
        gate.wait(5)
        return None

    strategy = StandardScanStrategy(connect=blocking_connect)
    events = []
    worker = threading.Thread(
        target=strategy.execute,
        args=(ScanTarget("127.0.0.1", 1, 1000, workers=10), events.append),
    )
    worker.start()

    deadline = time.monotonic() + 5
    while len(calls) < 10 and time.monotonic() < deadline:
        time.sleep(0.01)
    assert strategy.is_running

    strategy.cancel()
    gate.set()
    worker.join(5)

    assert not worker.is_alive()
    assert len(calls) <= 10
    assert [e for e in events if is_terminal(e)] == [Cancelled()]
    assert is_terminal(events[-1])
    assert not strategy.is_running
    assert strategy.progress < 1.0
    assert _worker_threads() == []


def test_unknown_host_fails_without_completing(fake_network):
    net = fake_network()
    events = _run(StandardScanStrategy(connect=net), ScanTarget("definitely-invalid.invalid", 1, 10))

    assert net.calls == []
    assert not _of(events, Completed)
    assert not _of(events, HostResolved)
    failed = _of(events, Failed)
    assert len(failed) == 1
    assert "definitely-invalid.invalid" in failed[0].reason
    assert events[-1] is failed[0]
    assert "Error: unknown host definitely-invalid.invalid" in [e.message for e in _of(events, Status)]


def test_broken_sink_does_not_stop_the_scan(fake_network):
    net = fake_network({22: SSH_GREETING})
    seen = []

    def sink(event):
        seen.append(event)
        if isinstance(event, Progress):
            raise RuntimeError("consumer bug")

    StandardScanStrategy(connect=net).execute(ScanTarget("127.0.0.1", 1, 30, workers=10), sink)
    assert len(_of(seen, Progress)) == 30
    assert len(_of(seen, PortOpen)) == 1
    assert seen[-1] == Completed()


def test_probe_errors_are_contained():
    def flaky_connect(ip, port, timeout):
        if port % 2:
            raise OSError("boom")
        return None

    events = _run(StandardScanStrategy(connect=flaky_connect), ScanTarget("127.0.0.1", 1, 20, workers=10))
    assert len(_of(events, Progress)) == 20
    assert events[-1] == Completed()


def test_real_loopback_scan(closed_port):
    with serve(greeting=SSH_GREETING) as port:
        target = ScanTarget("127.0.0.1", port, port, workers=10)
        events = _run(StandardScanStrategy(), target)

    opened = _of(events, PortOpen)
    assert len(opened) == 1
    result = opened[0].result
    assert result.port == port
    assert result.banner == "SSH-2.0-OpenSSH_8.4p1"
    assert result.version == "OpenSSH_8.4p1"
    assert result.latency_ms >= 0
    assert events[-1] == Completed()

    events = _run(StandardScanStrategy(), ScanTarget("127.0.0.1", closed_port, closed_port, workers=10))
    assert not _of(events, PortOpen)
    assert events[-1] == Completed()


def test_service_detection_refines_results(fake_network):
    net = fake_network({22: SSH_GREETING, 80: CLOUDFLARE_RESPONSE})
    strategy = ServiceDetectionStrategy(connect=net, subnet_scanner=_no_subnet())
    events = _run(strategy, ScanTarget("127.0.0.1", 1, 100, workers=10))

    results = {e.result.port: e.result for e in _of(events, PortOpen)}
    assert sorted(results) == [22, 80]

    assert results[22].service == "OpenSSH"
    assert results[22].protocol == "SSH 2.0"
    assert results[22].mode == "Service Detection"

    assert results[80].service == "HTTP [Cloudflare CDN/WAF]"
    assert results[80].protocol == "HTTP/1.1"
    assert results[80].banner == "HTTP/1.1 403 Forbidden Server: cloudflare CF-RAY: 7d1c2e"

    messages = [e.message for e in _of(events, Status)]
    assert "Service Detection: Scanning 127.0.0.1 (127.0.0.1) - ports 1-100" in messages
    assert "Detected: OpenSSH on port 22" in messages
    assert "[SECURITY] Security detected: HTTP [Cloudflare CDN/WAF] on port 80" in messages
    assert events[-1] == Completed()


def test_service_detection_uses_longer_timeout():
    seen = []

    def connect(ip, port, timeout):
        seen.append(timeout)
        return None

    _run(ServiceDetectionStrategy(connect=connect, subnet_scanner=_no_subnet()), ScanTarget("127.0.0.1", 1, 10))
    _run(StandardScanStrategy(connect=connect), ScanTarget("127.0.0.1", 11, 20))
    assert set(seen[:10]) == {0.5}
    assert set(seen[10:]) == {0.2}


def test_service_detection_reports_subnet(fake_network):
    subnets = SubnetScanner(lambda: [ipaddress.IPv4Interface("127.0.0.5/8")])
    strategy = ServiceDetectionStrategy(connect=fake_network(), subnet_scanner=subnets)
    events = _run(strategy, ScanTarget("127.0.0.1", 1, 10))

    assert _of(events, SubnetDetected) == [SubnetDetected("127.0.0.0/8", "127.0.0.1")]
    kinds = [type(e) for e in events]
    assert kinds.index(SubnetDetected) < kinds.index(ScanStarted)


def test_service_detection_without_subnet_information(fake_network):
    strategy = ServiceDetectionStrategy(connect=fake_network(), subnet_scanner=SubnetScanner(lambda: []))
    # Loopback has no class estimate either
    events = _run(strategy, ScanTarget("127.0.0.1", 1, 10))
    assert _of(events, SubnetDetected) == []


def test_silent_open_port_keeps_registry_values(fake_network):
    net = fake_network({443: b""})
    strategy = ServiceDetectionStrategy(connect=net, subnet_scanner=_no_subnet())
    events = _run(strategy, ScanTarget("127.0.0.1", 440, 445))

    (opened,) = _of(events, PortOpen)
    assert opened.result.service == "HTTPS"
    assert opened.result.protocol == "TCP (HTTPS/TLS)"
    assert opened.result.banner == ""
    assert opened.result.version == ""


@pytest.mark.parametrize("strategy_cls", [StandardScanStrategy, ServiceDetectionStrategy])
def test_names_and_prefixes(strategy_cls):
    strategy = strategy_cls()
    assert strategy.name in ("Standard", "Service Detection")
    assert strategy.status_prefix in ("[FAST]", "[SD]")
    assert strategy.description
    assert not strategy.is_running
    assert strategy.progress == 0.0


def test_sink_may_read_progress_while_handling_events(fake_network):
    strategy = StandardScanStrategy(connect=fake_network({3: SSH_GREETING}))
    seen = []

    def sink(event):
        if isinstance(event, Progress):
            seen.append(strategy.progress)

    worker = threading.Thread(
        target=strategy.execute,
        args=(ScanTarget("127.0.0.1", 1, 20, workers=10), sink),
        daemon=True,
    )
    worker.start()
    worker.join(5)

    assert not worker.is_alive()
    assert len(seen) == 20
    assert seen[-1] == 1.0


def test_concurrency_never_exceeds_pool_size():
    lock = threading.Lock()
    calls = []
    active = 0
    peak = 0

    def slow_connect(ip, port, timeout):
        nonlocal active, peak
        with lock:
            calls.append(port)
            active += 1
            peak = max(peak, active)
        time.sleep(0.005)
        with lock:
            active -= 1
        return None

    events = _run(StandardScanStrategy(connect=slow_connect), ScanTarget("127.0.0.1", 1, 200, workers=10))
    assert len(calls) == 200
    assert 1 <= peak <= 10
    assert events[-1] == Completed()
