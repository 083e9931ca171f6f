from __future__ import annotations

import csv
import html
import json
import os
from datetime import datetime
from typing import Iterable, List

from .models import ScanResult

FIELDS = ["port", "state", "service", "protocol", "latency_ms", "version", "banner", "mode"]


def format_row(r: ScanResult) -> str:
    version = r.version or "-"
    banner = r.banner or "-"
    return (
        f"Port {r.port}: {r.state.lower()} ({r.latency_ms} ms) | Service: {r.service} | "
        f"Protocol: {r.protocol} | Version: {version} | Banner: {banner}"
    )


def _sorted(results: Iterable[ScanResult]) -> List[ScanResult]:
    # Results arrive in completion order
    return sorted(results, key=lambda x: x.port)


def print_results(results: List[ScanResult], host: str) -> None:
    print(f"Found {len(results)} open ports on {host}")
    for r in _sorted(results):
        print(format_row(r))


def save_results(
    results: List[ScanResult],
    fmt: str,
    host: str,
    out_dir: str = "SCANS",
) -> str:
    os.makedirs(out_dir, exist_ok=True)
    ts = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    path = os.path.join(out_dir, f"{ts}_port_scan.{fmt}")

    rows = _sorted(results)

    if fmt == "txt":
        with open(path, "w", encoding="utf-8") as f:
            f.write(f"Found {len(rows)} open ports on {host}\n")
            for r in rows:
                f.write(format_row(r) + "\n")

    elif fmt == "csv":
        with open(path, "w", newline="", encoding="utf-8") as f:
            w = csv.DictWriter(f, fieldnames=FIELDS)
            w.writeheader()
            for r in rows:
                w.writerow(r.to_dict())

    elif fmt == "json":
        payload = {"host": host, "results": [r.to_dict() for r in rows]}
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)

    elif fmt == "html":
        with open(path, "w", encoding="utf-8") as f:
            f.write("<html><body>\n")
            f.write(f"<h1>Port Scan Results: {html.escape(host)}</h1>\n")
            f.write(f"<p>Open ports: {len(rows)}</p>\n")
            f.write("<ul>\n")
            for r in rows:
                f.write(f"<li>{html.escape(format_row(r))}</li>\n")
            f.write("</ul>\n</body></html>\n")

    else:
        raise ValueError(f"Unsupported format: {fmt}")

    return path
