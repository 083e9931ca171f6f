import json
import logging
import os
import time
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Optional

from .events import ScanEvent

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )


def create_logger(log_path: str, name: str = "ScanEvents") -> logging.Logger:
    """JSON-lines logger for scan events, written to `log_path`."""
    directory = os.path.dirname(log_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.propagate = False

    # Prevent duplicate handlers if called twice for the same file
    target = os.path.abspath(log_path)
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
            return logger

    fh = logging.FileHandler(log_path, encoding="utf-8")
    # We write JSON ourselves; keep formatter minimal
    fh.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(fh)
    return logger


def now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime())


def log_event(logger: logging.Logger, event: str, fields: Optional[Dict[str, Any]] = None) -> None:
    payload = {"ts": now_iso(), "event": event, **(fields or {})}
    logger.info(json.dumps(payload, ensure_ascii=False))


def log_scan_event(logger: logging.Logger, event: ScanEvent) -> None:
    """Scan event -> one JSON line; the event type becomes the `event` key."""
    fields = asdict(event) if is_dataclass(event) else {}
    log_event(logger, type(event).__name__, fields)
