"""TCP port scanner and service-fingerprinting engine."""

from .coordinator import ScanCoordinator
from .events import (
    Cancelled,
    Completed,
    EventChannel,
    Failed,
    HostResolved,
    PortOpen,
    Progress,
    ScanEvent,
    ScanStarted,
    Status,
    SubnetDetected,
)
from .models import ScanMode, ScanResult, ScanTarget
from .registry import PortRegistry, default_registry
from .strategies import ScanStrategy, ServiceDetectionStrategy, StandardScanStrategy
from .versions import extract_version

__version__ = "1.0.0"

__all__ = [
    "Cancelled",
    "Completed",
    "EventChannel",
    "Failed",
    "HostResolved",
    "PortOpen",
    "PortRegistry",
    "Progress",
    "ScanCoordinator",
    "ScanEvent",
    "ScanMode",
    "ScanResult",
    "ScanStarted",
    "ScanStrategy",
    "ScanTarget",
    "ServiceDetectionStrategy",
    "StandardScanStrategy",
    "Status",
    "SubnetDetected",
    "default_registry",
    "extract_version",
]
