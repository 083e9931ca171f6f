from __future__ import annotations

import ipaddress
import logging
import socket
from typing import Callable, Iterable, List, Optional, Tuple

import psutil

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"


def local_interfaces() -> List[ipaddress.IPv4Interface]:
    """
    IPv4 address/prefix pairs of the local, non-loopback interfaces as
    reported by psutil.
    """
    found: List[ipaddress.IPv4Interface] = []
    for addrs in psutil.net_if_addrs().values():
        for addr in addrs:
            if addr.family != socket.AF_INET or not addr.netmask:
                continue
            iface = ipaddress.IPv4Interface(f"{addr.address}/{addr.netmask}")
            if iface.ip.is_loopback or iface.network.prefixlen in (0, 32):
                continue
            found.append(iface)
    return found


def estimate_subnet(ip: ipaddress.IPv4Address) -> Optional[str]:
    """Classful estimate, only meant for display."""
    first = ip.packed[0]
    if 1 <= first <= 126:
        prefix = 8
    elif 128 <= first <= 191:
        prefix = 16
    elif 192 <= first <= 223:
        prefix = 24
    else:
        return None
    return str(ipaddress.IPv4Network((ip, prefix), strict=False))


def guess_gateway(addr: ipaddress.IPv4Address) -> str:
    # Same address with the last octet set to 1.
    return str(ipaddress.IPv4Address((int(addr) & ~0xFF) | 1))


class SubnetScanner:
    """
    Best-effort subnet / gateway inference for a resolved target address.
    Never raises: anything unexpected means "no information".
    """

    def __init__(self, interfaces: Callable[[], Iterable[ipaddress.IPv4Interface]] = local_interfaces):
        self._interfaces = interfaces

    def detect(self, ip: str) -> Tuple[Optional[str], Optional[str]]:
        try:
            target = ipaddress.ip_address(ip)
            if target.version != 4:
                return None, None

            for iface in self._interfaces():
                if target in iface.network:
                    return str(iface.network), guess_gateway(iface.ip)

            return estimate_subnet(target), None
        except Exception as e:
            logger.debug("Subnet detection failed for %s: %s", ip, e)
            return None, None

    def detect_subnet(self, ip: str) -> Optional[str]:
        return self.detect(ip)[0]

    def detect_gateway(self, ip: str) -> Optional[str]:
        return self.detect(ip)[1]
