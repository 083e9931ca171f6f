from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Tuple, Union

logger = logging.getLogger(__name__)

INDEX_FILE = "index.txt"

SERVICE_NAMES: Dict[int, str] = {
    20: "FTP-DATA",
    21: "FTP",
    22: "SSH",
    23: "Telnet",
    25: "SMTP",
    53: "DNS",
    67: "DHCP Server",
    68: "DHCP Client",
    69: "TFTP",
    80: "HTTP",
    110: "POP3",
    111: "RPCBind",
    119: "NNTP",
    123: "NTP",
    135: "MSRPC",
    137: "NetBIOS-NS",
    138: "NetBIOS-DGM",
    139: "NetBIOS-SSN",
    143: "IMAP",
    161: "SNMP",
    162: "SNMP Trap",
    389: "LDAP",
    443: "HTTPS",
    445: "SMB",
    465: "SMTPS",
    514: "Syslog",
    515: "LPD/LPR",
    587: "SMTP Submission",
    636: "LDAPS",
    993: "IMAPS",
    995: "POP3S",
    1080: "SOCKS",
    1433: "MS SQL",
    1434: "MS SQL Browser",
    1521: "Oracle DB",
    1723: "PPTP",
    2049: "NFS",
    2082: "cPanel",
    2083: "cPanel SSL",
    2181: "ZooKeeper",
    3000: "Dev Server",
    3306: "MySQL",
    3389: "RDP",
    5432: "PostgreSQL",
    5672: "AMQP",
    5900: "VNC",
    6379: "Redis",
    6443: "Kubernetes API",
    8000: "HTTP Alt",
    8080: "HTTP Proxy",
    8443: "HTTPS Alt",
    8888: "HTTP Alt",
    9090: "Prometheus",
    9200: "Elasticsearch",
    9300: "ES Transport",
    11211: "Memcached",
    27017: "MongoDB",
}

# Checked before the banner, so these always win.
ENCRYPTED_PORT_LABELS: Dict[int, str] = {
    22: "TCP (SSH)",
    443: "TCP (HTTPS/TLS)",
    465: "TCP (SMTPS/TLS)",
    636: "TCP (LDAPS/TLS)",
    993: "TCP (IMAPS/TLS)",
    995: "TCP (POP3S/TLS)",
    2083: "TCP (cPanel/TLS)",
    3389: "TCP (RDP/TLS)",
    8443: "TCP (HTTPS/TLS)",
}

# Checked after the banner keywords.
PLAINTEXT_PORT_LABELS: Dict[int, str] = {
    21: "TCP (FTP)",
    23: "TCP (Telnet)",
    25: "TCP (SMTP)",
    53: "TCP (DNS)",
    80: "TCP (HTTP)",
    110: "TCP (POP3)",
    143: "TCP (IMAP)",
    389: "TCP (LDAP)",
    445: "TCP (SMB)",
}

# Order matters: "starttls" has to be tested before "tls".
ENCRYPTION_KEYWORDS: Tuple[str, ...] = (
    "starttls", "tls", "ssl", "https", "smtps", "imaps", "pop3s",
    "aes", "rsa", "sha", "gcm", "ecdhe", "dhe", "cipher", "certificate",
)


class PortRegistry:
    """
    Port number -> service name / protocol label lookups.

    Built once and handed to the strategies; never mutated while scanning.
    The built-in tables are used by default, `from_directory` builds the
    data-driven variant from port definition files.
    """

    def __init__(
        self,
        names: Optional[Mapping[int, str]] = None,
        port_labels: Optional[Mapping[int, str]] = None,
        fallback_labels: Optional[Mapping[int, str]] = None,
        keywords: Iterable[str] = ENCRYPTION_KEYWORDS,
        unknown_name: str = "Port {port}",
    ):
        self.names = dict(SERVICE_NAMES if names is None else names)
        self.port_labels = dict(ENCRYPTED_PORT_LABELS if port_labels is None else port_labels)
        self.fallback_labels = dict(PLAINTEXT_PORT_LABELS if fallback_labels is None else fallback_labels)
        self.keywords = tuple(keywords)
        self.unknown_name = unknown_name

    def __len__(self) -> int:
        return len(self.names)

    def service_name(self, port: int) -> str:
        name = self.names.get(port)
        if name:
            return name
        return self.unknown_name.format(port=port)

    def protocol(self, port: int, banner: Optional[str] = "") -> str:
        label = self.port_labels.get(port)
        if label:
            return label

        lower = (banner or "").lower()
        for kw in self.keywords:
            if kw in lower:
                if kw == "starttls":
                    return "TCP (STARTTLS)"
                return f"TCP (Encrypted: {kw.upper()})"

        return self.fallback_labels.get(port, "TCP")

    @classmethod
    def from_directory(cls, directory: Union[str, Path]) -> "PortRegistry":
        """
        Load `index.txt` from `directory` and every port file it lists.

        Port file lines look like `443=HTTPS|TCP (HTTPS/TLS)`; the protocol
        part is optional. Blank lines and `#` comments are skipped.
        """
        base = Path(directory)
        index = base / INDEX_FILE
        if not index.is_file():
            raise ValueError(f"Port index not found: {index}")

        names: Dict[int, str] = {}
        labels: Dict[int, str] = {}
        for line in index.read_text(encoding="utf-8").splitlines():
            filename = line.strip()
            if not filename or filename.startswith("#"):
                continue
            path = base / filename
            if not path.is_file():
                logger.warning("Port file listed in index is missing: %s", path)
                continue
            for port, name, label in parse_port_file(path.read_text(encoding="utf-8")):
                names[port] = name
                if label:
                    labels[port] = label

        logger.debug("Loaded %d port definitions from %s", len(names), base)
        return cls(
            names=names,
            port_labels=labels,
            fallback_labels={},
            unknown_name="Unrecognized",
        )


def parse_port_file(text: str) -> Iterable[Tuple[int, str, str]]:
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, rest = line.partition("=")
        if not sep or not key.strip():
            logger.debug("Skipping malformed port line: %r", raw)
            continue
        try:
            port = int(key.strip())
        except ValueError:
            logger.debug("Skipping malformed port line: %r", raw)
            continue
        name, _, label = rest.partition("|")
        yield port, name.strip(), label.strip()


def default_registry() -> PortRegistry:
    return PortRegistry()
