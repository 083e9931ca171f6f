"""
Banner fingerprint rules used by service detection.

All matching is case-insensitive substring matching on the sanitized banner.
A signature matches when every one of its token groups has at least one
token present; most signatures are a single group.
"""
from __future__ import annotations

from typing import Optional, Sequence, Tuple

Signature = Tuple[str, Sequence[Sequence[str]]]

# First match wins.
SECURITY_SIGNATURES: Sequence[Signature] = (
    ("Cloudflare CDN/WAF", [("cloudflare", "cf-ray", "__cflb", "__cfduid", "cf-cache-status")]),
    ("Akamai CDN", [("akamai", "akamaighost")]),
    ("Imperva/Incapsula WAF", [("incapsula", "imperva", "visid_incap")]),
    ("Sucuri WAF", [("sucuri", "x-sucuri-")]),
    ("AWS CloudFront/WAF", [("cloudfront", "x-amz-cf-", "x-amzn-")]),
    ("Azure Front Door", [("azure",), ("frontdoor",)]),
    ("Fastly CDN", [("fastly",)]),
    ("StackPath CDN", [("stackpath",)]),
    ("KeyCDN", [("keycdn",)]),
    ("BunnyCDN", [("bunnycdn", "b-cdn")]),
    ("Varnish Cache", [("varnish",)]),
    ("ModSecurity WAF", [("mod_security", "modsecurity")]),
    ("F5 BIG-IP", [("big-ip", "f5")]),
    ("Barracuda WAF", [("barracuda",)]),
    ("Fortinet FortiWeb WAF", [("fortinet", "fortiweb")]),
    ("Radware DefensePro", [("radware",)]),
    ("Wallarm WAF", [("wallarm",)]),
    ("Reblaze WAF", [("reblaze", "rbz")]),
    ("Vercel Edge Network", [("vercel",)]),
    ("Netlify CDN", [("netlify",)]),
    ("Google Cloud CDN", [("gws", "google"), ("cloud", "cdn")]),
    ("Arbor DDoS Protection", [("arbor",)]),
    ("Palo Alto Networks", [("palo alto", "pan-")]),
    ("Squid Proxy", [("squid",)]),
    ("Nginx Plus", [("nginx",), ("plus",)]),
)

# (banner token, service name); first match wins.
SERVICE_HINTS: Sequence[Tuple[str, str]] = (
    # web servers
    ("nginx", "Nginx"),
    ("apache", "Apache"),
    ("microsoft-iis", "IIS"),
    ("lighttpd", "Lighttpd"),
    ("caddy", "Caddy"),
    ("tomcat", "Apache Tomcat"),
    # databases
    ("mysql", "MySQL"),
    ("postgresql", "PostgreSQL"),
    ("mongodb", "MongoDB"),
    ("redis", "Redis"),
    ("cassandra", "Cassandra"),
    ("elasticsearch", "Elasticsearch"),
    ("openssh", "OpenSSH"),
    # ftp
    ("filezilla", "FileZilla FTP"),
    ("proftpd", "ProFTPD"),
    ("vsftpd", "vsftpd"),
    # mail
    ("postfix", "Postfix SMTP"),
    ("sendmail", "Sendmail"),
    ("exim", "Exim"),
)

PROTOCOL_HINTS: Sequence[Tuple[str, str]] = (
    ("http/2", "HTTP/2"),
    ("http/1.1", "HTTP/1.1"),
    ("http", "HTTP"),
    ("ssh-2.0", "SSH 2.0"),
    ("ssh-1.", "SSH 1.x"),
    ("ftp", "FTP"),
    ("smtp", "SMTP"),
    ("pop3", "POP3"),
    ("imap", "IMAP"),
)


def _matches(lower: str, groups: Sequence[Sequence[str]]) -> bool:
    return all(any(token in lower for token in group) for group in groups)


def detect_security_layer(banner: str) -> Optional[str]:
    """Name of the CDN/WAF/security vendor the banner points at, or None."""
    if not banner:
        return None
    lower = banner.lower()
    for label, groups in SECURITY_SIGNATURES:
        if _matches(lower, groups):
            return label
    return None


def refine_service_name(base_name: str, banner: str) -> str:
    lower = (banner or "").lower()
    for token, name in SERVICE_HINTS:
        if token in lower:
            return name
    return base_name or "Unknown"


def refine_protocol(base_protocol: str, banner: str) -> str:
    lower = (banner or "").lower()
    for token, label in PROTOCOL_HINTS:
        if token in lower:
            return label
    return base_protocol or "TCP"


def tag_service(service: str, banner: str) -> str:
    """Append a bracketed security-layer tag when one is detected."""
    layer = detect_security_layer(banner)
    if layer:
        return f"{service} [{layer}]"
    return service
