from __future__ import annotations

import re
from typing import Callable, List, Tuple

# SSH-2.0-OpenSSH_8.4p1
_SSH = re.compile(r"SSH-[\d.]+-([\w.\-]+)")
_WEB_SERVER = re.compile(r"(Apache|nginx|lighttpd|IIS)[/ ]?([\d.]+)", re.IGNORECASE)
# ProFTPD 1.3.6 or 220 (vsFTPd 3.0.5)
_FTP_DAEMON = re.compile(r"(ProFTPD|vsFTPd|Pure-FTPd|FileZilla)[/ ]?([\d.]+)", re.IGNORECASE)
_MAIL_DAEMON = re.compile(r"(Postfix|Exim|Sendmail|Dovecot)[/ ]?([\d.]*)", re.IGNORECASE)
_HEADER = re.compile(r"(?:Server|X-Powered-By):\s*(.+?)(?:\s{2}|$)", re.IGNORECASE)


def _mail(m: re.Match) -> str:
    name, ver = m.group(1), m.group(2)
    return f"{name} {ver}" if ver else name


# Most specific first; the generic header rule must stay last.
RULES: List[Tuple[re.Pattern, Callable[[re.Match], str]]] = [
    (_SSH, lambda m: m.group(1)),
    (_WEB_SERVER, lambda m: f"{m.group(1)}/{m.group(2)}"),
    (_FTP_DAEMON, lambda m: f"{m.group(1)} {m.group(2)}"),
    (_MAIL_DAEMON, _mail),
    (_HEADER, lambda m: m.group(1).strip()),
]


def extract_version(banner: str) -> str:
    """
    Pull a software name/version token out of a raw banner.
    Returns "" when no rule matches.
    """
    if not banner:
        return ""
    for pattern, render in RULES:
        m = pattern.search(banner)
        if m:
            return render(m)
    return ""
