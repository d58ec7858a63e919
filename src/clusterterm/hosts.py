"""Parsing of host specs such as ``user@host:port``."""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass, field, replace

# Accepted forms, tried in order:
#   user@[fe80::1]:22=80x24+0+0
#   user@host.example.com:22=80x24+0+0
# The trailing =geometry is accepted and dropped.
_BRACKETED = re.compile(
    r"""
    (?:(.*?)@)?                 # user@ (optional)
    \[([\w:]*)\]                # [ipv6]
    (?::(\d+))?                 # :port (optional)
    (?:=(\d+\D\d+\D\d+\D\d+))?  # =geometry (optional)
    """,
    re.VERBOSE,
)
_PLAIN = re.compile(
    r"""
    (?:(.*?)@)?                 # user@ (optional)
    ([\w.-]*)                   # hostname or dotted quad
    (?::(\d+))?                 # :port (optional)
    (?:=(\d+\D\d+\D\d+\D\d+))?  # =geometry (optional)
    """,
    re.VERBOSE,
)
_USER = re.compile(r"(.*?)@")
_ANY_GEOMETRY = re.compile(r"=(.*?)$")
_SLASH_PORT = re.compile(r"/(\d+)$")
_COLON_PORT = re.compile(r":(\d+?)$")


@dataclass(frozen=True)
class HostSpec:
    """A literal connection target. Equality ignores the original text."""

    hostname: str
    user: str | None = None
    port: int | None = None
    text: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        if not self.text:
            object.__setattr__(self, "text", self.format())

    def format(self) -> str:
        """Render back to ``user@host:port`` form."""
        host = self.hostname
        if self.port is not None:
            if ":" in host:
                host = f"[{host}]"
            host = f"{host}:{self.port}"
        if self.user:
            host = f"{self.user}@{host}"
        return host

    def with_user(self, user: str | None) -> HostSpec:
        """Return a copy connecting as ``user``."""
        if user is None or user == self.user:
            return self
        return replace(self, user=user, text="")

    def __str__(self) -> str:
        return self.text


def _spec(text: str, user: str | None, hostname: str, port: str | None) -> HostSpec | None:
    # A leading dash would be read as an option by ssh or mosh
    if hostname.startswith("-") or (user or "").startswith("-"):
        return None
    return HostSpec(
        hostname=hostname,
        user=user or None,
        port=int(port) if port else None,
        text=text,
    )


def parse_host(text: str) -> HostSpec | None:
    """Parse a host string, returning None when no hostname can be found."""
    m = _BRACKETED.fullmatch(text)
    if m:
        if not m.group(2):
            return None
        return _spec(text, m.group(1), m.group(2), m.group(3))

    m = _PLAIN.fullmatch(text)
    if m:
        if not m.group(2):
            return None
        return _spec(text, m.group(1), m.group(2), m.group(3))

    # Neither form matched. Peel off user@, =geometry and /port, then decide
    # whether what remains looks like an IPv6 address.
    user = None
    start, end = 0, len(text)
    m = _USER.match(text)
    if m:
        user = m.group(1)
        start = m.end()
    if start >= end:
        return None

    m = _ANY_GEOMETRY.search(text, start)
    if m:
        end = m.start()
        if start >= end:
            return None

    port = None
    m = _SLASH_PORT.search(text[start:end])
    if m:
        port = m.group(1)
        end = start + m.start()
        if start >= end:
            return None

    hostname = text[start:end]
    colons = hostname.count(":")
    if colons in (7, 8) or hostname == "::1":
        if colons == 8:
            m = _COLON_PORT.search(hostname)
            if m:
                port = m.group(1)
                hostname = hostname[: m.start()]
    elif not 1 < colons < 8:
        return None
    if not hostname:
        return None
    return _spec(text, user, hostname, port)


def split_user(token: str) -> tuple[str | None, str]:
    """Split ``user@name`` into (user, name). A leading ``@`` means no user."""
    user, sep, name = token.partition("@")
    if not sep:
        return None, token
    return user or None, name


def is_ip_address(hostname: str) -> bool:
    """True if ``hostname`` is already a literal IPv4 or IPv6 address."""
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return True
