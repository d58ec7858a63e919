"""Turn resolved hosts into launch targets, optionally one per address."""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

from .errors import UnresolvedHost
from .hosts import HostSpec, is_ip_address
from .transport import Transport

logger = logging.getLogger(__name__)

# Type alias for address lookups: hostname -> addresses, in answer order
AddressLookup = Callable[[str], Awaitable[list[str]]]


@dataclass(frozen=True)
class LaunchTarget:
    """One concrete session to open."""

    address: str
    user: str | None
    port: int | None
    transport: Transport
    host: HostSpec | None = field(default=None, compare=False)

    @classmethod
    def from_host(
        cls, host: HostSpec, transport: Transport, address: str | None = None
    ) -> LaunchTarget:
        return cls(
            address=address or host.hostname,
            user=host.user,
            port=host.port,
            transport=transport,
            host=host,
        )

    def label(self) -> str:
        """Human-readable ``user@address:port``."""
        return HostSpec(self.address, self.user, self.port).format()


@dataclass
class Expansion:
    """Result of expanding a host list."""

    targets: list[LaunchTarget]
    warnings: list[UnresolvedHost] = field(default_factory=list)


async def system_lookup(hostname: str) -> list[str]:
    """Resolve ``hostname`` with the system resolver."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


def _unique(addresses: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    out = []
    for address in addresses:
        if address not in seen:
            seen.add(address)
            out.append(address)
    return out


async def expand(
    hosts: Sequence[HostSpec],
    transport: Transport,
    expand_addresses: bool = False,
    lookup: AddressLookup | None = None,
) -> Expansion:
    """Build launch targets for ``hosts``.

    With ``expand_addresses`` off every host becomes exactly one target and no
    lookup is made. With it on, every hostname that is not already an address
    is looked up, all at once, and each returned address becomes its own target
    at the host's position. Addresses are never matched against cluster or tag
    names.
    """
    if not expand_addresses:
        return Expansion([LaunchTarget.from_host(h, transport) for h in hosts])

    lookup = lookup or system_lookup
    names = list(dict.fromkeys(h.hostname for h in hosts if not is_ip_address(h.hostname)))

    # Launch all lookups together and wait for the whole batch
    results = await asyncio.gather(*(lookup(n) for n in names), return_exceptions=True)
    answers = dict(zip(names, results))

    expansion = Expansion(targets=[])
    for host in hosts:
        if host.hostname not in answers:
            expansion.targets.append(LaunchTarget.from_host(host, transport))
            continue

        answer = answers[host.hostname]
        if isinstance(answer, BaseException) or not answer:
            reason = str(answer) if isinstance(answer, BaseException) else "no addresses"
            warning = UnresolvedHost(host.text, reason or type(answer).__name__)
            logger.warning("%s", warning)
            expansion.warnings.append(warning)
            continue

        for address in _unique(answer):
            expansion.targets.append(LaunchTarget.from_host(host, transport, address))

    logger.debug(
        "Expanded %d hosts into %d targets (%d lookups)",
        len(hosts),
        len(expansion.targets),
        len(names),
    )
    return expansion
