"""Error types for clusterterm."""

from __future__ import annotations


class ClustertermError(Exception):
    """Base class for all clusterterm errors."""


class ConfigError(ClustertermError):
    """The settings file could not be parsed."""


class MissingConfig(ClustertermError):
    """No usable cluster/tag configuration for the request."""


class CyclicReference(ClustertermError):
    """A cluster or tag refers back to itself."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Cyclic reference: {' -> '.join(cycle)}")


class UnresolvedHost(ClustertermError):
    """Address lookup for one host failed. Reported, never raised."""

    def __init__(self, host: str, reason: str):
        self.host = host
        self.reason = reason
        super().__init__(f"Could not resolve {host}: {reason}")


class SpawnFailed(ClustertermError):
    """A session for one target could not be started. Reported, never raised."""

    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"Could not open session to {target}: {reason}")


class SessionGone(ClustertermError):
    """The session's window or process no longer exists."""
