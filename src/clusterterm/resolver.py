"""Flattening of cluster and tag requests into a host list."""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Iterable, Iterator
from pathlib import Path

from .config import Config, SymbolTable
from .errors import CyclicReference, MissingConfig
from .hosts import HostSpec, parse_host, split_user

logger = logging.getLogger(__name__)

DEFAULT_SYMBOL = "default"


def _lookup(token: str, symbols: SymbolTable) -> tuple[str | None, str] | None:
    """Return (user, name) if ``token`` names a symbol, else None."""
    if token in symbols:
        return None, token
    user, name = split_user(token)
    if name != token and name in symbols:
        return user, name
    return None


def walk(token: str, symbols: SymbolTable) -> Iterator[HostSpec]:
    """Yield the literal hosts reachable from ``token``, in declaration order.

    The walk keeps its own stack. ``in_progress`` holds the names on the
    current path, and ``done`` the (name, user) pairs already expanded, whose
    hosts have therefore all been yielded before.
    """
    stack: list[tuple[str, str | None, Iterator[str]]] = []
    path: list[str] = []
    in_progress: set[str] = set()
    done: set[tuple[str, str | None]] = set()

    def visit(tok: str, outer_user: str | None) -> HostSpec | None:
        found = _lookup(tok, symbols)
        if found is None:
            host = parse_host(tok)
            if host is None:
                logger.warning("Could not parse host %r, skipping", tok)
                return None
            return host.with_user(outer_user)

        user, name = found
        user = outer_user or user
        if name in in_progress:
            raise CyclicReference(path[path.index(name):] + [name])
        if (name, user) in done:
            return None
        members = symbols.members(name) or ()
        stack.append((name, user, iter(members)))
        path.append(name)
        in_progress.add(name)
        return None

    host = visit(token, None)
    if host is not None:
        yield host

    while stack:
        name, user, members = stack[-1]
        member = next(members, None)
        if member is None:
            stack.pop()
            path.pop()
            in_progress.discard(name)
            done.add((name, user))
            continue
        host = visit(member, user)
        if host is not None:
            yield host


def flatten(names: Iterable[str], symbols: SymbolTable) -> list[HostSpec]:
    """Resolve every name in order; first occurrence of each host wins."""
    hosts: list[HostSpec] = []
    seen: set[HostSpec] = set()
    for name in names:
        for host in walk(name, symbols):
            if host not in seen:
                seen.add(host)
                hosts.append(host)
    return hosts


class Resolver:
    """Resolves requests against a loaded configuration."""

    def __init__(self, config: Config):
        self.config = config
        self.symbols = config.symbols

    def resolve(self, name: str) -> list[HostSpec]:
        """Resolve a single cluster, tag or host name."""
        return self.resolve_many([name])

    def resolve_many(self, names: Iterable[str]) -> list[HostSpec]:
        """Resolve several names; an empty request means the default cluster."""
        names = [n for n in names if n]
        if not names:
            if DEFAULT_SYMBOL not in self.symbols:
                raise MissingConfig(
                    f"No hosts given and no '{DEFAULT_SYMBOL}' cluster defined"
                )
            names = [DEFAULT_SYMBOL]

        if not self.config.location.found:
            for name in names:
                if _lookup(name, self.symbols) is None and parse_host(name) is None:
                    raise MissingConfig(
                        f"No cluster configuration found and '{name}' is not a host"
                    )

        hosts = flatten(names, self.symbols)
        command = self.config.settings.external_cluster_command
        if command is not None:
            hosts = self._run_external(command, hosts)
        return hosts

    def _run_external(self, command: Path, hosts: list[HostSpec]) -> list[HostSpec]:
        output = run_external_command(command, [h.text for h in hosts])
        if output is None:
            return hosts
        resolved: list[HostSpec] = []
        seen: set[HostSpec] = set()
        for token in output:
            host = parse_host(token)
            if host is None:
                logger.warning("External command returned unparsable host %r", token)
            elif host not in seen:
                seen.add(host)
                resolved.append(host)
        return resolved

    def list_symbols(self) -> list[str]:
        """Names of every cluster and tag, including external ones."""
        names = set(self.symbols.names())
        command = self.config.settings.external_cluster_command
        if command is not None:
            names.update(run_external_command(command, ["-L"]) or [])
        return sorted(names)


def run_external_command(command: Path, args: list[str]) -> list[str] | None:
    """Run the external cluster command, returning its output words.

    Any failure is reported as a warning and returns None so that the caller
    keeps its own host list.
    """
    if not (command.is_file() and os.access(command, os.X_OK)):
        logger.warning("External cluster command %s is not executable", command)
        return None
    try:
        result = subprocess.run(
            [str(command), *args], capture_output=True, text=True, check=False
        )
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("External cluster command %s failed: %s", command, e)
        return None
    if result.returncode != 0:
        logger.warning(
            "External cluster command %s exited with status %d",
            command,
            result.returncode,
        )
        return None
    return result.stdout.split()
