"""Configuration loader for clusterterm.

Two kinds of files live in the config directory:

* ``config.yaml`` holds settings (terminal, screen, transport options).
* ``clusters`` and ``tags`` hold name definitions, one per line::

      web web1.example.com web2.example.com
      all web db1.example.com   # clusters may name other clusters or tags

The directory is the first that exists of ``$CLUSTERTERM_HOME`` (or
``~/.clusterterm``), then the legacy ``~/.clusterssh``. With neither present,
the system-wide ``/etc/clusters`` and ``/etc/tags`` are used.
"""

from __future__ import annotations

import logging
import os
import re
import shlex
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from .errors import ConfigError, MissingConfig

logger = logging.getLogger(__name__)

SETTINGS_FILE = "config.yaml"
CLUSTERS_FILE = "clusters"
TAGS_FILE = "tags"
SYSTEM_CLUSTERS = Path("/etc/clusters")
SYSTEM_TAGS = Path("/etc/tags")


def _check_shell_words(**values: str) -> None:
    """Raise ConfigError unless every value splits into shell words."""
    for key, value in values.items():
        try:
            shlex.split(value)
        except ValueError as e:
            raise ConfigError(f"'{key}' is not valid shell syntax ({e}): {value!r}") from e


@dataclass(frozen=True)
class TerminalSettings:
    """How each session's terminal window is launched and sized."""

    name: str = "xterm"
    args: str = ""
    title_opt: str = "-T"
    allow_send_events: str = "-xrm '*.VT100.allowSendEvents:true'"
    font: str = "6x13"
    font_width: int = 6
    font_height: int = 13
    columns: int = 80
    rows: int = 24
    decoration_width: int = 8
    decoration_height: int = 10
    reserve_top: int = 5
    reserve_bottom: int = 0
    reserve_left: int = 5
    reserve_right: int = 0
    handshake_timeout: float = 10.0

    def __post_init__(self) -> None:
        _check_shell_words(args=self.args, allow_send_events=self.allow_send_events)


@dataclass(frozen=True)
class ScreenSettings:
    """Screen geometry used for tiling. Width/height of None means detect."""

    width: int | None = None
    height: int | None = None
    reserve_top: int = 0
    reserve_bottom: int = 60
    reserve_left: int = 0
    reserve_right: int = 0


@dataclass(frozen=True)
class TransportSettings:
    """Executables and arguments for the remote-session transports."""

    ssh: str = "ssh"
    ssh_args: str = "-x -o ConnectTimeout=10"
    mosh: str = "mosh"
    mosh_args: str = ""
    user: str | None = None
    port: int | None = None
    command: str = ""

    def __post_init__(self) -> None:
        _check_shell_words(
            ssh_args=self.ssh_args, mosh_args=self.mosh_args, command=self.command
        )


@dataclass(frozen=True)
class MacroSettings:
    """Placeholders replaced per session in pasted text and the remote command.

    Each pattern is a regular expression. An empty pattern disables that macro.
    """

    enabled: bool = True
    servername: str = "%s"
    hostname: str = "%h"
    username: str = "%u"
    newline: str = "%n"
    version: str = "%v"

    def __post_init__(self) -> None:
        for key in ("servername", "hostname", "username", "newline", "version"):
            try:
                re.compile(getattr(self, key))
            except re.error as e:
                raise ConfigError(f"macro '{key}' is not a valid pattern: {e}") from e


@dataclass(frozen=True)
class Settings:
    """Top-level settings, read from ``config.yaml``."""

    terminal: TerminalSettings = field(default_factory=TerminalSettings)
    screen: ScreenSettings = field(default_factory=ScreenSettings)
    transport: TransportSettings = field(default_factory=TransportSettings)
    macros: MacroSettings = field(default_factory=MacroSettings)
    title: str = "clusterterm"
    auto_quit: bool = True
    auto_close: int = 0
    expand_addresses: bool = False
    extra_cluster_files: tuple[Path, ...] = ()
    extra_tag_files: tuple[Path, ...] = ()
    external_cluster_command: Path | None = None
    source_path: Path | None = None  # Path to the settings file, if any


@dataclass(frozen=True)
class ConfigLocation:
    """Where cluster and tag definitions were found."""

    directory: Path | None
    cluster_files: tuple[Path, ...] = ()
    tag_files: tuple[Path, ...] = ()
    legacy: bool = False

    @property
    def found(self) -> bool:
        return self.directory is not None or bool(self.cluster_files or self.tag_files)

    @property
    def settings_file(self) -> Path | None:
        if self.directory is None:
            return None
        return self.directory / SETTINGS_FILE


@dataclass(frozen=True)
class SymbolTable:
    """Cluster and tag definitions. Read-only once built."""

    clusters: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    tags: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    sources: tuple[Path, ...] = ()

    @classmethod
    def build(
        cls,
        clusters: Mapping[str, list[str]],
        tags: Mapping[str, list[str]],
        sources: tuple[Path, ...] = (),
    ) -> SymbolTable:
        return cls(
            clusters=MappingProxyType({k: tuple(v) for k, v in clusters.items()}),
            tags=MappingProxyType({k: tuple(v) for k, v in tags.items()}),
            sources=sources,
        )

    def __contains__(self, name: object) -> bool:
        return name in self.clusters or name in self.tags

    def __bool__(self) -> bool:
        return bool(self.clusters or self.tags)

    def members(self, name: str) -> tuple[str, ...] | None:
        """Member tokens of ``name``: cluster members, then tag members."""
        if name not in self:
            return None
        return self.clusters.get(name, ()) + self.tags.get(name, ())

    def names(self) -> list[str]:
        return sorted(set(self.clusters) | set(self.tags))


@dataclass(frozen=True)
class Config:
    """Everything the pipeline needs, loaded once at startup."""

    settings: Settings
    symbols: SymbolTable
    location: ConfigLocation


def locate_config(home: Path | None = None) -> ConfigLocation:
    """Find the config directory using the fixed fallback chain."""
    env_home = os.environ.get("CLUSTERTERM_HOME")
    if home is None:
        home = Path.home()
    primary = Path(env_home).expanduser() if env_home else home / ".clusterterm"
    legacy = home / ".clusterssh"

    for directory, is_legacy in ((primary, False), (legacy, True)):
        if directory.is_dir():
            return ConfigLocation(
                directory=directory,
                cluster_files=_existing(directory / CLUSTERS_FILE),
                tag_files=_existing(directory / TAGS_FILE),
                legacy=is_legacy,
            )

    return ConfigLocation(
        directory=None,
        cluster_files=_existing(SYSTEM_CLUSTERS),
        tag_files=_existing(SYSTEM_TAGS),
    )


def _existing(path: Path) -> tuple[Path, ...]:
    return (path,) if path.is_file() else ()


def load_settings(
    config_path: str | Path | None = None, location: ConfigLocation | None = None
) -> Settings:
    """Load settings from an explicit path, else from the config directory."""
    if config_path is not None:
        path = Path(config_path).expanduser().resolve()
        if not path.exists():
            raise MissingConfig(f"Config file not found: {path}")
    elif location is not None and location.settings_file is not None:
        path = location.settings_file
        if not path.exists():
            return Settings()
    else:
        return Settings()

    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise MissingConfig(f"Cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a mapping at top level")

    settings = _parse_settings(raw)
    logger.debug("Loaded settings from %s", path)
    return replace(settings, source_path=path)


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return section


def _int(section: dict[str, Any], key: str, default: int | None) -> int | None:
    value = section.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"'{key}' must be an integer, got {value!r}")
    return value


def _float(section: dict[str, Any], key: str, default: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' must be a number, got {value!r}")
    return float(value)


def _parse_terminal(raw: dict[str, Any]) -> TerminalSettings:
    """Parse the terminal section."""
    section = _section(raw, "terminal")
    d = TerminalSettings()
    return TerminalSettings(
        name=str(section.get("name", d.name)),
        args=str(section.get("args", d.args)),
        title_opt=str(section.get("title_opt", d.title_opt)),
        allow_send_events=str(section.get("allow_send_events", d.allow_send_events)),
        font=str(section.get("font", d.font)),
        font_width=_int(section, "font_width", d.font_width),
        font_height=_int(section, "font_height", d.font_height),
        columns=_int(section, "columns", d.columns),
        rows=_int(section, "rows", d.rows),
        decoration_width=_int(section, "decoration_width", d.decoration_width),
        decoration_height=_int(section, "decoration_height", d.decoration_height),
        reserve_top=_int(section, "reserve_top", d.reserve_top),
        reserve_bottom=_int(section, "reserve_bottom", d.reserve_bottom),
        reserve_left=_int(section, "reserve_left", d.reserve_left),
        reserve_right=_int(section, "reserve_right", d.reserve_right),
        handshake_timeout=_float(section, "handshake_timeout", d.handshake_timeout),
    )


def _parse_screen(raw: dict[str, Any]) -> ScreenSettings:
    """Parse the screen section."""
    section = _section(raw, "screen")
    d = ScreenSettings()
    return ScreenSettings(
        width=_int(section, "width", d.width),
        height=_int(section, "height", d.height),
        reserve_top=_int(section, "reserve_top", d.reserve_top),
        reserve_bottom=_int(section, "reserve_bottom", d.reserve_bottom),
        reserve_left=_int(section, "reserve_left", d.reserve_left),
        reserve_right=_int(section, "reserve_right", d.reserve_right),
    )


def _parse_transport(raw: dict[str, Any]) -> TransportSettings:
    """Parse the transport section."""
    section = _section(raw, "transport")
    d = TransportSettings()
    user = section.get("user", d.user)
    return TransportSettings(
        ssh=str(section.get("ssh", d.ssh)),
        ssh_args=str(section.get("ssh_args", d.ssh_args)),
        mosh=str(section.get("mosh", d.mosh)),
        mosh_args=str(section.get("mosh_args", d.mosh_args)),
        user=str(user) if user else None,
        port=_int(section, "port", d.port),
        command=str(section.get("command", d.command)),
    )


def _parse_macros(raw: dict[str, Any]) -> MacroSettings:
    """Parse the macros section."""
    section = _section(raw, "macros")
    d = MacroSettings()
    return MacroSettings(
        enabled=bool(section.get("enabled", d.enabled)),
        servername=str(section.get("servername", d.servername) or ""),
        hostname=str(section.get("hostname", d.hostname) or ""),
        username=str(section.get("username", d.username) or ""),
        newline=str(section.get("newline", d.newline) or ""),
        version=str(section.get("version", d.version) or ""),
    )


def _paths(raw: dict[str, Any], key: str) -> tuple[Path, ...]:
    value = raw.get(key) or []
    if isinstance(value, str):
        value = [value]
    return tuple(Path(p).expanduser() for p in value)


def _parse_settings(raw: dict[str, Any]) -> Settings:
    """Parse raw YAML data into a Settings object."""
    d = Settings()
    external = raw.get("external_cluster_command")
    return Settings(
        terminal=_parse_terminal(raw),
        screen=_parse_screen(raw),
        transport=_parse_transport(raw),
        macros=_parse_macros(raw),
        title=str(raw.get("title", d.title)),
        auto_quit=bool(raw.get("auto_quit", d.auto_quit)),
        auto_close=_int(raw, "auto_close", d.auto_close),
        expand_addresses=bool(raw.get("expand_addresses", d.expand_addresses)),
        extra_cluster_files=_paths(raw, "extra_cluster_files"),
        extra_tag_files=_paths(raw, "extra_tag_files"),
        external_cluster_command=Path(external).expanduser() if external else None,
    )


def read_definitions(path: Path) -> Iterator[tuple[str, list[str]]]:
    """Yield (name, members) for each definition line in a cluster/tag file.

    ``#`` starts a comment, a trailing ``\\`` joins the next line, and lines
    without at least one member are skipped.
    """
    pending = ""
    with open(path) as f:
        for raw in f:
            line = raw.split("#", 1)[0].rstrip()
            if line.endswith("\\"):
                pending += line.rstrip("\\") + " "
                continue
            line, pending = pending + line, ""
            parts = line.split()
            if len(parts) >= 2:
                yield parts[0], parts[1:]
    if pending:
        parts = pending.split()
        if len(parts) >= 2:
            yield parts[0], parts[1:]


def _read_into(table: dict[str, list[str]], path: Path) -> None:
    try:
        for name, members in read_definitions(path):
            # Repeated names extend the earlier definition.
            table.setdefault(name, []).extend(members)
    except OSError as e:
        raise MissingConfig(f"Cannot read {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise MissingConfig(f"{path} is not valid text: {e}") from e


def load_symbols(
    location: ConfigLocation,
    extra_cluster_files: tuple[Path, ...] = (),
    extra_tag_files: tuple[Path, ...] = (),
) -> SymbolTable:
    """Build the symbol table from the located files plus any extra files."""
    clusters: dict[str, list[str]] = {}
    tags: dict[str, list[str]] = {}
    sources: list[Path] = []

    for path in extra_cluster_files + extra_tag_files:
        if not path.is_file():
            raise MissingConfig(f"Definition file not found: {path}")

    for path in location.cluster_files + extra_cluster_files:
        _read_into(clusters, path)
        sources.append(path)
    for path in location.tag_files + extra_tag_files:
        _read_into(tags, path)
        sources.append(path)

    logger.debug(
        "Loaded %d clusters and %d tags from %s",
        len(clusters),
        len(tags),
        ", ".join(str(p) for p in sources) or "nowhere",
    )
    return SymbolTable.build(clusters, tags, tuple(sources))


def load_config(
    config_path: str | Path | None = None, home: Path | None = None
) -> Config:
    """Locate and load settings and definitions."""
    location = locate_config(home)
    settings = load_settings(config_path, location)
    symbols = load_symbols(
        location, settings.extra_cluster_files, settings.extra_tag_files
    )
    return Config(settings=settings, symbols=symbols, location=location)
