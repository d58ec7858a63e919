"""Shared fixtures for clusterterm tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from clusterterm.config import Config, ConfigLocation, Settings, SymbolTable
from clusterterm.expander import LaunchTarget
from clusterterm.transport import Transport

from fakes import FakeBackend


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep tests away from the real ~/.clusterterm and $CLUSTERTERM_HOME."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("CLUSTERTERM_HOME", raising=False)
    return home


@pytest.fixture
def config_dir(isolated_home) -> Path:
    """An empty primary config directory."""
    directory = isolated_home / ".clusterterm"
    directory.mkdir()
    return directory


@pytest.fixture
def make_config():
    """Build a Config from in-memory cluster and tag definitions."""

    def _make(
        clusters: dict[str, list[str]] | None = None,
        tags: dict[str, list[str]] | None = None,
        settings: Settings | None = None,
        found: bool = True,
    ) -> Config:
        location = ConfigLocation(directory=Path("/nonexistent") if found else None)
        return Config(
            settings=settings or Settings(),
            symbols=SymbolTable.build(clusters or {}, tags or {}),
            location=location,
        )

    return _make


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def targets() -> list[LaunchTarget]:
    return [
        LaunchTarget(address, None, None, Transport.SSH)
        for address in ("web1", "web2", "web3")
    ]
