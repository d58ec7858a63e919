"""Tests for the command-line entry point."""

import asyncio

import pytest

from clusterterm import runner
from clusterterm.transport import Transport

from fakes import FakeBackend


class FakeConsole:
    """Stands in for the TUI: launches the targets and returns."""

    instances = []

    def __init__(self, orchestrator, broadcaster, targets, auto_quit=True):
        self.orchestrator = orchestrator
        self.targets = targets
        self.title = ""
        self.report = None
        FakeConsole.instances.append(self)

    def run(self):
        self.report = asyncio.run(self.orchestrator.launch(self.targets))


@pytest.fixture
def fake_ui(monkeypatch):
    """Replace the console and terminal backend; returns the backend."""
    backend = FakeBackend()
    FakeConsole.instances = []
    monkeypatch.setattr(runner, "Console", FakeConsole)
    monkeypatch.setattr(runner, "XtermBackend", lambda settings: backend)
    return backend


@pytest.fixture
def no_system_config(monkeypatch, tmp_path):
    monkeypatch.setattr("clusterterm.config.SYSTEM_CLUSTERS", tmp_path / "no-clusters")
    monkeypatch.setattr("clusterterm.config.SYSTEM_TAGS", tmp_path / "no-tags")


def test_partial_spawn_failure_exits_zero(config_dir, fake_ui):
    (config_dir / "clusters").write_text("web web1 web2 web3\n")
    fake_ui.fail = {"web2"}

    assert runner.main(["web"], prog="ctssh") == 0

    console = FakeConsole.instances[0]
    assert [s.key for s in console.orchestrator.registry] == ["web1", "web3"]
    assert len(console.report.warnings) == 1
    assert console.title == "clusterterm (ssh)"


def test_cycle_is_fatal(config_dir, fake_ui, capsys):
    (config_dir / "clusters").write_text("a b\nb a\n")

    assert runner.main(["a"], prog="ctssh") == 1
    assert "Cyclic reference: a -> b -> a" in capsys.readouterr().err
    assert FakeConsole.instances == []


def test_missing_config_is_fatal(no_system_config, fake_ui, capsys):
    assert runner.main(["no such host"], prog="ctssh") == 1
    assert "Error:" in capsys.readouterr().err


def test_literal_hosts_need_no_config(no_system_config, fake_ui):
    assert runner.main(["alice@web1", "web2:2222"], prog="ctssh") == 0
    assert [t.label() for t in FakeConsole.instances[0].targets] == [
        "alice@web1",
        "web2:2222",
    ]


def test_empty_request_uses_default_cluster(config_dir, fake_ui):
    (config_dir / "clusters").write_text("default web1 web2\n")
    assert runner.main([], prog="ctssh") == 0
    assert len(FakeConsole.instances[0].targets) == 2


def test_program_name_selects_transport(no_system_config, fake_ui):
    runner.main(["web1"], prog="/usr/bin/ctmosh")
    console = FakeConsole.instances[0]
    assert console.targets[0].transport is Transport.MOSH
    assert console.title == "clusterterm (mosh)"


def test_transport_flag_overrides_program_name(no_system_config, fake_ui):
    runner.main(["--transport", "ssh", "web1"], prog="ctmosh")
    assert FakeConsole.instances[0].targets[0].transport is Transport.SSH


def test_list_symbols(config_dir, fake_ui, capsys):
    (config_dir / "clusters").write_text("web web1 web2\n")
    (config_dir / "tags").write_text("db db1\n")

    assert runner.main(["-L"], prog="ctssh") == 0
    assert capsys.readouterr().out == "Available clusters and tags:\n\tdb\n\tweb\n"

    assert runner.main(["-Q", "-L", "web"], prog="ctssh") == 0
    assert capsys.readouterr().out == "web1 web2 \n"
    assert FakeConsole.instances == []


def test_extra_cluster_file(config_dir, fake_ui, tmp_path):
    extra = tmp_path / "more"
    extra.write_text("mail mx1 mx2\n")
    assert runner.main(["-c", str(extra), "mail"], prog="ctssh") == 0
    assert [t.address for t in FakeConsole.instances[0].targets] == ["mx1", "mx2"]


def test_evaluate_missing_transport(config_dir, fake_ui, tmp_path, capsys):
    (config_dir / "config.yaml").write_text(f"transport:\n  ssh: {tmp_path / 'no-ssh'}\n")
    assert runner.main(["-e", "node"], prog="ctssh") == 127
    assert "Cannot run" in capsys.readouterr().err


def test_apply_overrides(config_dir):
    args = runner.build_parser("ctmosh").parse_args(
        ["-l", "ops", "-p", "2222", "-a", "uptime", "--options=--predict=never", "-K", "3", "-A"]
    )
    settings = runner.apply_overrides(runner.Settings(), args, Transport.MOSH)
    assert settings.transport.user == "ops"
    assert settings.transport.port == 2222
    assert settings.transport.command == "uptime"
    assert settings.transport.mosh_args == "--predict=never"
    assert settings.transport.ssh_args == runner.Settings().transport.ssh_args
    assert settings.auto_close == 3
    assert settings.expand_addresses


def test_unbalanced_option_override_is_fatal(no_system_config, fake_ui, capsys):
    assert runner.main(["--options=-o 'ProxyCommand=x", "web1"], prog="ctssh") == 1
    assert "Error:" in capsys.readouterr().err
    assert FakeConsole.instances == []


def test_bad_timeout_in_config_is_fatal(config_dir, fake_ui, capsys):
    (config_dir / "config.yaml").write_text("terminal:\n  handshake_timeout: soon\n")
    assert runner.main(["web1"], prog="ctssh") == 1
    assert "handshake_timeout" in capsys.readouterr().err


def test_option_like_cluster_member_is_skipped(config_dir, fake_ui):
    (config_dir / "clusters").write_text("web web1 -oProxyCommand=x\n")
    assert runner.main(["web"], prog="ctssh") == 0
    assert [w.name for w in fake_ui.windows] == ["web1"]
