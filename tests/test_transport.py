"""Tests for transport selection and command lines."""

import pytest

from clusterterm.config import MacroSettings, TransportSettings
from clusterterm.expander import LaunchTarget
from clusterterm.transport import Transport, build_command, transport_for_program


@pytest.mark.parametrize(
    "program, transport",
    [
        ("ctssh", Transport.SSH),
        ("/usr/local/bin/ctssh", Transport.SSH),
        ("clusterterm", Transport.SSH),
        ("ctmosh", Transport.MOSH),
        ("/opt/bin/clustermosh", Transport.MOSH),
        ("ctmosh.exe", Transport.MOSH),
    ],
)
def test_transport_for_program(program, transport):
    assert transport_for_program(program) is transport


def test_ssh_command():
    target = LaunchTarget("node", "alice", 2222, Transport.SSH)
    assert build_command(target, TransportSettings()) == [
        "ssh", "-x", "-o", "ConnectTimeout=10", "-l", "alice", "-p", "2222", "node",
    ]


def test_ssh_command_uses_defaults_and_remote_command():
    target = LaunchTarget("node", None, None, Transport.SSH)
    settings = TransportSettings(ssh_args="", user="ops", port=22, command="uptime -p")
    assert build_command(target, settings) == [
        "ssh", "-l", "ops", "-p", "22", "node", "uptime -p",
    ]


def test_host_user_beats_default_user():
    target = LaunchTarget("node", "alice", None, Transport.SSH)
    argv = build_command(target, TransportSettings(user="ops"))
    assert argv[argv.index("-l") + 1] == "alice"


def test_mosh_command():
    target = LaunchTarget("node", "alice", 2222, Transport.MOSH)
    settings = TransportSettings(mosh_args="--predict=always", command="top -d 5")
    assert build_command(target, settings) == [
        "mosh", "--predict=always", "--ssh=ssh -p 2222", "alice@node", "--", "top", "-d", "5",
    ]


def test_mosh_command_minimal():
    target = LaunchTarget("node", None, None, Transport.MOSH)
    assert build_command(target, TransportSettings()) == ["mosh", "node"]


def test_remote_command_expands_macros():
    target = LaunchTarget("node", None, None, Transport.SSH)
    settings = TransportSettings(ssh_args="", user="ops", command="echo %u@%h")
    assert build_command(target, settings, MacroSettings())[-1] == "echo ops@node"
    assert build_command(target, settings)[-1] == "echo %u@%h"


def test_mosh_remote_command_expands_macros():
    target = LaunchTarget("node", None, None, Transport.MOSH)
    settings = TransportSettings(command="tmux new -s %h")
    assert build_command(target, settings, MacroSettings()) == [
        "mosh", "node", "--", "tmux", "new", "-s", "node",
    ]
