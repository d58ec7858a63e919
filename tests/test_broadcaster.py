"""Tests for key event fan-out."""

import asyncio

import pytest

from clusterterm.backend import KeyEvent
from clusterterm.broadcaster import InputBroadcaster
from clusterterm.config import MacroSettings, Settings
from clusterterm.expander import LaunchTarget
from clusterterm.orchestrator import Orchestrator
from clusterterm.transport import Transport


@pytest.fixture
def setup(backend):
    """Orchestrator with four open sessions and a broadcaster over them."""
    targets = [LaunchTarget(f"web{n}", None, None, Transport.SSH) for n in range(1, 5)]
    orchestrator = Orchestrator(backend, Settings())
    report = asyncio.run(orchestrator.launch(targets))
    return orchestrator, report.opened


def pairs(backend):
    return [(name, e.pressed) for name, e in backend.injected]


def test_closed_session_gets_nothing(backend, setup):
    orchestrator, sessions = setup
    backend.exit(sessions[3].handle)
    broadcaster = InputBroadcaster(backend, orchestrator.registry)

    delivered = asyncio.run(broadcaster.send_key("a"))

    assert delivered == 3
    assert pairs(backend) == [
        ("web1", True),
        ("web2", True),
        ("web3", True),
        ("web1", False),
        ("web2", False),
        ("web3", False),
    ]
    assert {e.key for _, e in backend.injected} == {"a"}


def test_release_follows_press_targets(backend, setup):
    orchestrator, sessions = setup
    broadcaster = InputBroadcaster(backend, orchestrator.registry)

    async def run():
        await broadcaster.broadcast(KeyEvent("Return"))
        # One window closes while the key is held, another one opens
        backend.exit(sessions[0].handle)
        await orchestrator.launch([LaunchTarget("web9", None, None, Transport.SSH)])
        await broadcaster.broadcast(KeyEvent("Return", pressed=False))

    asyncio.run(run())
    released = [name for name, pressed in pairs(backend) if not pressed]
    assert released == ["web2", "web3", "web4"]


def test_session_gone_during_delivery_is_silent(backend, setup, caplog):
    orchestrator, sessions = setup
    broadcaster = InputBroadcaster(backend, orchestrator.registry)
    # The window died but the close notification has not arrived yet
    sessions[1].handle.alive = False

    delivered = asyncio.run(broadcaster.broadcast(KeyEvent("x")))

    assert delivered == 3
    assert "web2" not in [name for name, _ in backend.injected]
    assert "WARNING" not in caplog.text


def test_other_failures_are_warnings(backend, setup, caplog):
    orchestrator, _ = setup

    async def flaky_inject(handle, event):
        if handle.name == "web2":
            raise OSError("xdotool: not found")

    backend.inject_key = flaky_inject
    broadcaster = InputBroadcaster(backend, orchestrator.registry)

    assert asyncio.run(broadcaster.broadcast(KeyEvent("x"))) == 3
    assert "xdotool: not found" in caplog.text


def test_inactive_sessions_are_skipped(backend, setup):
    orchestrator, sessions = setup
    sessions[0].active = False
    broadcaster = InputBroadcaster(backend, orchestrator.registry)

    asyncio.run(broadcaster.send_key("b"))
    assert {name for name, _ in backend.injected} == {"web2", "web3", "web4"}


def test_key_events_do_not_interleave(backend, setup):
    orchestrator, _ = setup
    broadcaster = InputBroadcaster(backend, orchestrator.registry)

    async def run():
        await asyncio.gather(broadcaster.send_key("a"), broadcaster.send_key("b"))

    asyncio.run(run())
    order = [(e.key, e.pressed) for _, e in backend.injected]
    assert order == [("a", True)] * 4 + [("a", False)] * 4 + [("b", True)] * 4 + [("b", False)] * 4


def test_send_text(backend, setup):
    orchestrator, _ = setup
    broadcaster = InputBroadcaster(backend, orchestrator.registry)

    asyncio.run(broadcaster.send_text("ls -l\n"))
    keys = [e.key for name, e in backend.injected if name == "web1" and e.pressed]
    assert keys == ["l", "s", "space", "minus", "l", "Return"]


def test_empty_registry(backend):
    orchestrator = Orchestrator(backend, Settings())
    broadcaster = InputBroadcaster(backend, orchestrator.registry)
    assert asyncio.run(broadcaster.send_key("a")) == 0
    assert backend.injected == []


def test_release_without_press_uses_current_sessions(backend, setup):
    orchestrator, _ = setup
    broadcaster = InputBroadcaster(backend, orchestrator.registry)
    assert asyncio.run(broadcaster.broadcast(KeyEvent("Escape", pressed=False))) == 4


def test_send_text_expands_macros_per_session(backend):
    targets = [
        LaunchTarget("a", None, None, Transport.SSH),
        LaunchTarget("bbb", "ops", None, Transport.SSH),
    ]
    orchestrator = Orchestrator(backend, Settings())
    asyncio.run(orchestrator.launch(targets))
    broadcaster = InputBroadcaster(backend, orchestrator.registry, MacroSettings(), "root")

    asyncio.run(broadcaster.send_text("%h@%u%n"))

    def typed(name):
        return [e.key for n, e in backend.injected if n == name and e.pressed]

    assert typed("a") == ["a", "at", "r", "o", "o", "t", "Return"]
    assert typed("ops@bbb") == ["b", "b", "b", "at", "o", "p", "s", "Return"]
    # Character N goes everywhere before character N+1
    assert [(n, e.key, e.pressed) for n, e in backend.injected[:4]] == [
        ("a", "a", True),
        ("ops@bbb", "b", True),
        ("a", "a", False),
        ("ops@bbb", "b", False),
    ]


def test_send_text_without_macros_is_literal(backend, setup):
    orchestrator, _ = setup
    broadcaster = InputBroadcaster(backend, orchestrator.registry)

    asyncio.run(broadcaster.send_text("%h"))
    keys = [e.key for name, e in backend.injected if name == "web1" and e.pressed]
    assert keys == ["percent", "h"]
