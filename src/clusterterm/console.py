"""TUI console: the shared input surface for all sessions."""

from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import VerticalScroll
from textual.message import Message
from textual.reactive import reactive
from textual.widgets import Footer, Header, Static

from .keys import translate_key
from .orchestrator import SessionState

if TYPE_CHECKING:
    from .broadcaster import InputBroadcaster
    from .expander import LaunchTarget
    from .orchestrator import LaunchReport, Orchestrator, Session


STATE_ICONS = {
    SessionState.LAUNCHING: ("…", "yellow"),
    SessionState.OPEN: ("●", "green"),
    SessionState.CLOSED: ("○", "red"),
}


class SessionRow(Static):
    """One line per session: state, name and whether it receives input."""

    can_focus = True

    state: reactive[SessionState] = reactive(SessionState.LAUNCHING)
    active: reactive[bool] = reactive(True)

    def __init__(self, session: Session, **kwargs) -> None:
        super().__init__(**kwargs)
        self.session_key = session.key
        self.state = session.state
        self.active = session.active

    def render(self) -> str:
        icon, color = STATE_ICONS.get(self.state, ("?", "white"))
        marker = "" if self.active else " [dim](inactive)[/dim]"
        return f"[{color}]{icon}[/] [bold]{self.session_key}[/bold] [{color}]{self.state.value}[/]{marker}"


class StatusBar(Static):
    """Bottom status bar showing how many sessions receive input."""

    open_count: reactive[int] = reactive(0)
    total: reactive[int] = reactive(0)
    launching: reactive[bool] = reactive(True)

    def render(self) -> str:
        status = "Launching..." if self.launching else "Typing goes to all open sessions"
        return f"Sessions: {self.open_count}/{self.total} open | {status} | Press ctrl+q to quit"


@dataclass
class SessionChanged(Message):
    """Message for a session state change."""
    session: Session


class Console(App):
    """Console window: launches the sessions and broadcasts every keystroke."""

    CSS = """
    #sessions {
        height: 1fr;
        padding: 0 1;
    }

    SessionRow {
        height: 1;
    }

    SessionRow:focus {
        background: $accent 30%;
    }

    StatusBar {
        dock: bottom;
        height: 1;
        background: $surface;
        padding: 0 1;
    }
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit", priority=True),
        Binding("f2", "toggle_active", "Toggle all"),
        Binding("f3", "toggle_session", "Toggle host"),
        Binding("f4", "focus_next", "Next host"),
        Binding("f5", "reopen", "Re-add closed"),
        # Keys the framework would otherwise keep for itself
        Binding("ctrl+c", "send_key('ctrl+c')", show=False, priority=True),
        Binding("tab", "send_key('Tab')", show=False, priority=True),
        Binding("shift+tab", "send_key('shift+Tab')", show=False, priority=True),
    ]

    CONSOLE_KEYS = {"ctrl+q", "f2", "f3", "f4", "f5", "ctrl+c", "tab", "shift+tab"}

    def __init__(
        self,
        orchestrator: Orchestrator,
        broadcaster: InputBroadcaster,
        targets: list[LaunchTarget],
        auto_quit: bool = True,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.orchestrator = orchestrator
        self.broadcaster = broadcaster
        self.targets = targets
        self.auto_quit = auto_quit
        self.rows: dict[str, SessionRow] = {}
        self._row_ids = 0

        orchestrator.on_change = self._on_change
        orchestrator.on_empty = self._on_empty

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield VerticalScroll(id="sessions")
        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Start launching sessions once the console is up."""
        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.total = len(self.targets)
        self.run_worker(self._launch(self.orchestrator.launch(self.targets)), exclusive=True)

    async def _launch(self, launching: Awaitable[LaunchReport]) -> None:
        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.launching = True
        report = await launching
        status_bar.launching = False
        for warning in report.warnings:
            self.notify(str(warning), severity="warning")

    def _on_change(self, session: Session) -> None:
        self.post_message(SessionChanged(session))

    def _on_empty(self) -> None:
        if self.auto_quit:
            self.exit()

    def on_session_changed(self, message: SessionChanged) -> None:
        """Keep the session list in step with the registry."""
        session = message.session
        row = self.rows.get(session.key)

        if session.state is SessionState.CLOSED:
            if row is not None and session.key not in self.orchestrator.registry:
                del self.rows[session.key]
                row.remove()
        elif row is None:
            self._row_ids += 1
            row = SessionRow(session, id=f"row-{self._row_ids}")
            self.rows[session.key] = row
            self.query_one("#sessions", VerticalScroll).mount(row)
        else:
            row.state = session.state
            row.active = session.active

        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.open_count = len(self.orchestrator.registry.open_sessions())

    async def on_key(self, event: events.Key) -> None:
        """Broadcast every key that is not a console binding."""
        if event.key in self.CONSOLE_KEYS:
            return
        keysym = translate_key(event.key, event.character)
        if keysym is None:
            return
        event.stop()
        event.prevent_default()
        await self.broadcaster.send_key(keysym)

    async def on_paste(self, event: events.Paste) -> None:
        """Type pasted text into every session."""
        await self.broadcaster.send_text(event.text)

    async def action_send_key(self, keysym: str) -> None:
        await self.broadcaster.send_key(keysym)

    def action_toggle_active(self) -> None:
        self.orchestrator.set_all_active(None)

    def action_toggle_session(self) -> None:
        """Toggle whether the focused session receives input."""
        row = self.focused
        if not isinstance(row, SessionRow):
            return
        session = self.orchestrator.registry.get(row.session_key)
        if session is not None:
            self.orchestrator.set_active(session)

    async def action_reopen(self) -> None:
        if self.orchestrator.closed:
            status_bar = self.query_one("#status-bar", StatusBar)
            status_bar.total += len(self.orchestrator.closed)
            self.run_worker(self._launch(self.orchestrator.reopen_closed()), exclusive=True)

    async def action_quit(self) -> None:
        """Close every session and quit."""
        await self.orchestrator.close_all()
        self.exit()
