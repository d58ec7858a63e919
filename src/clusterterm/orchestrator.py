"""Session orchestration: one terminal per launch target."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .backend import TerminalBackend
from .config import Settings
from .errors import ClustertermError, SpawnFailed
from .expander import LaunchTarget
from .layout import DEFAULT_SCREEN, tile

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Lifecycle of a session."""

    LAUNCHING = "launching"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(eq=False)
class Session:
    """A launched target and its backend handle."""

    key: str
    target: LaunchTarget
    handle: Any = None
    state: SessionState = SessionState.LAUNCHING
    active: bool = True


# Type alias for registry change callback
ChangeCallback = Callable[[Session], None]  # (session) -> None


class SessionRegistry:
    """Live sessions, keyed by a unique name per target.

    Only the event loop thread touches the registry, so it has no locking.
    Iteration order is insertion order.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._counts: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    def __contains__(self, key: object) -> bool:
        return key in self._sessions

    def get(self, key: str) -> Session | None:
        return self._sessions.get(key)

    def new_key(self, target: LaunchTarget) -> str:
        """``host`` for the first session to a host, then ``host 1``, ``host 2``..."""
        base = target.label()
        n = self._counts.get(base, 0)
        key = base
        while key in self._sessions:
            n += 1
            key = f"{base} {n}"
        self._counts[base] = n
        return key

    def add(self, session: Session) -> None:
        self._sessions[session.key] = session

    def remove(self, key: str) -> Session | None:
        return self._sessions.pop(key, None)

    def find(self, handle: Any) -> Session | None:
        for session in self._sessions.values():
            if session.handle is handle:
                return session
        return None

    def open_sessions(self) -> list[Session]:
        """Snapshot of sessions that are open and active."""
        return [
            s
            for s in self._sessions.values()
            if s.state is SessionState.OPEN and s.active
        ]


@dataclass
class LaunchReport:
    """Outcome of launching a batch of targets."""

    opened: list[Session] = field(default_factory=list)
    warnings: list[SpawnFailed] = field(default_factory=list)


class Orchestrator:
    """Launches sessions and keeps the registry in step with their lifecycle."""

    def __init__(
        self,
        backend: TerminalBackend,
        settings: Settings,
        screen_size: tuple[int, int] | None = None,
        on_change: ChangeCallback | None = None,
        on_empty: Callable[[], None] | None = None,
    ):
        self.backend = backend
        self.settings = settings
        self.screen_size = screen_size or (
            settings.screen.width or DEFAULT_SCREEN[0],
            settings.screen.height or DEFAULT_SCREEN[1],
        )
        self.on_change = on_change
        self.on_empty = on_empty
        self.registry = SessionRegistry()
        self.closed: list[LaunchTarget] = []
        self._ever_opened = False
        backend.on_closed(self._handle_closed)

    def _emit_change(self, session: Session) -> None:
        if self.on_change:
            self.on_change(session)

    async def launch(self, targets: Sequence[LaunchTarget]) -> LaunchReport:
        """Open one session per target, in order.

        A target that fails to open is reported and skipped; the others still
        launch.
        """
        placements = tile(
            len(targets),
            self.screen_size,
            self.settings.terminal,
            self.settings.screen,
        )
        report = LaunchReport()

        for target, placement in zip(targets, placements):
            session = Session(key=self.registry.new_key(target), target=target)
            self.registry.add(session)
            self._emit_change(session)

            try:
                handle = await self.backend.open(target, placement)
            except (OSError, asyncio.TimeoutError, ClustertermError) as e:
                reason = str(e) or type(e).__name__
                warning = SpawnFailed(target.label(), reason)
                logger.warning("%s", warning)
                report.warnings.append(warning)
                self.registry.remove(session.key)
                session.state = SessionState.CLOSED
                self._emit_change(session)
                continue

            session.handle = handle
            session.state = SessionState.OPEN
            self._ever_opened = True
            report.opened.append(session)
            self._emit_change(session)
            logger.info("Opened %s", session.key)

        return report

    def _handle_closed(self, handle: Any) -> None:
        """Close notification from the backend: drop the session at once."""
        session = self.registry.find(handle)
        if session is None:
            return
        self.registry.remove(session.key)
        session.state = SessionState.CLOSED
        self.closed.append(session.target)
        logger.info("%s session closed", session.key)
        self._emit_change(session)
        if not self.registry and self._ever_opened and self.on_empty:
            self.on_empty()

    async def close(self, session: Session) -> None:
        if session.state is SessionState.OPEN:
            await self.backend.close(session.handle)

    async def close_all(self) -> None:
        """Close every open session."""
        for session in self.registry:
            await self.close(session)

    async def reopen_closed(self) -> LaunchReport:
        """Launch the targets of sessions that have closed."""
        targets, self.closed = self.closed, []
        return await self.launch(targets)

    def set_active(self, session: Session, active: bool | None = None) -> None:
        """Mark one session active or inactive; None toggles it."""
        session.active = (not session.active) if active is None else active
        self._emit_change(session)

    def set_all_active(self, active: bool | None = None) -> None:
        """Mark every session active, or toggle each one when ``active`` is None."""
        for session in self.registry:
            self.set_active(session, active)
