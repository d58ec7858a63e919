"""Fan-out of console key events to every open session."""

from __future__ import annotations

import asyncio
import logging

from .backend import KeyEvent, TerminalBackend
from .config import MacroSettings
from .errors import SessionGone
from .keys import char_to_keysym
from .macros import substitute
from .orchestrator import Session, SessionRegistry, SessionState

logger = logging.getLogger(__name__)


class InputBroadcaster:
    """Forwards each key event to all open sessions.

    A press goes to every open, active session; the matching release goes to
    the same sessions, minus any that closed in between. Calls are serialized,
    so one key event is delivered everywhere before the next one starts.
    """

    def __init__(
        self,
        backend: TerminalBackend,
        registry: SessionRegistry,
        macros: MacroSettings | None = None,
        default_user: str | None = None,
    ):
        self.backend = backend
        self.registry = registry
        self.macros = macros
        self.default_user = default_user
        self._lock = asyncio.Lock()
        self._held: dict[str, list[Session]] = {}

    async def broadcast(self, event: KeyEvent) -> int:
        """Deliver ``event``; returns how many sessions received it."""
        async with self._lock:
            return await self._broadcast(event)

    async def _broadcast(self, event: KeyEvent) -> int:
        if event.pressed:
            targets = self.registry.open_sessions()
            self._held[event.key] = targets
        else:
            targets = self._held.pop(event.key, None)
            if targets is None:
                targets = self.registry.open_sessions()
            targets = [s for s in targets if s.state is SessionState.OPEN]
        return await self._deliver([(s, event) for s in targets])

    async def _deliver(self, deliveries: list[tuple[Session, KeyEvent]]) -> int:
        results = await asyncio.gather(
            *(self.backend.inject_key(s.handle, event) for s, event in deliveries),
            return_exceptions=True,
        )
        delivered = 0
        for (session, _), result in zip(deliveries, results):
            if result is None:
                delivered += 1
            elif isinstance(result, SessionGone):
                # Closed between snapshot and delivery; not an error
                logger.debug("Skipped %s: gone", session.key)
            elif isinstance(result, Exception):
                logger.warning("Could not send key to %s: %s", session.key, result)
            else:
                raise result
        return delivered

    async def send_key(self, key: str) -> int:
        """Press and release ``key`` on every open session."""
        event = KeyEvent(key, pressed=True)
        async with self._lock:
            delivered = await self._broadcast(event)
            await self._broadcast(event.release())
        return delivered

    def render(self, text: str, session: Session) -> str:
        """``text`` as typed into ``session``, with its macros expanded."""
        if self.macros is None:
            return text
        return substitute(text, self.macros, session.target, session.key, self.default_user)

    async def send_text(self, text: str) -> None:
        """Type ``text`` into every open session, one key pair per character.

        Macros make the text differ per session, so each session gets its own
        keys. Character N is pressed and released everywhere before character
        N+1, and the whole text is typed before any other key event.
        """
        async with self._lock:
            typed = [(s, self.render(text, s)) for s in self.registry.open_sessions()]
            longest = max((len(t) for _, t in typed), default=0)
            for i in range(longest):
                presses = [
                    (s, KeyEvent(char_to_keysym(t[i])))
                    for s, t in typed
                    if i < len(t) and s.state is SessionState.OPEN
                ]
                await self._deliver(presses)
                await self._deliver(
                    [(s, e.release()) for s, e in presses if s.state is SessionState.OPEN]
                )
