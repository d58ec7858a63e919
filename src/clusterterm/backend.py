"""Terminal windows: the capability interface and the xterm implementation.

The orchestrator and broadcaster only talk to a ``TerminalBackend``:

* ``open(target, placement)`` starts a terminal running the transport and
  returns an opaque handle once its window exists.
* ``close(handle)`` ends the session.
* ``inject_key(handle, event)`` delivers one synthetic key event.
* ``on_closed(callback)`` registers a callback fired once per handle when its
  process exits.

``XtermBackend`` launches ``xterm`` and injects keys with ``xdotool``. Both run
as plain child processes.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shlex
import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from .config import Settings
from .errors import SessionGone
from .expander import LaunchTarget
from .layout import DEFAULT_SCREEN, Placement
from .transport import build_command

logger = logging.getLogger(__name__)

# Type alias for close callbacks
ClosedCallback = Callable[[Any], None]  # (handle) -> None


@dataclass(frozen=True)
class KeyEvent:
    """A key press or release. ``key`` is an X keysym such as ``Return``."""

    key: str
    pressed: bool = True

    def release(self) -> KeyEvent:
        return KeyEvent(self.key, pressed=False)


class TerminalBackend(Protocol):
    """What the orchestrator and broadcaster need from a windowing system."""

    async def open(self, target: LaunchTarget, placement: Placement) -> Any: ...

    async def close(self, handle: Any) -> None: ...

    async def inject_key(self, handle: Any, event: KeyEvent) -> None: ...

    def on_closed(self, callback: ClosedCallback) -> None: ...


@dataclass(eq=False)
class XtermWindow:
    """Handle for one xterm session."""

    process: asyncio.subprocess.Process
    window_id: int
    title: str
    workdir: Path | None = field(default=None, repr=False)

    @property
    def alive(self) -> bool:
        return self.process.returncode is None


def session_script(command: list[str], handshake: Path, auto_close: int) -> str:
    """Shell script run inside the terminal.

    It reports the terminal's window id through ``handshake``, runs the
    transport, then waits so the user can read any final output.
    """
    tmp = shlex.quote(f"{handshake}.tmp")
    report = f'printf "%s\\n" "$WINDOWID" > {tmp} && mv {tmp} {shlex.quote(str(handshake))}'
    if auto_close > 0:
        tail = f"echo Sleeping for {auto_close} seconds; sleep {auto_close}"
    else:
        tail = "echo Press RETURN to continue; read IGNORE"
    return f"{report}; {shlex.join(command)}; {tail}"


class XtermBackend:
    """Opens sessions in xterm windows and injects keys with xdotool."""

    def __init__(self, settings: Settings, xdotool: str = "xdotool"):
        self.settings = settings
        self.xdotool = xdotool
        self._callbacks: list[ClosedCallback] = []
        self._watchers: set[asyncio.Task] = set()

    def on_closed(self, callback: ClosedCallback) -> None:
        self._callbacks.append(callback)

    def _terminal_argv(
        self, target: LaunchTarget, placement: Placement, handshake: Path
    ) -> list[str]:
        term = self.settings.terminal
        columns = max(1, (placement.width - term.decoration_width) // max(1, term.font_width))
        rows = max(1, (placement.height - term.decoration_height) // max(1, term.font_height))
        script = session_script(
            build_command(target, self.settings.transport, self.settings.macros),
            handshake,
            self.settings.auto_close,
        )
        return [
            term.name,
            *shlex.split(term.args),
            *shlex.split(term.allow_send_events),
            term.title_opt,
            f"{self.settings.title}: {target.label()}",
            "-font",
            term.font,
            "-geometry",
            f"{columns}x{rows}+{placement.x}+{placement.y}",
            "-e",
            "sh",
            "-c",
            script,
        ]

    async def open(self, target: LaunchTarget, placement: Placement) -> XtermWindow:
        """Start a terminal for ``target`` and wait for its window id."""
        workdir = Path(tempfile.mkdtemp(prefix="clusterterm-"))
        handshake = workdir / "window"
        argv = self._terminal_argv(target, placement, handshake)
        logger.debug("Running: %s", shlex.join(argv))

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError:
            shutil.rmtree(workdir, ignore_errors=True)
            raise

        try:
            window_id = await asyncio.wait_for(
                self._read_window_id(handshake, process),
                timeout=self.settings.terminal.handshake_timeout,
            )
        except (asyncio.TimeoutError, SessionGone):
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
            shutil.rmtree(workdir, ignore_errors=True)
            raise
        finally:
            handshake.unlink(missing_ok=True)

        window = XtermWindow(process, window_id, target.label(), workdir)
        task = asyncio.create_task(self._watch(window))
        self._watchers.add(task)
        task.add_done_callback(self._watchers.discard)
        return window

    async def _read_window_id(
        self, handshake: Path, process: asyncio.subprocess.Process
    ) -> int:
        while True:
            if handshake.exists():
                text = handshake.read_text().strip()
                try:
                    return int(text)
                except ValueError:
                    raise SessionGone(f"terminal reported no window id ({text!r})") from None
            if process.returncode is not None:
                raise SessionGone(f"terminal exited with status {process.returncode}")
            await asyncio.sleep(0.05)

    async def _watch(self, window: XtermWindow) -> None:
        """Wait for the terminal to exit, then notify subscribers once."""
        status = await window.process.wait()
        logger.debug("%s exited with status %s", window.title, status)
        if window.workdir is not None:
            shutil.rmtree(window.workdir, ignore_errors=True)
        for callback in self._callbacks:
            callback(window)

    async def close(self, handle: XtermWindow) -> None:
        if handle.alive:
            with contextlib.suppress(ProcessLookupError):
                handle.process.kill()

    async def inject_key(self, handle: XtermWindow, event: KeyEvent) -> None:
        """Send one key event to the window."""
        if not handle.alive:
            raise SessionGone(handle.title)
        action = "keydown" if event.pressed else "keyup"
        proc = await asyncio.create_subprocess_exec(
            self.xdotool,
            action,
            "--window",
            str(handle.window_id),
            event.key,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        if await proc.wait() != 0:
            raise SessionGone(handle.title)

    async def screen_size(self) -> tuple[int, int]:
        """Display size in pixels, falling back to a common default."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self.xdotool,
                "getdisplaygeometry",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
            out, _ = await proc.communicate()
        except OSError as e:
            logger.debug("Cannot query display geometry: %s", e)
            return DEFAULT_SCREEN
        parts = out.decode().split()
        if proc.returncode != 0 or len(parts) != 2 or not all(p.isdigit() for p in parts):
            return DEFAULT_SCREEN
        return int(parts[0]), int(parts[1])
