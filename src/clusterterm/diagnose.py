"""Run the transport directly against one host, without a terminal.

Used to debug connections whose errors would otherwise flash past in a
terminal window that closes straight away.
"""

from __future__ import annotations

import asyncio
import shlex
from collections.abc import Callable

from .config import MacroSettings, TransportSettings
from .expander import LaunchTarget
from .transport import build_command

# Type alias for output callback
OutputCallback = Callable[[str, str], None]  # (stream, line) -> None


async def evaluate(
    target: LaunchTarget,
    settings: TransportSettings,
    on_output: OutputCallback,
    macros: MacroSettings | None = None,
) -> int:
    """Run the transport for ``target``, streaming its output. Returns its exit status."""
    argv = build_command(target, settings, macros)
    on_output("info", f"Running: {shlex.join(argv)}")

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        on_output("error", f"Cannot run {argv[0]}: {e}")
        return 127
    except OSError as e:
        on_output("error", f"Cannot run {argv[0]}: {e}")
        return 126

    # Read stdout and stderr concurrently
    async def read_stream(stream: asyncio.StreamReader, name: str) -> None:
        while True:
            line = await stream.readline()
            if not line:
                break
            on_output(name, line.decode(errors="replace").rstrip("\n\r"))

    await asyncio.gather(
        read_stream(proc.stdout, "stdout"),
        read_stream(proc.stderr, "stderr"),
    )
    status = await proc.wait()
    on_output("info", f"{argv[0]} exited with status {status}")
    return status
