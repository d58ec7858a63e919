"""Remote-session transports and their command lines."""

from __future__ import annotations

import shlex
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from .config import MacroSettings, TransportSettings
from .macros import substitute

if TYPE_CHECKING:
    from .expander import LaunchTarget


class Transport(Enum):
    """Executable used to open each remote session."""

    SSH = "ssh"
    MOSH = "mosh"


def transport_for_program(program: str) -> Transport:
    """Pick the transport from the name the program was invoked as.

    ``ctmosh``, ``cmosh`` and ``clustermosh`` run mosh; anything else runs ssh.
    """
    name = Path(program).name.lower()
    if name.endswith((".py", ".exe")):
        name = name.rsplit(".", 1)[0]
    if "mosh" in name:
        return Transport.MOSH
    return Transport.SSH


def build_command(
    target: LaunchTarget,
    settings: TransportSettings,
    macros: MacroSettings | None = None,
) -> list[str]:
    """Build the argv that connects to ``target``.

    With ``macros``, placeholders in the remote command are expanded for
    ``target``.
    """
    user = target.user or settings.user
    port = target.port or settings.port
    remote = settings.command
    if remote and macros is not None:
        remote = substitute(remote, macros, target, default_user=settings.user)

    if target.transport is Transport.MOSH:
        argv = [settings.mosh, *shlex.split(settings.mosh_args)]
        if port:
            argv.append(f"--ssh=ssh -p {port}")
        argv.append(f"{user}@{target.address}" if user else target.address)
        if remote:
            argv += ["--", *shlex.split(remote)]
        return argv

    argv = [settings.ssh, *shlex.split(settings.ssh_args)]
    if user:
        argv += ["-l", user]
    if port:
        argv += ["-p", str(port)]
    argv.append(target.address)
    if remote:
        argv.append(remote)
    return argv
