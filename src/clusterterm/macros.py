"""Per-session placeholders in pasted text and the remote command.

``%s`` becomes the session's name, ``%h`` the address it connects to, ``%u``
the remote user (the local user when none is set), ``%n`` a newline and ``%v``
the program version. Replacements run in that order.
"""

from __future__ import annotations

import getpass
import re
from typing import TYPE_CHECKING

from .config import MacroSettings

if TYPE_CHECKING:
    from .expander import LaunchTarget

VERSION = "0.1.0"
VERSION_LONG = f"clusterterm {VERSION}"

_WHITESPACE = re.compile(r"\s+")


def local_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return ""


def _replace(pattern: str, text: str, value: str) -> str:
    if not pattern:
        return text
    # Callable replacement so backslashes in value are taken literally
    return re.sub(pattern, lambda _: value, text)


def substitute(
    text: str,
    macros: MacroSettings,
    target: LaunchTarget,
    servername: str | None = None,
    default_user: str | None = None,
) -> str:
    """Expand the macros in ``text`` for one session."""
    if not macros.enabled:
        return text
    servername = _WHITESPACE.sub("", servername or target.label())
    user = target.user or default_user or local_user()

    text = _replace(macros.servername, text, servername)
    text = _replace(macros.hostname, text, target.address)
    text = _replace(macros.username, text, user)
    text = _replace(macros.newline, text, "\n")
    return _replace(macros.version, text, VERSION_LONG)
