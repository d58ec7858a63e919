"""Translation of console key names into X keysyms for xdotool."""

from __future__ import annotations

# Console key name -> X keysym
SPECIAL_KEYS = {
    "enter": "Return",
    "tab": "Tab",
    "escape": "Escape",
    "backspace": "BackSpace",
    "delete": "Delete",
    "insert": "Insert",
    "home": "Home",
    "end": "End",
    "pageup": "Page_Up",
    "pagedown": "Page_Down",
    "up": "Up",
    "down": "Down",
    "left": "Left",
    "right": "Right",
    "space": "space",
    **{f"f{n}": f"F{n}" for n in range(1, 13)},
}

# Printable ASCII punctuation -> X keysym
PUNCTUATION = {
    " ": "space",
    "!": "exclam",
    '"': "quotedbl",
    "#": "numbersign",
    "$": "dollar",
    "%": "percent",
    "&": "ampersand",
    "'": "apostrophe",
    "(": "parenleft",
    ")": "parenright",
    "*": "asterisk",
    "+": "plus",
    ",": "comma",
    "-": "minus",
    ".": "period",
    "/": "slash",
    ":": "colon",
    ";": "semicolon",
    "<": "less",
    "=": "equal",
    ">": "greater",
    "?": "question",
    "@": "at",
    "[": "bracketleft",
    "\\": "backslash",
    "]": "bracketright",
    "^": "asciicircum",
    "_": "underscore",
    "`": "grave",
    "{": "braceleft",
    "|": "bar",
    "}": "braceright",
    "~": "asciitilde",
    "\n": "Return",
    "\t": "Tab",
}

MODIFIERS = {"ctrl", "shift", "alt", "meta", "super"}


def char_to_keysym(char: str) -> str:
    """Keysym that types ``char``."""
    if char in PUNCTUATION:
        return PUNCTUATION[char]
    if char.isascii() and char.isalnum():
        return char
    return f"U{ord(char):04X}"


def translate_key(key: str, character: str | None = None) -> str | None:
    """Turn a console key name (``ctrl+c``, ``enter``, ``a``) into a keysym.

    Returns None for keys that have no X equivalent.
    """
    *mods, base = key.split("+") if key != "+" else ["+"]
    if any(m not in MODIFIERS for m in mods):
        return None

    if base in SPECIAL_KEYS:
        sym = SPECIAL_KEYS[base]
    elif character and len(character) == 1 and character.isprintable() and not mods:
        sym = char_to_keysym(character)
    elif len(base) == 1:
        sym = char_to_keysym(base)
    else:
        return None

    return "+".join([*mods, sym])
