"""Derive the stable launcher id from a display name.

The id doubles as the .desktop file name, the icon file name, the profile
directory name and the tail of the window class, so the transform must be
identical on every host regardless of locale.
"""

from __future__ import annotations

import string

from webapp_forge.errors import InvalidIdentifier

_ALLOWED = frozenset(string.ascii_lowercase + string.digits + "_.-")
_ASCII_UPPER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


def derive_id(name: str) -> str:
    """Lowercase (ASCII only), map whitespace to ``_``, keep ``[a-z0-9_.-]``."""
    lowered = (name or "").translate(_ASCII_UPPER)
    chars = []
    for ch in lowered:
        if ch in " \t\n\r\v\f":
            chars.append("_")
        elif ch in _ALLOWED:
            chars.append(ch)
    slug = "".join(chars)
    if not slug:
        raise InvalidIdentifier(name)
    return slug


def is_valid_id(value: str) -> bool:
    return bool(value) and all(ch in _ALLOWED for ch in value)


__all__ = ["derive_id", "is_valid_id"]
