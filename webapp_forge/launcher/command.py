"""Build the argument vector that opens a URL as a web-app window."""

from __future__ import annotations

import shutil
from typing import List, Optional, Sequence

from webapp_forge.errors import NoUrlProvided

SESSION_WRAPPER = "uwsm"
DETACH_WRAPPER = "setsid"


def build_browser_argv(
    browser: str,
    app_mode: bool,
    url: str,
    profile: Optional[str] = None,
    wmclass: Optional[str] = None,
    extra: Sequence[str] = (),
) -> List[str]:
    """
    Chromium-family browsers get a chromeless ``--app`` window with its own
    class and user-data dir; anything else just receives the URL.
    """
    if not url:
        raise NoUrlProvided()
    if app_mode:
        argv = [browser, f"--app={url}"]
        if wmclass:
            argv.append(f"--class={wmclass}")
        if profile:
            argv.append(f"--user-data-dir={profile}")
    else:
        argv = [browser, url]
    argv.extend(extra)
    return argv


def wrap_for_session(argv: Sequence[str]) -> List[str]:
    """Prefer ``uwsm app --`` (detached via setsid when present), then plain ``setsid``."""
    has_setsid = shutil.which(DETACH_WRAPPER) is not None
    if shutil.which(SESSION_WRAPPER) is not None:
        wrapped = [SESSION_WRAPPER, "app", "--", *argv]
        return [DETACH_WRAPPER, *wrapped] if has_setsid else wrapped
    if has_setsid:
        return [DETACH_WRAPPER, *argv]
    return list(argv)


__all__ = ["build_browser_argv", "wrap_for_session"]
