"""
Browser resolution for web-app launchers.

Tiers, first hit wins:
1. explicit override (CLI ``--browser``), must be installed
2. configured ``browser.command``, must be installed
3. the desktop's default browser, looked up per ``detection_method``
4. the ordered fallback list
5. ``xdg-open`` as the universal opener

An override or configured command that is not installed is discarded with a
warning rather than failing the run.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Sequence

from webapp_forge.errors import NoBrowserFound
from webapp_forge.launcher.desktop_entry import read_desktop_file, split_exec

logger = logging.getLogger(__name__)

QUERY_TIMEOUT = 5.0
URL_OPENER = "xdg-open"

CHROMIUM_MARKERS = ("chromium", "chrome", "brave", "vivaldi", "microsoft-edge", "msedge", "opera", "thorium")
FIREFOX_MARKERS = ("firefox", "librewolf", "waterfox", "floorp", "zen-browser")
FIREFOX_NAMES = frozenset({"zen"})
QT_MARKERS = ("falkon", "konqueror", "qutebrowser")

XDG_SETTINGS_QUERY = ["xdg-settings", "get", "default-web-browser"]
XDG_MIME_QUERY = ["xdg-mime", "query", "default", "x-scheme-handler/http"]

_LOOKUP_ORDER = {
    "auto": (XDG_SETTINGS_QUERY, XDG_MIME_QUERY),
    "xdg-settings": (XDG_SETTINGS_QUERY, XDG_MIME_QUERY),
    "desktop-file": (XDG_MIME_QUERY, XDG_SETTINGS_QUERY),
}


class BrowserFamily(str, Enum):
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    QT = "qt"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class BrowserChoice:
    command: str
    family: BrowserFamily
    source: str

    @property
    def supports_app_mode(self) -> bool:
        return self.family is BrowserFamily.CHROMIUM


def browser_family(command: str) -> BrowserFamily:
    name = os.path.basename(command or "").lower()
    if any(marker in name for marker in CHROMIUM_MARKERS):
        return BrowserFamily.CHROMIUM
    if name in FIREFOX_NAMES or any(marker in name for marker in FIREFOX_MARKERS):
        return BrowserFamily.FIREFOX
    if any(marker in name for marker in QT_MARKERS):
        return BrowserFamily.QT
    return BrowserFamily.UNKNOWN


def supports_app_mode(command: str) -> bool:
    return browser_family(command) is BrowserFamily.CHROMIUM


def is_installed(command: Optional[str]) -> bool:
    if not command:
        return False
    if os.path.isabs(command):
        return os.path.isfile(command) and os.access(command, os.X_OK)
    return shutil.which(command) is not None


def _run_query(cmd: Sequence[str]) -> Optional[str]:
    if shutil.which(cmd[0]) is None:
        return None
    try:
        completed = subprocess.run(
            list(cmd),
            capture_output=True,
            check=False,
            text=True,
            timeout=QUERY_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.info("%s failed: %s", cmd[0], exc)
        return None
    if completed.returncode != 0:
        return None
    value = (completed.stdout or "").strip()
    return value or None


def application_dirs(env: Optional[Mapping[str, str]] = None) -> List[Path]:
    env = os.environ if env is None else env
    data_home = env.get("XDG_DATA_HOME") or os.path.join(env.get("HOME") or str(Path.home()), ".local", "share")
    dirs = [Path(data_home) / "applications"]
    data_dirs = env.get("XDG_DATA_DIRS") or "/usr/local/share:/usr/share"
    for entry in data_dirs.split(":"):
        if entry:
            dirs.append(Path(entry) / "applications")
    return dirs


def command_from_desktop_id(desktop_id: str, search_dirs: Iterable[Path]) -> Optional[str]:
    """Map a desktop id like ``firefox.desktop`` to an installed executable."""
    stem = desktop_id.strip()
    if stem.endswith(".desktop"):
        stem = stem[: -len(".desktop")]
    if not stem:
        return None
    for directory in search_dirs:
        candidate = Path(directory) / f"{stem}.desktop"
        if not candidate.is_file():
            continue
        tokens = split_exec(read_desktop_file(candidate).get("Exec", ""))
        if not tokens:
            return None
        program = tokens[0]
        if is_installed(program):
            return program
        return None
    return None


def lookup_default_browser(detection_method: str = "auto", env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    dirs = application_dirs(env)
    for query in _LOOKUP_ORDER.get(detection_method, _LOOKUP_ORDER["auto"]):
        desktop_id = _run_query(query)
        if not desktop_id:
            continue
        command = command_from_desktop_id(desktop_id, dirs)
        if command:
            logger.info("Default browser %s via %s", command, query[0])
            return command
    return None


def resolve_browser(
    explicit: Optional[str] = None,
    configured: Optional[str] = None,
    detection_method: str = "auto",
    fallbacks: Sequence[str] = (),
    env: Optional[Mapping[str, str]] = None,
) -> BrowserChoice:
    """Walk the resolution tiers; raise NoBrowserFound when all are exhausted."""
    if explicit:
        if is_installed(explicit):
            return BrowserChoice(explicit, browser_family(explicit), "override")
        logger.warning("Specified browser not found: %s (ignoring override)", explicit)

    if configured:
        if is_installed(configured):
            return BrowserChoice(configured, browser_family(configured), "config")
        logger.warning("Configured browser not found: %s (will use auto-detection)", configured)

    detected = lookup_default_browser(detection_method, env=env)
    if detected:
        return BrowserChoice(detected, browser_family(detected), "desktop-default")

    for candidate in fallbacks:
        candidate = candidate.strip()
        if candidate and is_installed(candidate):
            return BrowserChoice(candidate, browser_family(candidate), "fallback")

    if is_installed(URL_OPENER):
        return BrowserChoice(URL_OPENER, BrowserFamily.UNKNOWN, "url-opener")

    raise NoBrowserFound()


__all__ = [
    "BrowserChoice",
    "BrowserFamily",
    "application_dirs",
    "browser_family",
    "command_from_desktop_id",
    "is_installed",
    "lookup_default_browser",
    "resolve_browser",
    "supports_app_mode",
]
