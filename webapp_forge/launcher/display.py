"""Display-server detection and the per-browser environment overlay."""

from __future__ import annotations

import os
from typing import Dict, Iterable, Mapping, Optional

import psutil

from webapp_forge.launcher.browser import BrowserFamily, browser_family


WAYLAND = "wayland"
X11 = "x11"

_COMPOSITOR_PROCESSES = {"sway": "sway", "Hyprland": "hyprland", "kwin_wayland": "kde", "gnome-shell": "gnome"}


def detect_display_server(mode: str = "auto", env: Optional[Mapping[str, str]] = None) -> str:
    """Return ``wayland`` or ``x11``; a forced mode wins outright."""
    env = os.environ if env is None else env
    if mode == "force-wayland":
        return WAYLAND
    if mode == "force-x11":
        return X11

    if env.get("WAYLAND_DISPLAY"):
        return WAYLAND
    if (env.get("XDG_SESSION_TYPE") or "").lower() == WAYLAND:
        return WAYLAND

    display = env.get("DISPLAY") or ""
    if display and not display.startswith("wayland-"):
        return X11
    return WAYLAND if not display else X11


def build_env_overlay(
    browser: str,
    display_server: str,
    env: Optional[Mapping[str, str]] = None,
    uid: Optional[int] = None,
) -> Dict[str, str]:
    """Variables to add for ``browser``; never includes a key already set in ``env``."""
    env = os.environ if env is None else env
    wanted: Dict[str, str] = {}
    family = browser_family(browser)

    if display_server == WAYLAND:
        if family is BrowserFamily.FIREFOX:
            wanted["MOZ_ENABLE_WAYLAND"] = "1"
            wanted["MOZ_DBUS_REMOTE"] = "1"
        elif family is BrowserFamily.CHROMIUM:
            wanted["GDK_BACKEND"] = "wayland"
            wanted["WAYLAND_DISPLAY"] = "wayland-0"
        elif family is BrowserFamily.QT:
            wanted["QT_QPA_PLATFORM"] = "wayland;xcb"

    wanted["XDG_RUNTIME_DIR"] = f"/run/user/{os.getuid() if uid is None else uid}"
    return {key: value for key, value in wanted.items() if not env.get(key)}


def apply_overlay(env: Mapping[str, str], overlay: Mapping[str, str]) -> Dict[str, str]:
    merged = dict(env)
    merged.update(overlay)
    return merged


def _running_process_names() -> Iterable[str]:
    names = []
    for proc in psutil.process_iter(["name"]):
        try:
            names.append(proc.info.get("name") or "")
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return names


def detect_compositor(env: Optional[Mapping[str, str]] = None, check_processes: bool = True) -> Optional[str]:
    """Best-effort compositor name, used only for diagnostics."""
    env = os.environ if env is None else env
    if env.get("SWAYSOCK"):
        return "sway"
    if env.get("HYPRLAND_INSTANCE_SIGNATURE"):
        return "hyprland"
    desktop = (env.get("XDG_CURRENT_DESKTOP") or "").upper()
    wayland_session = (env.get("XDG_SESSION_TYPE") or "").lower() == WAYLAND
    if wayland_session and "KDE" in desktop:
        return "kde"
    if wayland_session and "GNOME" in desktop:
        return "gnome"
    if check_processes:
        for name in _running_process_names():
            if name in _COMPOSITOR_PROCESSES:
                return _COMPOSITOR_PROCESSES[name]
    return None


__all__ = ["WAYLAND", "X11", "apply_overlay", "build_env_overlay", "detect_compositor", "detect_display_server"]
