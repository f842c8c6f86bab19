"""Configuration layers and the per-invocation resolved settings.

Precedence for any ``section.key``: environment override (``WEBAPP_SECTION_KEY``)
> per-app ini (only when one was loaded for the active id) > global ini >
built-in default. Empty values count as unset in every tier. The ``paths``
section skips the per-app tier.
"""

from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

ENV_PREFIX = "WEBAPP_"
APP_DIR_NAME = "webapp-forge"
HELPER_NAME = "webapp-run"

DetectionMethod = Literal["auto", "xdg-settings", "desktop-file"]
WaylandMode = Literal["auto", "force-wayland", "force-x11"]

DETECTION_METHODS: Tuple[str, ...] = ("auto", "xdg-settings", "desktop-file")
_WAYLAND_MODE_ALIASES: Dict[str, str] = {
    "auto": "auto",
    "force-wayland": "force-wayland",
    "force": "force-wayland",
    "wayland": "force-wayland",
    "force-x11": "force-x11",
    "x11": "force-x11",
}

DEFAULT_FALLBACKS = "chromium,firefox,google-chrome"
DEFAULT_ICON_SIZE = 256
DEFAULT_WMCLASS_PREFIX = "webapp-"

ConfigMap = Dict[str, Dict[str, str]]

DEFAULT_CONFIG_TEXT = """\
[browser]
# Explicit browser command (e.g. "firefox", "chromium", "google-chrome").
# Leave empty to use the desktop's default browser.
command=

# Browser detection method: auto, xdg-settings, desktop-file
detection_method=auto

# Fallback browsers to try, in order (comma-separated)
fallbacks=chromium,firefox,google-chrome

# Display server: auto, force-wayland, force-x11
wayland_mode=auto

[paths]
# Desktop file directory (default: $XDG_DATA_HOME/applications)
desktop_dir=

# Icon directory (default: $XDG_DATA_HOME/icons/hicolor/256x256/apps)
icon_dir=

# Profile directory base (default: $XDG_DATA_HOME/webapps)
profile_dir=

# Directory for the webapp-run helper (default: ~/.local/bin)
bin_dir=

# Export and backup targets (default: $XDG_DATA_HOME/webapp-forge/{exports,backups})
export_dir=
backup_dir=

[app]
# Maximum icon edge in pixels; larger raster icons are downscaled
icon_size=256

# Window class prefix
wmclass_prefix=webapp-

# Additional browser flags appended to every launcher (space-separated)
extra_flags=
"""


def parse_config_text(text: str) -> ConfigMap:
    """Parse ini-style text into ``{section: {key: value}}``.

    Keys seen before any section header land in the ``""`` section. Lines that
    are neither headers nor ``key=value`` pairs are skipped.
    """
    values: ConfigMap = {}
    section = ""
    for raw in text.splitlines():
        line = raw.split("#", 1)[0].strip()
        if not line:
            continue
        if line.startswith("[") and line.endswith("]") and len(line) > 2:
            section = line[1:-1].strip()
            continue
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        if not key:
            continue
        values.setdefault(section, {})[key] = value.strip()
    return values


def load_config_file(path: Path) -> Optional[ConfigMap]:
    """Return the parsed file, or None when it is missing or unreadable."""
    path = Path(path)
    if not path.is_file():
        return None
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Config file not readable: %s (%s)", path, exc)
        return None
    return parse_config_text(text)


def env_key(section: str, key: str) -> str:
    joined = f"{section}_{key}" if section else key
    return ENV_PREFIX + joined.upper().replace("-", "_").replace(".", "_")


def _home(env: Mapping[str, str]) -> Path:
    home = env.get("HOME")
    return Path(home) if home else Path.home()


def xdg_dir(env: Mapping[str, str], var: str, fallback: str) -> Path:
    value = (env.get(var) or "").strip()
    if value and os.path.isabs(value):
        return Path(value)
    return _home(env) / fallback


def config_dir(env: Optional[Mapping[str, str]] = None) -> Path:
    env = os.environ if env is None else env
    return xdg_dir(env, "XDG_CONFIG_HOME", ".config") / APP_DIR_NAME


def global_config_path(env: Optional[Mapping[str, str]] = None) -> Path:
    return config_dir(env) / "config.ini"


def app_config_path(app_id: str, env: Optional[Mapping[str, str]] = None) -> Path:
    return config_dir(env) / "apps" / f"{app_id}.ini"


@dataclass(frozen=True)
class ConfigLayers:
    """The raw tiers for one invocation; ``app_values`` is None when no per-app file was loaded."""

    env: Mapping[str, str]
    global_values: ConfigMap = field(default_factory=dict)
    app_values: Optional[ConfigMap] = None
    app_id: Optional[str] = None

    @property
    def app_loaded(self) -> bool:
        return self.app_values is not None

    def resolve(self, section: str, key: str, default: Optional[str] = None) -> Optional[str]:
        override = self.env.get(env_key(section, key))
        if override:
            return override
        if self.app_values is not None:
            value = self.app_values.get(section, {}).get(key)
            if value:
                return value
        value = self.global_values.get(section, {}).get(key)
        if value:
            return value
        return default

    def resolve_shared(self, section: str, key: str, default: Optional[str] = None) -> Optional[str]:
        """Like ``resolve`` but without the per-app tier."""
        override = self.env.get(env_key(section, key))
        if override:
            return override
        return self.global_values.get(section, {}).get(key) or default

    def app_value(self, section: str, key: str) -> Optional[str]:
        if self.app_values is None:
            return None
        return self.app_values.get(section, {}).get(key) or None


def load_layers(app_id: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> ConfigLayers:
    env = dict(os.environ if env is None else env)
    global_values = load_config_file(global_config_path(env)) or {}
    app_values = None
    if app_id:
        app_values = load_config_file(app_config_path(app_id, env))
    return ConfigLayers(env=env, global_values=global_values, app_values=app_values, app_id=app_id)


class ResolvedConfig(BaseModel):
    """Immutable settings handed to every component that needs configuration."""

    model_config = ConfigDict(frozen=True)

    app_id: Optional[str] = None
    app_config_loaded: bool = False
    browser_command: Optional[str] = None
    app_browser_override: Optional[str] = None
    detection_method: DetectionMethod = "auto"
    fallbacks: List[str] = []
    wayland_mode: WaylandMode = "auto"
    config_dir: Path
    desktop_dir: Path
    icon_dir: Path
    profile_dir: Path
    bin_dir: Path
    export_dir: Path
    backup_dir: Path
    icon_size: int = DEFAULT_ICON_SIZE
    wmclass_prefix: str = DEFAULT_WMCLASS_PREFIX
    extra_flags: List[str] = []

    @property
    def global_config_path(self) -> Path:
        return self.config_dir / "config.ini"

    @property
    def apps_config_dir(self) -> Path:
        return self.config_dir / "apps"

    @property
    def helper_path(self) -> Path:
        return self.bin_dir / HELPER_NAME

    @property
    def helper_policy_path(self) -> Path:
        return self.config_dir / "helper-policy.json"

    @property
    def legacy_icon_dir(self) -> Path:
        return self.desktop_dir / "icons"


def parse_fallbacks(raw: Optional[str]) -> List[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


def normalize_detection_method(raw: Optional[str]) -> str:
    value = (raw or "auto").strip().lower()
    if value not in DETECTION_METHODS:
        logger.warning("Invalid detection_method: %s, using 'auto'", raw)
        return "auto"
    return value


def normalize_wayland_mode(raw: Optional[str]) -> str:
    value = (raw or "auto").strip().lower()
    if value not in _WAYLAND_MODE_ALIASES:
        logger.warning("Invalid wayland_mode: %s, using 'auto'", raw)
        return "auto"
    return _WAYLAND_MODE_ALIASES[value]


def _parse_icon_size(raw: Optional[str]) -> int:
    try:
        size = int(str(raw).strip())
    except (TypeError, ValueError):
        logger.warning("Invalid icon_size: %s, using %s", raw, DEFAULT_ICON_SIZE)
        return DEFAULT_ICON_SIZE
    if size < 16:
        logger.warning("icon_size %s is too small, using %s", size, DEFAULT_ICON_SIZE)
        return DEFAULT_ICON_SIZE
    return size


def _split_flags(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        return shlex.split(raw)
    except ValueError:
        logger.warning("Could not parse extra_flags %r; splitting on whitespace", raw)
        return raw.split()


def _path_setting(layers: ConfigLayers, key: str, default: Path) -> Path:
    # paths.* come from the environment and config.ini only.
    if layers.app_value("paths", key):
        logger.warning("paths.%s in %s.ini is ignored; set it in config.ini", key, layers.app_id)
    raw = layers.resolve_shared("paths", key)
    if not raw:
        return default
    path = Path(os.path.expandvars(raw)).expanduser()
    if not path.is_absolute():
        logger.warning("paths.%s should be absolute: %s", key, raw)
    return path


def build_resolved_config(layers: ConfigLayers) -> ResolvedConfig:
    env = layers.env
    data_dir = xdg_dir(env, "XDG_DATA_HOME", ".local/share")
    return ResolvedConfig(
        app_id=layers.app_id,
        app_config_loaded=layers.app_loaded,
        browser_command=layers.resolve("browser", "command"),
        app_browser_override=layers.app_value("browser", "command"),
        detection_method=normalize_detection_method(layers.resolve("browser", "detection_method", "auto")),
        fallbacks=parse_fallbacks(layers.resolve("browser", "fallbacks", DEFAULT_FALLBACKS)),
        wayland_mode=normalize_wayland_mode(layers.resolve("browser", "wayland_mode", "auto")),
        config_dir=config_dir(env),
        desktop_dir=_path_setting(layers, "desktop_dir", data_dir / "applications"),
        icon_dir=_path_setting(layers, "icon_dir", data_dir / "icons" / "hicolor" / "256x256" / "apps"),
        profile_dir=_path_setting(layers, "profile_dir", data_dir / "webapps"),
        bin_dir=_path_setting(layers, "bin_dir", _home(env) / ".local" / "bin"),
        export_dir=_path_setting(layers, "export_dir", data_dir / APP_DIR_NAME / "exports"),
        backup_dir=_path_setting(layers, "backup_dir", data_dir / APP_DIR_NAME / "backups"),
        icon_size=_parse_icon_size(layers.resolve("app", "icon_size", str(DEFAULT_ICON_SIZE))),
        wmclass_prefix=layers.resolve("app", "wmclass_prefix", DEFAULT_WMCLASS_PREFIX) or "",
        extra_flags=_split_flags(layers.resolve("app", "extra_flags")),
    )


def load_resolved_config(app_id: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> ResolvedConfig:
    return build_resolved_config(load_layers(app_id=app_id, env=env))


def write_default_config(path: Path) -> bool:
    """Create a commented default config when none exists; never raises."""
    path = Path(path)
    if path.exists():
        return False
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(DEFAULT_CONFIG_TEXT, encoding="utf-8")
        return True
    except OSError as exc:
        logger.warning("Failed to create default config file: %s (%s)", path, exc)
        return False


__all__ = [
    "ENV_PREFIX",
    "HELPER_NAME",
    "ConfigLayers",
    "ResolvedConfig",
    "app_config_path",
    "build_resolved_config",
    "config_dir",
    "env_key",
    "global_config_path",
    "load_config_file",
    "load_layers",
    "load_resolved_config",
    "parse_config_text",
    "write_default_config",
]
