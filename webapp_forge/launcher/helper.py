"""Install the shared ``webapp-run`` helper and maintain its browser policy.

The helper program itself never changes with configuration: the installed
file is a constant shim into ``webapp_forge.runner``. The browser policy is
data (``helper-policy.json``) that the helper reads each time it starts.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from webapp_forge.config import ResolvedConfig
from webapp_forge.contracts.launcher import HelperPolicy
from webapp_forge.errors import NoBrowserFound
from webapp_forge.launcher.browser import BrowserChoice, resolve_browser
from webapp_forge.utils.fs import atomic_write_text
from webapp_forge.utils.time_utils import now_iso_utc

logger = logging.getLogger(__name__)

SHIM_TEMPLATE = """#!{python}
# webapp-run: opens a URL as a web-app window.
# Browser policy is read at launch from helper-policy.json in the webapp-forge config dir.
from webapp_forge.runner import main

raise SystemExit(main())
"""


@dataclass
class HelperInstall:
    path: Path
    policy: HelperPolicy
    shim_written: bool
    policy_written: bool
    browser: Optional[BrowserChoice] = None


def shim_text(python: Optional[str] = None) -> str:
    return SHIM_TEMPLATE.format(python=python or sys.executable)


def policy_from_config(config: ResolvedConfig) -> HelperPolicy:
    return HelperPolicy(
        browser_command=config.browser_command,
        detection_method=config.detection_method,
        fallbacks=list(config.fallbacks),
        wayland_mode=config.wayland_mode,
        written_at=now_iso_utc(),
    )


def read_policy(path: Path) -> Optional[HelperPolicy]:
    path = Path(path)
    if not path.is_file():
        return None
    try:
        return HelperPolicy.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValueError, ValidationError) as exc:
        logger.warning("Ignoring unreadable helper policy %s: %s", path, exc)
        return None


def write_policy(path: Path, policy: HelperPolicy) -> Path:
    return atomic_write_text(Path(path), policy.model_dump_json(indent=2) + "\n")


def ensure_shim(path: Path, python: Optional[str] = None) -> bool:
    """Write the shim when missing or different; return True when written."""
    path = Path(path)
    wanted = shim_text(python)
    try:
        if path.is_file() and path.read_text(encoding="utf-8") == wanted:
            return False
    except (OSError, UnicodeDecodeError):
        pass
    atomic_write_text(path, wanted, mode=0o755)
    return True


def ensure_helper(config: ResolvedConfig, python: Optional[str] = None, resolve: bool = True) -> HelperInstall:
    """
    Make sure the helper exists and has a policy.

    The policy is rewritten when it is missing or when the active app carries
    its own ``browser.command``; otherwise the existing one is reused as-is.
    """
    shim_written = ensure_shim(config.helper_path, python=python)
    if shim_written:
        logger.info("Installed helper: %s", config.helper_path)

    policy_path = config.helper_policy_path
    policy = read_policy(policy_path)
    policy_written = False
    if policy is None or config.app_browser_override:
        if config.app_browser_override:
            logger.info("Per-app browser override detected, updating helper policy: %s", config.app_browser_override)
        policy = policy_from_config(config)
        write_policy(policy_path, policy)
        policy_written = True

    install = HelperInstall(
        path=config.helper_path,
        policy=policy,
        shim_written=shim_written,
        policy_written=policy_written,
    )
    if resolve:
        try:
            install.browser = resolve_browser(
                configured=policy.browser_command,
                detection_method=policy.detection_method,
                fallbacks=policy.fallbacks,
            )
            logger.info("Launchers will currently open with %s (%s)", install.browser.command, install.browser.source)
        except NoBrowserFound:
            logger.warning("No browser found right now; webapp-run will retry detection at launch time")
    return install


__all__ = ["HelperInstall", "ensure_helper", "ensure_shim", "policy_from_config", "read_policy", "shim_text", "write_policy"]
