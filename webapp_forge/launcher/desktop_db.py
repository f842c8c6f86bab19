"""Best-effort desktop database and icon cache refresh. Nothing here raises."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

REFRESH_TIMEOUT = 15.0


def _run_quiet(cmd: Sequence[str]) -> Optional[int]:
    """Return the exit status, or None when the tool is absent or could not run."""
    if shutil.which(cmd[0]) is None:
        return None
    try:
        completed = subprocess.run(list(cmd), capture_output=True, check=False, timeout=REFRESH_TIMEOUT)
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.info("%s failed: %s", cmd[0], exc)
        return None
    return completed.returncode


def validate_entry(desktop_path: Path) -> bool:
    status = _run_quiet(["desktop-file-validate", str(desktop_path)])
    if status not in (None, 0):
        logger.warning("Desktop file validation failed (may still work): %s", desktop_path)
        return False
    return True


def refresh(desktop_dir: Path, icon_dir: Optional[Path] = None) -> List[str]:
    """Refresh caches after descriptors or icons changed; returns the tools that ran."""
    ran: List[str] = []
    if _run_quiet(["update-desktop-database", str(desktop_dir)]) is not None:
        ran.append("update-desktop-database")
    if icon_dir is not None:
        # refreshed on the icon dir's parent
        cache_dir = Path(icon_dir).parent
        if _run_quiet(["gtk-update-icon-cache", "-q", str(cache_dir)]) is not None:
            ran.append("gtk-update-icon-cache")
    return ran


__all__ = ["refresh", "validate_entry"]
