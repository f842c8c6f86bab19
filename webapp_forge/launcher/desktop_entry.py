"""Reading, writing and classifying ``.desktop`` launcher descriptors.

Classification works on the parsed ``Exec=`` structure (program, flags, path
prefixes) rather than on text patterns, and yields one of four buckets:

- owned: some token is the ``webapp-run`` helper
- legacy: an older web-app launcher program, or a bare ``--app=`` invocation
- candidate: icon under a managed icon dir, or a profile flag under the managed profile base
- foreign: anything else
"""

from __future__ import annotations

import logging
import os
import re
import shlex
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from webapp_forge.config import HELPER_NAME
from webapp_forge.contracts.launcher import ExecSpec, LauncherDescriptor, Provenance

logger = logging.getLogger(__name__)

DESKTOP_GROUP = "Desktop Entry"
CATEGORIES = "Network;WebBrowser;Utility;"
LEGACY_PROGRAMS = frozenset({"webapp-launch", "omarchy-launch-webapp"})
PROFILE_FLAGS = frozenset({"--profile", "--profile-dir", "--user-data-dir"})
FIELD_CODES = frozenset({"%f", "%F", "%u", "%U", "%d", "%D", "%n", "%N", "%i", "%c", "%k", "%v", "%m"})
_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


def read_desktop_file(path: Path) -> Dict[str, str]:
    """Return the key/value pairs of the ``[Desktop Entry]`` group (first value wins)."""
    values: Dict[str, str] = {}
    in_group = False
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as fh:
            for raw in fh:
                line = raw.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("[") and line.endswith("]"):
                    if in_group:
                        break
                    in_group = line[1:-1] == DESKTOP_GROUP
                    continue
                if not in_group or "=" not in line:
                    continue
                key, _, value = line.partition("=")
                values.setdefault(key.strip(), value.strip())
    except OSError as exc:
        logger.warning("Could not read desktop file %s: %s", path, exc)
    return values


def _unescape_token(token: str) -> Optional[str]:
    if token in FIELD_CODES:
        return None
    return token.replace("%%", "%")


def split_exec(exec_line: str) -> List[str]:
    try:
        raw_tokens = shlex.split(exec_line or "")
    except ValueError:
        raw_tokens = (exec_line or "").split()
    tokens = []
    for tok in raw_tokens:
        value = _unescape_token(tok)
        if value is not None:
            tokens.append(value)
    return tokens


def parse_exec(exec_line: str) -> ExecSpec:
    tokens = split_exec(exec_line)
    spec = ExecSpec(program=tokens[0] if tokens else None, tokens=tokens)
    i = 1
    while i < len(tokens):
        tok = tokens[i]
        nxt = tokens[i + 1] if i + 1 < len(tokens) else None
        if spec.url is not None:
            spec.extra.append(tok)
        elif tok in PROFILE_FLAGS and nxt is not None:
            spec.profile = nxt
            i += 1
        elif tok == "--wmclass" and nxt is not None:
            spec.wmclass = nxt
            i += 1
        elif tok == "--browser" and nxt is not None:
            spec.browser = nxt
            i += 1
        elif tok.startswith("--user-data-dir=") or tok.startswith("--profile="):
            spec.profile = tok.split("=", 1)[1]
        elif tok.startswith("--class="):
            spec.wmclass = tok.split("=", 1)[1]
        elif tok.startswith("--app="):
            spec.app_url = tok.split("=", 1)[1]
        elif _URL_RE.match(tok):
            spec.url = tok
        i += 1
    return spec


def _escape_exec_value(value: str) -> str:
    escaped = value.replace("\\", "\\\\")
    for ch in ('"', "$", "`"):
        escaped = escaped.replace(ch, "\\" + ch)
    return escaped.replace("%", "%%")


def quote_exec_arg(value: str, force: bool = False) -> str:
    escaped = _escape_exec_value(value)
    if force or not value or any(ch in value for ch in ' \t"\'\\$`;&|<>()'):
        return f'"{escaped}"'
    return escaped


def render_exec(
    helper_path: Path | str,
    url: str,
    profile_dir: Path | str,
    window_class: str,
    extra_flags: Iterable[str] = (),
) -> str:
    parts = [
        quote_exec_arg(str(helper_path)),
        "--profile",
        quote_exec_arg(str(profile_dir), force=True),
        "--wmclass",
        quote_exec_arg(window_class, force=True),
        quote_exec_arg(url, force=True),
    ]
    parts.extend(quote_exec_arg(flag) for flag in extra_flags)
    return " ".join(parts)


def _single_line(value: str) -> str:
    return " ".join((value or "").split())


def render_desktop_entry(
    name: str,
    exec_command: str,
    icon_path: Path | str,
    window_class: str,
    comment: Optional[str] = None,
) -> str:
    name = _single_line(name)
    lines = [
        f"[{DESKTOP_GROUP}]",
        "Version=1.0",
        "Type=Application",
        f"Name={name}",
        f"Comment={_single_line(comment) if comment else name}",
        f"Exec={exec_command}",
        f"Icon={icon_path}",
        "Terminal=false",
        "StartupNotify=true",
        f"Categories={CATEGORIES}",
        f"StartupWMClass={window_class}",
    ]
    return "\n".join(lines) + "\n"


def descriptor_from_file(path: Path) -> LauncherDescriptor:
    path = Path(path)
    values = read_desktop_file(path)
    exec_line = values.get("Exec", "")
    spec = parse_exec(exec_line)
    return LauncherDescriptor(
        id=path.stem,
        name=values.get("Name", ""),
        url=spec.target_url,
        icon_path=values.get("Icon") or None,
        exec_command=exec_line,
        window_class=values.get("StartupWMClass") or spec.wmclass,
        comment=values.get("Comment") or None,
        path=path,
    )


def _is_under(path: Optional[str], base: Optional[Path]) -> bool:
    if not path or base is None:
        return False
    norm_path = os.path.normpath(os.path.expanduser(path))
    norm_base = os.path.normpath(str(base))
    return norm_path == norm_base or norm_path.startswith(norm_base.rstrip(os.sep) + os.sep)


def classify(
    spec: ExecSpec,
    icon_path: Optional[str],
    managed_icon_dirs: Iterable[Path] = (),
    profile_base: Optional[Path] = None,
    helper_name: str = HELPER_NAME,
) -> Provenance:
    basenames = {os.path.basename(tok) for tok in spec.tokens}
    if helper_name in basenames:
        return Provenance.OWNED
    if basenames & LEGACY_PROGRAMS or spec.app_url is not None:
        return Provenance.LEGACY
    if any(_is_under(icon_path, icon_dir) for icon_dir in managed_icon_dirs):
        return Provenance.CANDIDATE
    if spec.profile and _is_under(spec.profile, profile_base):
        return Provenance.CANDIDATE
    return Provenance.FOREIGN


__all__ = [
    "classify",
    "descriptor_from_file",
    "parse_exec",
    "quote_exec_arg",
    "read_desktop_file",
    "render_desktop_entry",
    "render_exec",
    "split_exec",
]
