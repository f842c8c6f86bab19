"""Whole-file replacement helpers.

Readers of a file written here see either the previous or the new content,
never a mix: data goes to a sibling temp file which is then renamed over the
target.
"""

from __future__ import annotations

import os
import uuid
from pathlib import Path
from typing import Optional


def atomic_write_bytes(path: Path, data: bytes, mode: Optional[int] = None) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp.{uuid.uuid4().hex}")
    try:
        tmp_path.write_bytes(data)
        if mode is not None:
            os.chmod(tmp_path, mode)
        tmp_path.replace(path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return path


def atomic_write_text(path: Path, text: str, mode: Optional[int] = None) -> Path:
    return atomic_write_bytes(path, text.encode("utf-8"), mode=mode)


def is_nonempty_file(path: Optional[Path | str]) -> bool:
    """A zero-byte file counts as missing (partial writes from killed runs)."""
    if not path:
        return False
    try:
        p = Path(path)
        return p.is_file() and p.stat().st_size > 0
    except OSError:
        return False


def directory_size(path: Path) -> int:
    total = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for fname in filenames:
            try:
                total += os.lstat(os.path.join(dirpath, fname)).st_size
            except OSError:
                continue
    return total


def human_size(num_bytes: int) -> str:
    size = float(num_bytes)
    for unit in ("B", "K", "M", "G"):
        if size < 1024 or unit == "G":
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}G"


__all__ = ["atomic_write_bytes", "atomic_write_text", "is_nonempty_file", "directory_size", "human_size"]
