"""Icon acquisition: local copy or HTTP download, normalised to a PNG on disk."""

from __future__ import annotations

import io
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Optional

import httpx
from PIL import Image, UnidentifiedImageError

from webapp_forge.errors import IconAcquisitionFailure
from webapp_forge.utils.fs import atomic_write_bytes, is_nonempty_file

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 20.0
CONVERT_TIMEOUT = 30.0
USER_AGENT = "webapp-forge/1.0"
ICON_MODE = 0o644


def _svg_commands(source: Path, dest: Path, size: int):
    return (
        ["inkscape", str(source), "--export-type=png", f"--export-filename={dest}", f"--export-width={size}"],
        ["rsvg-convert", "-w", str(size), "-o", str(dest), str(source)],
        ["convert", "-background", "none", "-resize", f"{size}x{size}", str(source), str(dest)],
    )


def is_remote(source: str) -> bool:
    lowered = source.lower()
    return lowered.startswith("http://") or lowered.startswith("https://")


def looks_like_svg(data: bytes, name: str = "") -> bool:
    if name.lower().endswith(".svg"):
        return True
    head = data[:512].lstrip().lower()
    return head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in data[:2048].lower())


def _same_file(a: Path, b: Path) -> bool:
    try:
        return a.exists() and b.exists() and os.path.samefile(a, b)
    except OSError:
        return False


def download(url: str, timeout: float = DOWNLOAD_TIMEOUT) -> bytes:
    """Single GET with redirects followed; any failure is final."""
    try:
        with httpx.Client(follow_redirects=True, timeout=timeout) as client:
            response = client.get(url, headers={"User-Agent": USER_AGENT})
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code if exc.response is not None else "unknown"
                raise IconAcquisitionFailure(f"failed to download icon from: {url} (HTTP {status})") from exc
            return response.content
    except httpx.TimeoutException as exc:
        raise IconAcquisitionFailure(f"timed out downloading icon from: {url}") from exc
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise IconAcquisitionFailure(f"failed to download icon from: {url} ({exc})") from exc


def convert_svg(data: bytes, size: int) -> Optional[bytes]:
    """Rasterise SVG with the first available converter; None when none worked."""
    with tempfile.TemporaryDirectory(prefix="webapp-icon-") as tmp:
        source = Path(tmp) / "icon.svg"
        dest = Path(tmp) / "icon.png"
        source.write_bytes(data)
        for cmd in _svg_commands(source, dest, size):
            if shutil.which(cmd[0]) is None:
                continue
            try:
                completed = subprocess.run(cmd, capture_output=True, check=False, timeout=CONVERT_TIMEOUT)
            except (OSError, subprocess.TimeoutExpired) as exc:
                logger.info("%s failed: %s", cmd[0], exc)
                continue
            if completed.returncode == 0 and is_nonempty_file(dest):
                logger.info("Converted SVG to PNG using %s", cmd[0])
                return dest.read_bytes()
    return None


def normalize_image(data: bytes, icon_size: int) -> Optional[bytes]:
    """PNG bytes no larger than ``icon_size`` on either edge, or None if not an image."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            logger.info("Icon type: %s %sx%s", img.format, img.width, img.height)
            image = img.convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError):
        return None
    if max(image.size) > icon_size:
        image.thumbnail((icon_size, icon_size), Image.Resampling.LANCZOS)
    out = io.BytesIO()
    image.save(out, format="PNG")
    return out.getvalue()


def _read_source(source: str) -> bytes:
    local = Path(os.path.expanduser(source))
    if local.is_file():
        logger.info("Using local icon file: %s", local)
        try:
            return local.read_bytes()
        except OSError as exc:
            raise IconAcquisitionFailure(f"failed to copy icon: {local} ({exc})") from exc
    if not is_remote(source):
        logger.warning("Icon source doesn't look like a URL or file path: %s", source)
        logger.warning("Attempting to download anyway...")
    logger.info("Downloading icon from: %s", source)
    return download(source)


def acquire_icon(source: str, dest: Path, icon_size: int = 256) -> Path:
    """
    Fetch ``source`` (path or URL) into ``dest``.

    Raises IconAcquisitionFailure when the source cannot be read or the result
    is empty. Content that is not a recognisable image is still written, with
    a warning.
    """
    dest = Path(dest)
    source = (source or "").strip()
    if not source:
        raise IconAcquisitionFailure("icon source is empty")

    if _same_file(Path(os.path.expanduser(source)), dest):
        if not is_nonempty_file(dest):
            raise IconAcquisitionFailure(f"icon file is empty: {dest}")
        logger.info("Icon already in place: %s", dest)
        return dest

    data = _read_source(source)
    if not data:
        raise IconAcquisitionFailure(f"icon is empty: {source}")

    if looks_like_svg(data, source):
        logger.info("SVG icon detected, attempting conversion...")
        converted = convert_svg(data, icon_size)
        if converted is None:
            logger.warning("Could not convert SVG, copying as-is (may not work in all desktops)")
        else:
            data = converted

    normalized = normalize_image(data, icon_size)
    if normalized is None:
        if not looks_like_svg(data):
            logger.warning("Icon doesn't appear to be an image; it may not display correctly: %s", source)
    else:
        data = normalized

    atomic_write_bytes(dest, data, mode=ICON_MODE)
    if not is_nonempty_file(dest):
        raise IconAcquisitionFailure(f"icon file is empty after copy: {dest}")
    return dest


__all__ = ["acquire_icon", "convert_svg", "download", "is_remote", "looks_like_svg", "normalize_image"]
