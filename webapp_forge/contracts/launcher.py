from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field


class Provenance(str, Enum):
    """How confident we are that a discovered launcher was created by us."""

    OWNED = "owned"
    LEGACY = "legacy"
    CANDIDATE = "candidate"
    FOREIGN = "foreign"

    @property
    def needs_confirmation(self) -> bool:
        return self is not Provenance.OWNED


class ExecSpec(BaseModel):
    """Structured form of a desktop entry ``Exec=`` value."""

    program: Optional[str] = None
    tokens: List[str] = Field(default_factory=list)
    profile: Optional[str] = None
    wmclass: Optional[str] = None
    browser: Optional[str] = None
    url: Optional[str] = None
    app_url: Optional[str] = None
    extra: List[str] = Field(default_factory=list)

    @property
    def target_url(self) -> Optional[str]:
        return self.url or self.app_url


class LauncherDescriptor(BaseModel):
    id: str
    name: str
    url: Optional[str] = None
    icon_path: Optional[str] = None
    exec_command: str = ""
    window_class: Optional[str] = None
    comment: Optional[str] = None
    path: Optional[Path] = None


class LauncherPlan(BaseModel):
    """Every artifact location and value a create/update will write."""

    id: str
    name: str
    url: str
    desktop_path: Path
    icon_path: Path
    profile_dir: Path
    window_class: str
    helper_path: Path
    exec_command: str
    icon_source: Optional[str] = None
    reuse_icon: bool = False
    comment: Optional[str] = None


class LauncherSummary(BaseModel):
    id: str
    name: str
    provenance: Provenance
    status: str
    path: Path
    url: Optional[str] = None


class LauncherInfo(BaseModel):
    descriptor: LauncherDescriptor
    provenance: Provenance
    profile_dir: Optional[Path] = None
    icon_present: bool = False
    profile_present: bool = False
    running: bool = False


class ProfileInfo(BaseModel):
    id: str
    path: Path
    app_name: Optional[str] = None
    size_bytes: int = 0

    @property
    def orphaned(self) -> bool:
        return self.app_name is None


class HelperPolicy(BaseModel):
    """Browser policy read by ``webapp-run`` at launch time."""

    browser_command: Optional[str] = None
    detection_method: str = "auto"
    fallbacks: List[str] = Field(default_factory=lambda: ["chromium", "firefox", "google-chrome"])
    wayland_mode: str = "auto"
    written_at: Optional[str] = None


class ExportRecord(BaseModel):
    app_id: str
    name: str
    url: Optional[str] = None
    icon: Optional[str] = None
    exported_at: str
    version: str = "1.0"


class RemovalPlan(BaseModel):
    """What a delete touches; the ``*_removed`` flags are filled in after it ran."""

    id: str
    name: str
    provenance: Provenance
    desktop_path: Path
    icon_path: Optional[Path] = None
    profile_dir: Optional[Path] = None
    desktop_removed: bool = False
    icon_removed: bool = False
    profile_removed: bool = False


class ExportResult(BaseModel):
    record: ExportRecord
    record_path: Path
    config_path: Optional[Path] = None


class BackupSummary(BaseModel):
    path: Path
    descriptor_count: int = 0
    config_count: int = 0


class LaunchCheck(BaseModel):
    id: str
    exec_command: str
    argv: List[str] = Field(default_factory=list)
    profile_dir: Optional[Path] = None
    already_running: bool = False
    pid: Optional[int] = None


__all__ = [
    "BackupSummary",
    "ExecSpec",
    "ExportRecord",
    "ExportResult",
    "HelperPolicy",
    "LaunchCheck",
    "LauncherDescriptor",
    "LauncherInfo",
    "LauncherPlan",
    "LauncherSummary",
    "ProfileInfo",
    "Provenance",
    "RemovalPlan",
]
