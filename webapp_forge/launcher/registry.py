"""
Launcher registry: create, update, inspect and remove web-app launchers.

A launcher is the set of artifacts sharing one id: the ``.desktop``
descriptor, the icon, the browser profile directory and the per-app ini.
There is no cross-artifact transaction; within one call the icon is written
before the descriptor and the desktop database refresh comes last.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import psutil

from webapp_forge.config import ResolvedConfig, load_resolved_config
from webapp_forge.contracts.launcher import (
    BackupSummary,
    ExecSpec,
    ExportRecord,
    ExportResult,
    LaunchCheck,
    LauncherDescriptor,
    LauncherInfo,
    LauncherPlan,
    LauncherSummary,
    ProfileInfo,
    Provenance,
    RemovalPlan,
)
from webapp_forge.errors import (
    AlreadyExists,
    AmbiguousMatch,
    ForeignEntryGuard,
    MissingRequiredInput,
    NotFound,
    WebappError,
)
from webapp_forge.launcher import desktop_db
from webapp_forge.launcher.desktop_entry import (
    classify,
    descriptor_from_file,
    parse_exec,
    render_desktop_entry,
    render_exec,
    split_exec,
)
from webapp_forge.launcher.helper import ensure_helper
from webapp_forge.launcher.icons import acquire_icon
from webapp_forge.launcher.identifier import derive_id
from webapp_forge.logging_utils import generate_invocation_id, log_event
from webapp_forge.utils.fs import atomic_write_text, directory_size, is_nonempty_file
from webapp_forge.utils.time_utils import backup_stamp, now_iso_utc

logger = logging.getLogger(__name__)

DESCRIPTOR_MODE = 0o644
STATUS_OK = "OK"
STATUS_MISSING_ICON = "Missing icon"

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_HOST_RE = re.compile(r"^https?://[A-Za-z0-9\[]", re.IGNORECASE)

ConfigLoader = Callable[[Optional[str], Optional[Mapping[str, str]]], ResolvedConfig]


def normalize_url(url: str) -> str:
    """Add ``https://`` when no http(s) scheme is present and strip one trailing slash."""
    url = (url or "").strip()
    if not url:
        raise MissingRequiredInput(["url"])
    if not _SCHEME_RE.match(url):
        logger.warning("URL missing protocol, assuming https://")
        url = f"https://{url}"
    if not _HOST_RE.match(url):
        logger.warning("URL format looks suspicious: %s", url)
    if url.endswith("/"):
        url = url[:-1]
    return url


def profile_in_use(profile_dir: Path | str, exclude_pid: Optional[int] = None) -> bool:
    """True when a running process was started with this profile directory."""
    wanted = os.path.normpath(str(profile_dir))
    markers = {f"--user-data-dir={wanted}", f"--profile={wanted}"}
    exclude_pid = os.getpid() if exclude_pid is None else exclude_pid
    for proc in psutil.process_iter(["pid", "cmdline"]):
        try:
            if proc.info.get("pid") == exclude_pid:
                continue
            cmdline = proc.info.get("cmdline") or []
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
        for idx, arg in enumerate(cmdline):
            if arg in markers:
                return True
            if arg in ("--profile", "--user-data-dir") and idx + 1 < len(cmdline):
                if os.path.normpath(cmdline[idx + 1]) == wanted:
                    return True
    return False


class LauncherRegistry:
    """Operations over the launchers found in ``paths.desktop_dir``."""

    def __init__(
        self,
        config_loader: ConfigLoader = load_resolved_config,
        env: Optional[Mapping[str, str]] = None,
        invocation_id: Optional[str] = None,
    ) -> None:
        self._load_config = config_loader
        self.env = env
        self.config = config_loader(None, env)
        self.invocation_id = invocation_id or generate_invocation_id()

    # ------------------------------------------------------------------ paths
    def config_for(self, app_id: Optional[str]) -> ResolvedConfig:
        return self._load_config(app_id, self.env)

    def desktop_path(self, app_id: str) -> Path:
        return self.config.desktop_dir / f"{app_id}.desktop"

    def _managed_icon_dirs(self) -> Tuple[Path, Path]:
        return (self.config.icon_dir, self.config.legacy_icon_dir)

    def _descriptor_paths(self) -> List[Path]:
        directory = self.config.desktop_dir
        if not directory.is_dir():
            return []
        return sorted(p for p in directory.glob("*.desktop") if p.is_file())

    def known_ids(self) -> List[str]:
        return [p.stem for p in self._descriptor_paths()]

    def _load(self, app_id: str) -> Tuple[LauncherDescriptor, ExecSpec, Provenance]:
        path = self.desktop_path(app_id)
        if not path.is_file():
            raise NotFound(app_id, self.known_ids())
        descriptor = descriptor_from_file(path)
        spec = parse_exec(descriptor.exec_command)
        return descriptor, spec, self._classify(descriptor, spec)

    def _classify(self, descriptor: LauncherDescriptor, spec: ExecSpec) -> Provenance:
        return classify(
            spec,
            descriptor.icon_path,
            managed_icon_dirs=self._managed_icon_dirs(),
            profile_base=self.config.profile_dir,
        )

    @staticmethod
    def _guard(app_id: str, provenance: Provenance, confirmed: bool, force: bool, action: str = "modify") -> None:
        if provenance is Provenance.OWNED:
            return
        if provenance is Provenance.FOREIGN:
            if not (force and confirmed):
                raise ForeignEntryGuard(app_id, provenance.value, action)
            return
        if not confirmed:
            raise ForeignEntryGuard(app_id, provenance.value, action)

    @staticmethod
    def _icon_status(icon_path: Optional[str]) -> str:
        if icon_path and os.path.isabs(icon_path) and not is_nonempty_file(icon_path):
            return STATUS_MISSING_ICON
        return STATUS_OK

    def _profile_for(self, app_id: str, spec: ExecSpec, config: Optional[ResolvedConfig] = None) -> Path:
        if spec.profile:
            return Path(os.path.expanduser(spec.profile))
        return (config or self.config).profile_dir / app_id

    # --------------------------------------------------------------- planning
    def plan_create(self, name: Optional[str], url: Optional[str], icon_source: Optional[str]) -> LauncherPlan:
        missing = [label for label, value in (("name", name), ("url", url), ("icon", icon_source)) if not value]
        if missing:
            raise MissingRequiredInput(missing)
        app_id = derive_id(name)
        config = self.config_for(app_id)
        url = normalize_url(url)
        profile_dir = config.profile_dir / app_id
        window_class = f"{config.wmclass_prefix}{app_id}"
        return LauncherPlan(
            id=app_id,
            name=name,
            url=url,
            desktop_path=config.desktop_dir / f"{app_id}.desktop",
            icon_path=config.icon_dir / f"{app_id}.png",
            profile_dir=profile_dir,
            window_class=window_class,
            helper_path=config.helper_path,
            exec_command=render_exec(config.helper_path, url, profile_dir, window_class, config.extra_flags),
            icon_source=icon_source,
        )

    def plan_update(
        self,
        app_id: str,
        name: Optional[str] = None,
        url: Optional[str] = None,
        icon_source: Optional[str] = None,
        confirmed: bool = False,
        force: bool = False,
    ) -> LauncherPlan:
        """
        Fields not supplied are read back from the current descriptor.

        Icon rule: with no ``icon_source`` the existing ``Icon=`` path is kept
        untouched. A supplied local file whose bytes equal the installed icon
        is not acquired again; any other source replaces the icon.
        """
        descriptor, spec, provenance = self._load(app_id)
        self._guard(app_id, provenance, confirmed, force)
        config = self.config_for(app_id)

        name = name or descriptor.name
        if not name:
            raise MissingRequiredInput(["name"])
        url = normalize_url(url or descriptor.url or "")
        profile_dir = self._profile_for(app_id, spec, config)
        window_class = descriptor.window_class or f"{config.wmclass_prefix}{app_id}"

        if icon_source:
            icon_path = config.icon_dir / f"{app_id}.png"
            reuse_icon = _same_content(icon_source, icon_path)
        else:
            icon_path = Path(descriptor.icon_path) if descriptor.icon_path else config.icon_dir / f"{app_id}.png"
            reuse_icon = True

        comment = descriptor.comment if descriptor.comment and descriptor.comment != descriptor.name else None
        return LauncherPlan(
            id=app_id,
            name=name,
            url=url,
            desktop_path=self.desktop_path(app_id),
            icon_path=icon_path,
            profile_dir=profile_dir,
            window_class=window_class,
            helper_path=config.helper_path,
            exec_command=render_exec(config.helper_path, url, profile_dir, window_class, config.extra_flags),
            icon_source=icon_source,
            reuse_icon=reuse_icon,
            comment=comment,
        )

    # -------------------------------------------------------------- mutations
    def create(
        self,
        name: Optional[str],
        url: Optional[str],
        icon_source: Optional[str],
        dry_run: bool = False,
    ) -> LauncherPlan:
        plan = self.plan_create(name, url, icon_source)
        if plan.desktop_path.exists():
            raise AlreadyExists(plan.id, str(plan.desktop_path))
        if dry_run:
            return plan
        logger.info("Creating webapp: %s", plan.id)
        self._apply(plan, self.config_for(plan.id))
        log_event("launcher.create", self.invocation_id, {"id": plan.id, "url": plan.url})
        return plan

    def update(
        self,
        app_id: str,
        name: Optional[str] = None,
        url: Optional[str] = None,
        icon_source: Optional[str] = None,
        confirmed: bool = False,
        force: bool = False,
        dry_run: bool = False,
    ) -> LauncherPlan:
        plan = self.plan_update(app_id, name, url, icon_source, confirmed=confirmed, force=force)
        if dry_run:
            return plan
        logger.info("Updating webapp: %s", plan.id)
        self._apply(plan, self.config_for(plan.id))
        log_event("launcher.update", self.invocation_id, {"id": plan.id, "url": plan.url})
        return plan

    def _apply(self, plan: LauncherPlan, config: ResolvedConfig) -> None:
        if not plan.reuse_icon:
            acquire_icon(plan.icon_source, plan.icon_path, config.icon_size)
        elif not is_nonempty_file(plan.icon_path):
            logger.warning("Icon is missing: %s (use --icon to replace it)", plan.icon_path)

        plan.profile_dir.mkdir(parents=True, exist_ok=True)

        ensure_helper(config)

        text = render_desktop_entry(plan.name, plan.exec_command, plan.icon_path, plan.window_class, plan.comment)
        atomic_write_text(plan.desktop_path, text, mode=DESCRIPTOR_MODE)

        desktop_db.validate_entry(plan.desktop_path)
        desktop_db.refresh(config.desktop_dir, config.icon_dir)

    def plan_removal(self, app_id: str) -> RemovalPlan:
        descriptor, spec, provenance = self._load(app_id)
        icon_path: Optional[Path] = None
        if descriptor.icon_path and os.path.isabs(descriptor.icon_path):
            icon_path = Path(descriptor.icon_path)
        else:
            for candidate in (self.config.icon_dir / f"{app_id}.png", self.config.legacy_icon_dir / f"{app_id}.png"):
                if candidate.is_file():
                    icon_path = candidate
                    break
        profile_dir = self._profile_for(app_id, spec)
        return RemovalPlan(
            id=app_id,
            name=descriptor.name,
            provenance=provenance,
            desktop_path=self.desktop_path(app_id),
            icon_path=icon_path,
            profile_dir=profile_dir if profile_dir.is_dir() else None,
        )

    def delete(self, app_id: str, purge: bool = False, confirmed: bool = False, force: bool = False) -> RemovalPlan:
        """Remove descriptor and icon; the profile only when ``purge``. The helper is never removed."""
        plan = self.plan_removal(app_id)
        self._guard(app_id, plan.provenance, confirmed, force, action="remove")

        plan.desktop_path.unlink(missing_ok=True)
        plan.desktop_removed = True
        if plan.icon_path is not None and plan.icon_path.is_file():
            try:
                plan.icon_path.unlink()
                plan.icon_removed = True
            except OSError as exc:
                logger.warning("Could not remove icon %s: %s", plan.icon_path, exc)
        if purge and plan.profile_dir is not None and plan.profile_dir.is_dir():
            shutil.rmtree(plan.profile_dir)
            plan.profile_removed = True

        desktop_db.refresh(self.config.desktop_dir, self.config.icon_dir)
        log_event(
            "launcher.remove",
            self.invocation_id,
            {"id": app_id, "provenance": plan.provenance.value, "purged": plan.profile_removed},
        )
        return plan

    # ---------------------------------------------------------------- queries
    def list(self) -> List[LauncherSummary]:
        summaries = []
        for path in self._descriptor_paths():
            descriptor = descriptor_from_file(path)
            spec = parse_exec(descriptor.exec_command)
            summaries.append(
                LauncherSummary(
                    id=descriptor.id,
                    name=descriptor.name,
                    provenance=self._classify(descriptor, spec),
                    status=self._icon_status(descriptor.icon_path),
                    path=path,
                    url=descriptor.url,
                )
            )
        return summaries

    def list_owned(self) -> List[LauncherSummary]:
        return [item for item in self.list() if item.provenance is Provenance.OWNED]

    def bulk_delete_candidates(self) -> List[LauncherSummary]:
        """Entries a bulk operation may act on without per-entry confirmation."""
        return self.list_owned()

    def info(self, app_id: str) -> LauncherInfo:
        descriptor, spec, provenance = self._load(app_id)
        profile_dir = self._profile_for(app_id, spec)
        return LauncherInfo(
            descriptor=descriptor,
            provenance=provenance,
            profile_dir=profile_dir,
            icon_present=is_nonempty_file(descriptor.icon_path),
            profile_present=profile_dir.is_dir(),
        )

    def find_all(self, query: str) -> List[LauncherSummary]:
        """Exact name/id matches (case-insensitive), else substring matches."""
        needle = (query or "").strip().lower()
        if not needle:
            return []
        everything = self.list()
        exact = [item for item in everything if needle in (item.id.lower(), item.name.lower())]
        if exact:
            return exact
        return [item for item in everything if needle in item.id.lower() or needle in item.name.lower()]

    def find(self, query: str) -> LauncherSummary:
        matches = self.find_all(query)
        if not matches:
            raise NotFound(query, self.known_ids())
        if len(matches) > 1:
            raise AmbiguousMatch(query, [item.id for item in matches])
        return matches[0]

    # --------------------------------------------------------------- profiles
    def _names_by_id(self) -> Dict[str, str]:
        return {path.stem: descriptor_from_file(path).name or path.stem for path in self._descriptor_paths()}

    def profiles(self) -> List[ProfileInfo]:
        base = self.config.profile_dir
        if not base.is_dir():
            return []
        names = self._names_by_id()
        return [
            ProfileInfo(id=entry.name, path=entry, app_name=names.get(entry.name), size_bytes=directory_size(entry))
            for entry in sorted(base.iterdir())
            if entry.is_dir()
        ]

    def orphaned_profiles(self) -> List[ProfileInfo]:
        return [profile for profile in self.profiles() if profile.orphaned]

    def clean_profiles(self, confirm: Callable[[Sequence[ProfileInfo]], bool]) -> List[ProfileInfo]:
        """Remove orphaned profiles once ``confirm`` approves the list; returns what was removed."""
        orphans = self.orphaned_profiles()
        if not orphans or not confirm(orphans):
            return []
        removed = []
        for profile in orphans:
            shutil.rmtree(profile.path)
            removed.append(profile)
        log_event("profiles.clean", self.invocation_id, {"removed": [p.id for p in removed]})
        return removed

    # ----------------------------------------------------------- export/backup
    def export(self, app_id: str) -> ExportResult:
        descriptor, _spec, _provenance = self._load(app_id)
        record = ExportRecord(
            app_id=app_id,
            name=descriptor.name,
            url=descriptor.url,
            icon=descriptor.icon_path,
            exported_at=now_iso_utc(),
        )
        export_dir = self.config.export_dir
        record_path = atomic_write_text(export_dir / f"{app_id}.json", record.model_dump_json(indent=2) + "\n")

        config_path = None
        app_ini = self.config.apps_config_dir / f"{app_id}.ini"
        if app_ini.is_file():
            config_path = export_dir / f"{app_id}.ini"
            shutil.copyfile(app_ini, config_path)
        log_event("launcher.export", self.invocation_id, {"id": app_id, "path": str(record_path)})
        return ExportResult(record=record, record_path=record_path, config_path=config_path)

    def backup(self) -> BackupSummary:
        target = self.config.backup_dir / f"webapps_{backup_stamp()}"
        target.mkdir(parents=True, exist_ok=True)
        logger.info("Backing up webapps to: %s", target)

        owned = self.list_owned()
        for item in owned:
            shutil.copy2(item.path, target / item.path.name)

        config_count = 0
        apps_config_dir = self.config.apps_config_dir
        if apps_config_dir.is_dir():
            configs = target / "configs"
            configs.mkdir(exist_ok=True)
            for ini in sorted(apps_config_dir.glob("*.ini")):
                shutil.copy2(ini, configs / ini.name)
                config_count += 1

        manifest = "\n".join(
            [
                "webapp-forge backup",
                f"Created: {now_iso_utc()}",
                f"Total webapps: {len(owned)}",
                f"Config files: {config_count}",
                f"Backup location: {target}",
            ]
        )
        atomic_write_text(target / "manifest.txt", manifest + "\n")
        log_event("launcher.backup", self.invocation_id, {"path": str(target), "count": len(owned)})
        return BackupSummary(path=target, descriptor_count=len(owned), config_count=config_count)

    # ------------------------------------------------------------ test launch
    def test_launch(self, app_id: str, spawn: bool = True) -> LaunchCheck:
        """Run the descriptor's Exec detached, as the desktop would."""
        descriptor, spec, provenance = self._load(app_id)
        if provenance is not Provenance.OWNED:
            raise ForeignEntryGuard(app_id, provenance.value, action="test-launch")
        argv = split_exec(descriptor.exec_command)
        if not argv:
            raise WebappError(f"launcher has no Exec command: {app_id}")
        profile_dir = self._profile_for(app_id, spec)
        check = LaunchCheck(
            id=app_id,
            exec_command=descriptor.exec_command,
            argv=argv,
            profile_dir=profile_dir,
            already_running=profile_in_use(profile_dir),
        )
        if check.already_running:
            logger.warning("An instance using %s is already running; the browser may just focus it", profile_dir)
        if spawn:
            try:
                proc = subprocess.Popen(
                    argv,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    start_new_session=True,
                )
            except OSError as exc:
                raise WebappError(f"failed to launch {app_id}: {exc}") from exc
            check.pid = proc.pid
        return check


def _file_digest(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _same_content(source: str, installed: Path) -> bool:
    """True when a local icon source has the same bytes as the installed icon."""
    local = Path(os.path.expanduser(source))
    if not (local.is_file() and is_nonempty_file(installed)):
        return False
    try:
        return _file_digest(local) == _file_digest(installed)
    except OSError:
        return False


__all__ = ["LauncherRegistry", "normalize_url", "profile_in_use"]
