"""Command-line front ends: ``webapp-forge`` (management) and ``webapp-remove``."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Callable, List, Optional, Sequence

from dotenv import load_dotenv

from webapp_forge.config import config_dir, global_config_path, write_default_config
from webapp_forge.contracts.launcher import LauncherPlan, LauncherSummary, ProfileInfo, Provenance, RemovalPlan
from webapp_forge.errors import AmbiguousMatch, ForeignEntryGuard, NotFound, WebappError
from webapp_forge.launcher.registry import LauncherRegistry
from webapp_forge.logging_setup import setup_logging
from webapp_forge.utils.fs import human_size

logger = logging.getLogger(__name__)

RULE = "━" * 80
TEST_LAUNCH_DELAY = 2.0

EPILOG = """examples:
  webapp-forge "Gmail" "https://mail.google.com" "https://mail.google.com/favicon.ico"
  webapp-forge --list
  webapp-forge --info gmail
  webapp-forge --update gmail --icon /path/to/icon.png
  webapp-forge --test gmail
"""


def _interactive() -> bool:
    try:
        return sys.stdin.isatty()
    except (AttributeError, ValueError):
        return False


def confirm(prompt: str) -> bool:
    try:
        answer = input(f"{prompt} [y/N]: ")
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def ask(label: str, example: str) -> str:
    try:
        return input(f"{label} (e.g. {example}): ").strip()
    except EOFError:
        return ""


def _bootstrap(verbose: bool) -> None:
    load_dotenv(config_dir() / ".env", override=False)
    setup_logging(verbose=verbose)
    if write_default_config(global_config_path()):
        logger.info("Created default config: %s", global_config_path())


def _run(handler: Callable[[], int]) -> int:
    try:
        return handler()
    except WebappError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nAborted.", file=sys.stderr)
        return 1


# --------------------------------------------------------------------- output
def _print_plan(plan: LauncherPlan) -> None:
    print(RULE)
    print("DRY RUN MODE - No changes will be made")
    print(RULE)
    print(f"App ID:      {plan.id}")
    print(f"Name:        {plan.name}")
    print(f"URL:         {plan.url}")
    print(f"Icon:        {plan.icon_source or '<keep existing>'}")
    print(f"Desktop:     {plan.desktop_path}")
    print(f"Icon path:   {plan.icon_path}")
    print(f"Profile:     {plan.profile_dir}")
    print(f"WMClass:     {plan.window_class}")
    print(f"Exec:        {plan.exec_command}")
    print(RULE)


def _print_done(plan: LauncherPlan, verb: str, desktop_dir) -> None:
    print(f"\n✓ {verb} launcher successfully!")
    print(f"  Desktop file: {plan.desktop_path}")
    print(f"  Icon:         {plan.icon_path}")
    print(f"  Profile:      {plan.profile_dir}")
    print(f"  App name:     {plan.name}")
    print("\nThe webapp should appear in your application menu shortly.")
    print(f"If it doesn't appear, try: update-desktop-database {desktop_dir}")


def _mark(present: bool) -> str:
    return "✓" if present else "✗"


def _print_table(rows: Sequence[Sequence[str]], widths: Sequence[int], headers: Sequence[str]) -> None:
    fmt = " ".join(f"%-{w}s" for w in widths)
    print(fmt % tuple(headers))
    print(fmt % tuple("-" * w for w in widths))
    for row in rows:
        print(fmt % tuple(row))


# ------------------------------------------------------------------- commands
def cmd_list(registry: LauncherRegistry) -> int:
    owned = registry.list_owned()
    if not owned:
        print(f"No webapps found in {registry.config.desktop_dir}")
        return 0
    _print_table(
        [(item.id, item.name or "<unknown>", item.status) for item in owned],
        (30, 50, 20),
        ("ID", "Name", "Status"),
    )
    print(f"\nTotal: {len(owned)} webapp(s)")
    return 0


def cmd_info(registry: LauncherRegistry, app_id: str) -> int:
    details = registry.info(app_id)
    desc = details.descriptor
    profile = str(details.profile_dir) if details.profile_dir else None
    print(f"Webapp Information: {desc.id}")
    print(RULE)
    print(f"Name:        {desc.name}")
    print(f"URL:         {desc.url or '<not found>'}")
    print(f"Icon:        {desc.icon_path or '<not set>'}")
    print(f"Profile:     {profile or '<not set>'}")
    print(f"WMClass:     {desc.window_class or '<not set>'}")
    print(f"Desktop:     {desc.path}")
    print(f"Kind:        {details.provenance.value}")
    print("")
    print("Files:")
    print(f"  Desktop:   {desc.path} {_mark(True)}")
    print(f"  Icon:      {desc.icon_path or 'N/A'} {_mark(details.icon_present)}")
    print(f"  Profile:   {profile or 'N/A'} {_mark(details.profile_present)}")
    return 0


def cmd_profiles(registry: LauncherRegistry) -> int:
    logger.info("Scanning %s for profiles...", registry.config.profile_dir)
    profiles = registry.profiles()
    if not profiles:
        print(f"No profiles found in {registry.config.profile_dir}")
        return 0
    _print_table(
        [(p.id, p.app_name or "<orphaned>", human_size(p.size_bytes)) for p in profiles],
        (30, 50, 15),
        ("Profile ID", "Associated App", "Size"),
    )
    print(f"\nTotal: {len(profiles)} profile(s)")
    return 0


def cmd_clean_profiles(registry: LauncherRegistry, assume_yes: bool) -> int:
    logger.info("Scanning for orphaned profiles...")

    def approve(orphans: Sequence[ProfileInfo]) -> bool:
        print(f"Found {len(orphans)} orphaned profile(s):")
        for profile in orphans:
            print(f"  - {profile.path}")
        print("")
        return assume_yes or confirm("Remove these orphaned profiles?")

    if not registry.orphaned_profiles():
        print("No orphaned profiles found.")
        return 0
    removed = registry.clean_profiles(approve)
    if not removed:
        print("Aborted.")
        return 0
    for profile in removed:
        print(f"Removed: {profile.path}")
    print(f"Cleaned {len(removed)} orphaned profile(s).")
    return 0


def cmd_export(registry: LauncherRegistry, app_id: str) -> int:
    result = registry.export(app_id)
    print(f"Exported webapp to: {result.record_path}")
    if result.config_path is not None:
        print(f"Exported config to: {result.config_path}")
    return 0


def cmd_backup(registry: LauncherRegistry) -> int:
    summary = registry.backup()
    print(f"Backup complete: {summary.path}")
    print(f"  - {summary.descriptor_count} desktop file(s)")
    print(f"  - {summary.config_count} config file(s)")
    return 0


def cmd_test(registry: LauncherRegistry, app_id: str) -> int:
    details = registry.info(app_id)
    print(f"Testing launch for: {app_id}")
    print(f"Exec command: {details.descriptor.exec_command}")
    print("")
    if TEST_LAUNCH_DELAY > 0:
        print(f"Launching in {TEST_LAUNCH_DELAY:g} seconds... (Ctrl+C to cancel)")
        time.sleep(TEST_LAUNCH_DELAY)
    check = registry.test_launch(app_id)
    if check.already_running:
        print(f"Note: an instance using {check.profile_dir} was already running.")
    print("Launched! Check if the browser window opened.")
    return 0


def _confirm_kind(provenance: Provenance, force: bool, assume_yes: bool, app_id: str, action: str) -> bool:
    """Return the ``confirmed`` flag for a registry call on a non-owned entry."""
    if provenance is Provenance.OWNED:
        return True
    if provenance is Provenance.FOREIGN and not force:
        raise ForeignEntryGuard(app_id, provenance.value, action)
    if provenance is Provenance.LEGACY:
        logger.warning("This looks like an older/compatible entry.")
        logger.warning("Proceed only if you created it.")
    elif provenance is Provenance.CANDIDATE:
        logger.warning("This looks like a candidate (heuristic).")
        logger.warning("Proceed only if you're sure.")
    else:
        logger.warning("This launcher was not created by webapp-forge.")
    return assume_yes or confirm(f"{action.capitalize()} {app_id} anyway?")


def cmd_create(registry: LauncherRegistry, args: argparse.Namespace) -> int:
    name = args.name or args.pos_name
    url = args.url or args.pos_url
    icon = args.icon or args.pos_icon
    if (not name or not url or not icon) and _interactive():
        print("Web App Forge: create a launcher")
        name = name or ask("App name", "My Web App")
        url = url or ask("URL", "https://example.org")
        icon = icon or ask("Icon URL or path", "https://example.org/icon.png")

    plan = registry.create(name, url, icon, dry_run=args.dry_run)
    if args.dry_run:
        _print_plan(plan)
    else:
        _print_done(plan, "Created", registry.config.desktop_dir)
    return 0


def cmd_update(registry: LauncherRegistry, app_id: str, args: argparse.Namespace) -> int:
    provenance = registry.info(app_id).provenance
    confirmed = _confirm_kind(provenance, args.force, args.yes, app_id, "update")
    if not confirmed:
        print("Aborted.")
        return 0
    plan = registry.update(
        app_id,
        name=args.name or args.pos_name,
        url=args.url or args.pos_url,
        icon_source=args.icon or args.pos_icon,
        confirmed=confirmed,
        force=args.force,
        dry_run=args.dry_run,
    )
    if args.dry_run:
        _print_plan(plan)
    else:
        _print_done(plan, "Updated", registry.config.desktop_dir)
    return 0


# -------------------------------------------------------------------- removal
def _print_grouped(summaries: Sequence[LauncherSummary], desktop_dir) -> None:
    groups = (
        (Provenance.OWNED, "Forge launchers:"),
        (Provenance.LEGACY, "Compatible launchers:"),
        (Provenance.CANDIDATE, "Candidates:"),
    )
    shown = False
    for provenance, title in groups:
        items = [item for item in summaries if item.provenance is provenance]
        if not items:
            continue
        if shown:
            print("")
        print(title)
        for item in items:
            print(f"  • {item.name or '<unknown>'}   (id: {item.id})")
        shown = True
    if not shown:
        print(f"No web-app style launchers detected in {desktop_dir}")
    else:
        print("\nTip: webapp-remove <Name or id>")


def _pick(query: str, matches: List[LauncherSummary]) -> LauncherSummary:
    if len(matches) == 1:
        return matches[0]
    if not _interactive():
        raise AmbiguousMatch(query, [item.id for item in matches])
    print(f'Multiple matches for "{query}":')
    for idx, item in enumerate(matches, start=1):
        print(f"  {idx}) {item.name}   (id: {item.id})")
    while True:
        try:
            choice = input(f"Select 1-{len(matches)}: ").strip()
        except EOFError:
            raise AmbiguousMatch(query, [item.id for item in matches]) from None
        if choice.isdigit() and 1 <= int(choice) <= len(matches):
            return matches[int(choice) - 1]


def _print_removal(plan: RemovalPlan) -> None:
    print("Will remove:")
    print(f"  Name:    {plan.name}")
    print(f"  ID:      {plan.id}")
    print(f"  Desktop: {plan.desktop_path}")
    if plan.icon_path is not None:
        print(f"  Icon:    {plan.icon_path}")
    if plan.profile_dir is not None:
        print(f"  Profile: {plan.profile_dir}")


def cmd_remove(registry: LauncherRegistry, query: str, assume_yes: bool, purge: bool, force: bool) -> int:
    matches = registry.find_all(query)
    if not matches:
        raise NotFound(query, registry.known_ids())
    target = _pick(query, matches)
    plan = registry.plan_removal(target.id)
    _print_removal(plan)

    if plan.provenance is Provenance.OWNED:
        if not assume_yes and not confirm("Remove desktop entry" + (" and icon?" if plan.icon_path else "?")):
            print("Aborted.")
            return 0
    elif not _confirm_kind(plan.provenance, force, assume_yes, plan.id, "remove"):
        print("Aborted.")
        return 0

    if plan.profile_dir is not None and not purge and not assume_yes and _interactive():
        purge = confirm(f"Also remove profile data at: {plan.profile_dir} ?")

    result = registry.delete(plan.id, purge=purge, confirmed=True, force=force)
    print(f"Removed: {result.desktop_path}")
    if result.icon_removed:
        print(f"Removed: {result.icon_path}")
    if result.profile_removed:
        print(f"Removed: {result.profile_dir}")
    elif result.profile_dir is not None:
        print(f"Kept profile: {result.profile_dir}")
    return 0


# -------------------------------------------------------------------- parsers
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webapp-forge",
        description="Create native launchers for web applications.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("pos_name", nargs="?", metavar="NAME", help="App name")
    parser.add_argument("pos_url", nargs="?", metavar="URL", help="App URL")
    parser.add_argument("pos_icon", nargs="?", metavar="ICON", help="Icon URL or local file path")

    commands = parser.add_mutually_exclusive_group()
    commands.add_argument("--list", "-l", action="store_true", help="List all installed webapps")
    commands.add_argument("--info", metavar="APP_ID", help="Show details about a webapp")
    commands.add_argument("--update", metavar="APP_ID", help="Update an existing webapp")
    commands.add_argument("--test", metavar="APP_ID", help="Test launch a webapp")
    commands.add_argument("--profiles", action="store_true", help="List all webapp profiles")
    commands.add_argument("--clean-profiles", action="store_true", help="Remove orphaned profiles")
    commands.add_argument("--export", metavar="APP_ID", help="Export webapp configuration")
    commands.add_argument("--backup", action="store_true", help="Backup all webapps")
    commands.add_argument("--remove", metavar="NAME_OR_ID", help="Remove a webapp by name or id")

    parser.add_argument("--name", "-n", help="App name (for create/update)")
    parser.add_argument("--url", "-u", help="App URL (for create/update)")
    parser.add_argument("--icon", "-i", help="Icon URL or local file path (for create/update)")
    parser.add_argument("--yes", "-y", action="store_true", help="Answer yes to confirmations")
    parser.add_argument("--purge", action="store_true", help="Also remove the profile directory (with --remove)")
    parser.add_argument("--force", action="store_true", help="Allow changing launchers not created by webapp-forge")
    parser.add_argument("--dry-run", action="store_true", help="Preview changes without applying them")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show detailed output")
    return parser


def build_remove_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webapp-remove",
        description="List web-app launchers, or remove one by name or id.",
    )
    parser.add_argument("target", nargs="?", metavar="NAME_OR_ID", help="Launcher to remove; omit to list")
    parser.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")
    parser.add_argument("--purge", action="store_true", help="Also remove the profile directory")
    parser.add_argument("--force", action="store_true", help="Allow removing launchers not created by webapp-forge")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show detailed output")
    return parser


def _dispatch(registry: LauncherRegistry, args: argparse.Namespace) -> int:
    if args.list:
        return cmd_list(registry)
    if args.info:
        return cmd_info(registry, args.info)
    if args.update:
        return cmd_update(registry, args.update, args)
    if args.test:
        return cmd_test(registry, args.test)
    if args.profiles:
        return cmd_profiles(registry)
    if args.clean_profiles:
        return cmd_clean_profiles(registry, args.yes)
    if args.export:
        return cmd_export(registry, args.export)
    if args.backup:
        return cmd_backup(registry)
    if args.remove:
        return cmd_remove(registry, args.remove, args.yes, args.purge, args.force)
    return cmd_create(registry, args)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _bootstrap(args.verbose)
    return _run(lambda: _dispatch(LauncherRegistry(), args))


def remove_main(argv: Optional[List[str]] = None) -> int:
    args = build_remove_parser().parse_args(argv)
    _bootstrap(args.verbose)

    def handler() -> int:
        registry = LauncherRegistry()
        if not args.target:
            _print_grouped(registry.list(), registry.config.desktop_dir)
            return 0
        return cmd_remove(registry, args.target, args.yes, args.purge, args.force)

    return _run(handler)


if __name__ == "__main__":
    sys.exit(main())
