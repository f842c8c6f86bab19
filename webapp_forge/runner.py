"""``webapp-run``: the shared helper every launcher invokes.

Usage: webapp-run [--profile DIR] [--wmclass CLASS] [--browser CMD] <URL> [extra browser flags]

Browser and display server are resolved against the live environment on every
launch, using the policy stored by the management tool. On success the
process is replaced by the browser; exit status 1 means no URL or no browser.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional

from webapp_forge.config import load_resolved_config, normalize_wayland_mode
from webapp_forge.errors import NoBrowserFound
from webapp_forge.launcher.browser import resolve_browser
from webapp_forge.launcher.command import build_browser_argv, wrap_for_session
from webapp_forge.launcher.display import apply_overlay, build_env_overlay, detect_compositor, detect_display_server
from webapp_forge.launcher.helper import policy_from_config, read_policy
from webapp_forge.logging_setup import flag_from_env, setup_logging

logger = logging.getLogger("webapp_forge.runner")

PROG = "webapp-run"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG,
        usage=f"{PROG} [--profile DIR] [--wmclass CLASS] [--browser CMD] <URL> [extra browser flags]",
        description="Open a URL as an isolated web-app window.",
    )
    parser.add_argument("--profile", "--profile-dir", "--user-data-dir", dest="profile", help="Browser profile directory")
    parser.add_argument("--wmclass", help="Window class for taskbar grouping")
    parser.add_argument("--browser", help="Browser command for this launch only")
    parser.add_argument("url", nargs="?", help="URL to open")
    parser.add_argument("extra", nargs=argparse.REMAINDER, help="Extra flags passed to the browser")
    return parser


def _diag(message: str) -> None:
    print(f"{PROG}: {message}", file=sys.stderr, flush=True)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(verbose=flag_from_env("WEBAPP_VERBOSE", False), log_name=PROG)

    if not args.url:
        _diag("URL required")
        return 1

    config = load_resolved_config()
    policy = read_policy(config.helper_policy_path) or policy_from_config(config)

    try:
        choice = resolve_browser(
            explicit=args.browser,
            configured=policy.browser_command,
            detection_method=policy.detection_method,
            fallbacks=policy.fallbacks,
        )
    except NoBrowserFound:
        _diag("no supported browser found")
        return 1

    display_server = detect_display_server(normalize_wayland_mode(policy.wayland_mode))
    overlay = build_env_overlay(choice.command, display_server)
    env = apply_overlay(os.environ, overlay)

    command = build_browser_argv(
        choice.command,
        choice.supports_app_mode,
        args.url,
        profile=args.profile,
        wmclass=args.wmclass,
        extra=args.extra or [],
    )
    command = wrap_for_session(command)
    logger.info(
        "Launching %s via %s on %s (compositor=%s, env+=%s)",
        args.url,
        choice.command,
        display_server,
        detect_compositor(check_processes=False) or "unknown",
        sorted(overlay),
    )

    try:
        os.execvpe(command[0], command, env)
    except OSError as exc:
        _diag(f"failed to exec {command[0]}: {exc}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
