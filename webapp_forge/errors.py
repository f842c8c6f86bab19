"""Error taxonomy for launcher management.

Library code raises these; the CLI entry points turn any ``WebappError`` into a
single ``error: ...`` line on stderr and exit code 1.
"""

from __future__ import annotations

from typing import List, Optional, Sequence


class WebappError(RuntimeError):
    """Base class for every fatal condition surfaced to the user."""

    exit_code = 1


class InvalidIdentifier(WebappError):
    def __init__(self, name: str) -> None:
        super().__init__(f"could not derive a safe ID from name: {name!r}")
        self.name = name


class MissingRequiredInput(WebappError):
    def __init__(self, fields: Sequence[str]) -> None:
        missing = ", ".join(fields)
        super().__init__(f"missing required input: {missing}")
        self.fields = list(fields)


class IconAcquisitionFailure(WebappError):
    pass


class NoBrowserFound(WebappError):
    def __init__(self, message: str = "no supported browser found") -> None:
        super().__init__(message)


class NoUrlProvided(WebappError):
    def __init__(self) -> None:
        super().__init__("URL required")


class AlreadyExists(WebappError):
    def __init__(self, app_id: str, path: str) -> None:
        super().__init__(f"webapp already exists: {app_id} ({path}); use --update {app_id} to change it")
        self.app_id = app_id
        self.path = path


class NotFound(WebappError):
    def __init__(self, app_id: str, known_ids: Optional[List[str]] = None) -> None:
        self.app_id = app_id
        self.known_ids = sorted(known_ids or [])
        if self.known_ids:
            hint = "known ids: " + ", ".join(self.known_ids)
        else:
            hint = "no webapps are installed"
        super().__init__(f"webapp not found: {app_id} ({hint})")


class AmbiguousMatch(WebappError):
    def __init__(self, query: str, matches: Sequence[str]) -> None:
        self.query = query
        self.matches = list(matches)
        super().__init__(f"multiple matches for {query!r}: {', '.join(self.matches)}")


class ForeignEntryGuard(WebappError):
    def __init__(self, app_id: str, provenance: str, action: str = "modify") -> None:
        self.app_id = app_id
        self.provenance = provenance
        super().__init__(
            f"refusing to {action} {app_id}: launcher is classified '{provenance}', not created by webapp-forge"
        )


__all__ = [
    "WebappError",
    "InvalidIdentifier",
    "MissingRequiredInput",
    "IconAcquisitionFailure",
    "NoBrowserFound",
    "NoUrlProvided",
    "AlreadyExists",
    "NotFound",
    "AmbiguousMatch",
    "ForeignEntryGuard",
]
