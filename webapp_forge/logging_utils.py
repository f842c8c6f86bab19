from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Iterable

# Structured event logger configured in logging_setup.
event_logger = logging.getLogger("webapp_forge.events")


def generate_invocation_id() -> str:
    """Return a short, collision-resistant id for one CLI invocation."""
    return uuid.uuid4().hex[:12]


def _truncate(value: str, max_len: int = 2000) -> str:
    if len(value) <= max_len:
        return value
    return f"{value[:max_len]}...<truncated {len(value) - max_len} chars>"


def _sanitize_obj(obj: Any, max_len: int = 2000, keep_full: Iterable[str] | None = None) -> Any:
    keep_full = set(keep_full or [])
    if isinstance(obj, dict):
        sanitized: Dict[str, Any] = {}
        for key, val in obj.items():
            if key in keep_full:
                sanitized[key] = val
                continue
            sanitized[key] = _sanitize_obj(val, max_len=max_len, keep_full=keep_full)
        return sanitized
    if isinstance(obj, (list, tuple)):
        return [_sanitize_obj(item, max_len=max_len, keep_full=keep_full) for item in list(obj)[:50]]
    if isinstance(obj, str):
        return _truncate(obj, max_len=max_len)
    return obj


def sanitize_payload(payload: Dict[str, Any], keep_full: Iterable[str] | None = None) -> Dict[str, Any]:
    """Return a sanitized shallow copy safe for logging."""
    try:
        return dict(_sanitize_obj(payload, keep_full=keep_full or []))
    except Exception:
        return {"error": "failed_to_sanitize"}


def log_event(event: str, invocation_id: str, payload: Dict[str, Any] | None = None) -> None:
    """Log a structured event as JSON; never raise."""
    body = {"event": event, "invocation_id": invocation_id}
    if payload:
        body.update(sanitize_payload(payload, keep_full={"url"}))
    try:
        event_logger.info(json.dumps(body, ensure_ascii=True, default=str))
    except Exception:
        # Fallback to best-effort string logging.
        event_logger.info(f"{event} {invocation_id} {body}")


__all__ = ["generate_invocation_id", "log_event", "sanitize_payload"]
