"""Read session entries and working-memory snapshots from the brain's working directory."""

from __future__ import annotations

import json
from pathlib import Path

from brainvault.logging import get_logger
from brainvault.memory.types import SessionData, SessionEntry

logger = get_logger(__name__)

_SESSION_SUFFIX = "session.json"
_WORKING_MEMORY_SUFFIX = ".working_memory.json"


def _list_files_recursive(root: Path) -> list[Path]:
    if not root.is_dir():
        return []
    return sorted(p for p in root.rglob("*") if p.is_file())


def _load_json_file(path: Path) -> object | None:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.debug("Skipping unparseable JSON file", file=path)
        return None


def decode_session_data(payload: object) -> tuple[SessionData | None, str]:
    """Validate a parsed ``session.json`` payload.

    Returns ``(SessionData, "ok")`` or ``(None, reason)`` where reason is one of
    ``not_object``, ``missing_entries`` or ``invalid_entry:<index>``.
    """
    if not isinstance(payload, dict):
        return None, "not_object"
    raw_entries = payload.get("entries")
    if not isinstance(raw_entries, list):
        return None, "missing_entries"
    entries: list[SessionEntry] = []
    for index, raw in enumerate(raw_entries):
        if not isinstance(raw, dict):
            return None, f"invalid_entry:{index}"
        entry_type = raw.get("type")
        content = raw.get("content")
        timestamp = raw.get("timestamp")
        if not (isinstance(entry_type, str) and isinstance(content, str) and isinstance(timestamp, str)):
            return None, f"invalid_entry:{index}"
        reasoning = raw.get("reasoning")
        confidence = raw.get("confidence")
        entries.append(
            SessionEntry(
                type=entry_type,
                content=content,
                timestamp=timestamp,
                reasoning=reasoning if isinstance(reasoning, str) else None,
                confidence=confidence if isinstance(confidence, str) else None,
            )
        )
    return SessionData(entries=entries), "ok"


def read_session_entries_for_date(working_dir: Path, key: str) -> list[SessionEntry]:
    """Entries from every ``*session.json`` under *working_dir* stamped on date *key*."""
    entries: list[SessionEntry] = []
    for path in _list_files_recursive(working_dir):
        if not path.name.endswith(_SESSION_SUFFIX):
            continue
        payload = _load_json_file(path)
        if payload is None:
            continue
        data, reason = decode_session_data(payload)
        if data is None:
            logger.debug("Skipping invalid session file", file=path, reason=reason)
            continue
        entries.extend(entry for entry in data.entries if entry.timestamp[:10] == key)
    return entries


def read_latest_continuation_notes(working_dir: Path) -> str:
    """``context_summary`` of the snapshot with the greatest ``updated_at`` string."""
    latest_updated_at: str | None = None
    latest_summary = ""
    for path in _list_files_recursive(working_dir):
        if not path.name.endswith(_WORKING_MEMORY_SUFFIX):
            continue
        payload = _load_json_file(path)
        if not isinstance(payload, dict):
            continue
        summary = payload.get("context_summary")
        updated_at = payload.get("updated_at")
        if not isinstance(summary, str) or not isinstance(updated_at, str):
            continue
        if latest_updated_at is None or updated_at > latest_updated_at:
            latest_updated_at = updated_at
            latest_summary = summary
    return latest_summary


def read_session_file(working_dir: Path) -> list[SessionEntry]:
    """Entries of the live ``session.json`` at the top of *working_dir*; [] when missing or invalid."""
    try:
        payload = _load_json_file(working_dir / "session.json")
    except OSError as exc:
        logger.warning("Live session file unreadable", error=str(exc))
        return []
    if payload is None:
        return []
    data, reason = decode_session_data(payload)
    if data is None:
        logger.debug("Ignoring invalid live session file", reason=reason)
        return []
    return data.entries
