"""Raw activity events: the daily JSONL event log and its aggregation into file/decision/scratch views."""

from __future__ import annotations

import json
import uuid
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Protocol, Sequence

from brainvault.logging import get_logger
from brainvault.memory.dates import date_key, iter_days, parse_timestamp, to_utc_date, utc_iso
from brainvault.memory.io import MemoryIO
from brainvault.memory.types import (
    AggregatedDecision,
    AggregatedEvents,
    FileActivity,
    SearchActivity,
    SessionEntry,
)
from brainvault.vault.paths import BrainPaths

logger = get_logger(__name__)

FILE_EVENT_TYPES = frozenset({"file.created", "file.modified", "file.deleted", "file.renamed"})
SEARCH_EVENT_TYPE = "search.performed"
_SEARCH_DEDUPE_WINDOW = timedelta(seconds=60)
_CONFIDENCE_LEVELS = ("high", "medium", "low")


class EventReader(Protocol):
    async def read_date(self, day: date | datetime) -> list[dict[str, Any]]: ...


class EventRangeReader(Protocol):
    async def read_range(self, start: date | datetime, end: date | datetime) -> list[dict[str, Any]]: ...


class EventLogger(Protocol):
    async def log(self, event: dict[str, Any]) -> dict[str, Any]: ...


class EventAggregator(Protocol):
    def aggregate(
        self,
        events: Sequence[dict[str, Any]],
        session_entries: Sequence[SessionEntry],
    ) -> AggregatedEvents: ...


class EventLogReader:
    """Reads ``akashic/daily/YYYY-MM-DD.jsonl`` files, one JSON event per line."""

    def __init__(self, paths: BrainPaths) -> None:
        self.log_dir = paths.akashic_daily

    def log_path(self, day: date | datetime) -> Path:
        return self.log_dir / f"{date_key(day)}.jsonl"

    def _read_file(self, path: Path) -> list[dict[str, Any]]:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        events: list[dict[str, Any]] = []
        skipped = 0
        for line in text.splitlines():
            if not line.strip():
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                skipped += 1
                continue
            if isinstance(event, dict):
                events.append(event)
            else:
                skipped += 1
        if skipped:
            logger.warning("Skipped malformed event log lines", file=path, skipped=skipped)
        return events

    async def read_date(self, day: date | datetime) -> list[dict[str, Any]]:
        return self._read_file(self.log_path(day))

    async def read_range(self, start: date | datetime, end: date | datetime) -> list[dict[str, Any]]:
        events: list[dict[str, Any]] = []
        for day in iter_days(to_utc_date(start), to_utc_date(end)):
            events.extend(self._read_file(self.log_path(day)))
        return events

    async def count(self, day: date | datetime | None = None) -> int:
        if day is not None:
            return len(await self.read_date(day))
        if not self.log_dir.is_dir():
            return 0
        return sum(len(self._read_file(p)) for p in sorted(self.log_dir.glob("*.jsonl")))


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventLogWriter:
    """Appends events to today's JSONL log, stamping ``id`` and ``timestamp``."""

    def __init__(self, paths: BrainPaths, *, now: Callable[[], datetime] = _utc_now) -> None:
        self.log_dir = paths.akashic_daily
        self._now = now
        self._io = MemoryIO()

    async def log(self, event: dict[str, Any]) -> dict[str, Any]:
        moment = self._now()
        stamped = {**event, "id": f"evt-{uuid.uuid4().hex[:16]}", "timestamp": utc_iso(moment)}
        path = self.log_dir / f"{date_key(moment)}.jsonl"
        self._io.append_text(path, json.dumps(stamped, ensure_ascii=False) + "\n")
        return stamped


def _event_data(event: dict[str, Any]) -> dict[str, Any]:
    data = event.get("data")
    return data if isinstance(data, dict) else {}


def _priority(event: dict[str, Any]) -> float:
    value = event.get("priority", 0)
    return value if isinstance(value, (int, float)) else 0


class DefaultEventAggregator:
    """Collapses a day's events and session entries into the consolidator's input."""

    def aggregate(
        self,
        events: Sequence[dict[str, Any]],
        session_entries: Sequence[SessionEntry],
    ) -> AggregatedEvents:
        timestamps = [str(e.get("timestamp", "")) for e in events]
        type_counts: dict[str, int] = {}
        for event in events:
            event_type = str(event.get("type", ""))
            type_counts[event_type] = type_counts.get(event_type, 0) + 1
        return AggregatedEvents(
            file_activities=self._file_activities(events),
            decisions=self._decisions(session_entries),
            scratch_entries=self._scratch_entries(session_entries),
            search_activities=self._search_activities(events),
            total_events=len(events),
            time_range=(min(timestamps), max(timestamps)) if timestamps else ("", ""),
            event_type_counts=type_counts,
        )

    @staticmethod
    def _file_activities(events: Sequence[dict[str, Any]]) -> list[FileActivity]:
        by_path: dict[str, FileActivity] = {}
        for event in events:
            event_type = event.get("type")
            if not isinstance(event_type, str) or event_type not in FILE_EVENT_TYPES:
                continue
            data = _event_data(event)
            path = data.get("path")
            if not isinstance(path, str) or not path:
                continue
            timestamp = str(event.get("timestamp", ""))
            diff_summary = data.get("diff_summary")
            diff_summary = diff_summary if isinstance(diff_summary, str) else None
            existing = by_path.get(path)
            if existing is None:
                by_path[path] = FileActivity(
                    path=path,
                    event_count=1,
                    last_event_time=timestamp,
                    max_priority=_priority(event),
                    types={event_type},
                    latest_diff_summary=diff_summary,
                )
                continue
            existing.event_count += 1
            existing.max_priority = max(existing.max_priority, _priority(event))
            existing.types.add(event_type)
            if timestamp >= existing.last_event_time:
                existing.last_event_time = timestamp
                existing.latest_diff_summary = diff_summary
        # Most recent first; busier files win ties.
        activities = sorted(by_path.values(), key=lambda a: a.event_count, reverse=True)
        return sorted(activities, key=lambda a: a.last_event_time, reverse=True)

    @staticmethod
    def _decisions(session_entries: Sequence[SessionEntry]) -> list[AggregatedDecision]:
        decisions = [
            AggregatedDecision(
                timestamp=entry.timestamp,
                decision=entry.content,
                reasoning=entry.reasoning or "No reasoning",
                confidence=entry.confidence if entry.confidence in _CONFIDENCE_LEVELS else "medium",
            )
            for entry in session_entries
            if entry.type == "decision"
        ]
        return sorted(decisions, key=lambda d: d.timestamp)

    @staticmethod
    def _scratch_entries(session_entries: Sequence[SessionEntry]) -> list[str]:
        ordered = sorted((e for e in session_entries if e.type == "scratch"), key=lambda e: e.timestamp)
        seen: set[str] = set()
        deduped: list[str] = []
        for entry in ordered:
            if entry.content in seen:
                continue
            seen.add(entry.content)
            deduped.append(entry.content)
        return deduped

    @staticmethod
    def _search_activities(events: Sequence[dict[str, Any]]) -> list[SearchActivity]:
        """Searches in time order; a repeat of a query within a minute replaces the earlier one."""
        raw: list[SearchActivity] = []
        for event in events:
            if event.get("type") != SEARCH_EVENT_TYPE:
                continue
            metadata = _event_data(event).get("metadata")
            metadata = metadata if isinstance(metadata, dict) else {}
            query = metadata.get("query")
            if not isinstance(query, str) or not query:
                continue
            count = metadata.get("results_count")
            raw.append(
                SearchActivity(
                    query=query,
                    results_count=int(count) if isinstance(count, (int, float)) and not isinstance(count, bool) else 0,
                    timestamp=str(event.get("timestamp", "")),
                )
            )
        raw.sort(key=lambda a: a.timestamp)

        deduped: list[SearchActivity] = []
        latest_index: dict[str, int] = {}
        for activity in raw:
            index = latest_index.get(activity.query)
            if index is not None:
                previous = parse_timestamp(deduped[index].timestamp)
                current = parse_timestamp(activity.timestamp)
                if previous is not None and current is not None and current - previous <= _SEARCH_DEDUPE_WINDOW:
                    deduped[index] = activity
                    continue
            latest_index[activity.query] = len(deduped)
            deduped.append(activity)
        return sorted(deduped, key=lambda a: a.timestamp)
