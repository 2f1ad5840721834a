"""Micro-consolidation: keep a per-session working-memory snapshot current.

The snapshot (``working/{session}.working_memory.{json,md}``) condenses the
events logged since the previous run plus the live ``session.json`` entries.
A cursor file next to it records where the last run stopped. The daily
consolidator later picks the freshest snapshot's ``context_summary`` as the
day's continuation notes.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Callable

from brainvault.config.schema import ConsolidationConfig
from brainvault.logging import get_logger
from brainvault.memory.dates import parse_timestamp, to_utc_date, utc_iso
from brainvault.memory.events import DefaultEventAggregator, EventAggregator, EventLogger, EventRangeReader
from brainvault.memory.io import MemoryIO
from brainvault.memory.sessions import read_session_file
from brainvault.memory.types import AggregatedEvents, ConsolidationCursor, SessionEntry, WorkingMemory
from brainvault.vault.paths import BrainPaths

logger = get_logger(__name__)

HARD_ACTIVITY_THRESHOLD = 200
INITIAL_ACTIVITY_THRESHOLD = 20
SUBSEQUENT_ACTIVITY_THRESHOLD = 5
MAX_ACTIVE_FILES = 20
MAX_SUMMARY_LENGTH = 500
CONTEXT_PREFIX = "context:"
NO_ACTIVITY_SUMMARY = "No activity recorded yet."


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max(0, max_length - 3)] + "..."


def format_relative_time(timestamp: str, now: datetime) -> str:
    """Human phrasing of *timestamp* relative to *now* (UTC); unparseable input is returned as-is."""
    then = parse_timestamp(timestamp)
    if then is None:
        return timestamp
    now = now.astimezone(timezone.utc)
    delta = now - then
    if timedelta(0) <= delta < timedelta(minutes=1):
        return "just now"
    if timedelta(0) <= delta < timedelta(hours=1):
        return f"{int(delta.total_seconds() // 60)}m ago"
    if timedelta(0) <= delta < timedelta(days=1):
        hours, remainder = divmod(int(delta.total_seconds()), 3600)
        return f"{hours}h {remainder // 60}m ago"
    if then.date() == now.date():
        return f"today at {then:%H:%M}"
    if then.date() == now.date() - timedelta(days=1):
        return f"yesterday at {then:%H:%M}"
    return then.date().isoformat()


def _context_override(scratch_entries: list[str]) -> str | None:
    latest = None
    for entry in scratch_entries:
        trimmed = entry.strip()
        if trimmed.lower().startswith(CONTEXT_PREFIX):
            latest = trimmed[len(CONTEXT_PREFIX):].strip()
    return latest


def build_context_summary(aggregated: AggregatedEvents, session_started_at: str, *, now: datetime) -> str:
    """Templated description of the session so far, at most 500 characters.

    A scratch note starting with ``context:`` overrides the template; the last one wins.
    """
    override = _context_override(aggregated.scratch_entries)
    if override is not None:
        return _truncate(override, MAX_SUMMARY_LENGTH)
    if aggregated.total_events == 0:
        return NO_ACTIVITY_SUMMARY

    lines = [f"Session active since {format_relative_time(session_started_at, now)}."]
    if aggregated.file_activities:
        top_files = ", ".join(PurePosixPath(a.path).name for a in aggregated.file_activities[:3])
        lines.append(f"Files: {len(aggregated.file_activities)} active ({top_files}).")
    if not aggregated.decisions:
        lines.append("No decisions recorded.")
    else:
        latest = _truncate(aggregated.decisions[-1].decision, 80)
        lines.append(f'Decisions: {len(aggregated.decisions)} recorded (latest: "{latest}").')
    counts = aggregated.event_type_counts
    lines.append(
        f"Activity: {counts.get('file.created', 0)} created, "
        f"{counts.get('file.modified', 0)} modified, {counts.get('file.deleted', 0)} deleted."
    )
    if aggregated.search_activities:
        lines.append(f"Searches: {len(aggregated.search_activities)} queries performed.")

    # Shed the least useful lines first.
    for dropped in ("Searches:", "Activity:"):
        summary = "\n".join(lines)
        if len(summary) <= MAX_SUMMARY_LENGTH:
            return summary
        lines = [line for line in lines if not line.startswith(dropped)]
    return _truncate("\n".join(lines), MAX_SUMMARY_LENGTH)


def render_working_markdown(memory: WorkingMemory) -> str:
    lines = [
        "# Working Memory",
        "",
        f"**Session**: {memory.session_id}",
        f"**Started**: {memory.started_at}",
        f"**Updated**: {memory.updated_at}",
        "",
        "## Context Summary",
        "",
        memory.context_summary,
        "",
        "## Active Files",
        "",
    ]
    if not memory.active_files:
        lines.append("No active files.")
    lines.extend(f"- {path}" for path in memory.active_files)

    lines.extend(["", "## Decisions", ""])
    if not memory.decisions:
        lines.append("No decisions recorded.")
    for index, item in enumerate(memory.decisions, start=1):
        lines.append(f"{index}. [{item.confidence}] {item.decision} - {item.reasoning} (at {item.timestamp})")

    lines.extend(["", "## Scratch", ""])
    lines.append(memory.scratch if memory.scratch.strip() else "No scratch notes.")

    lines.extend(["", "## Retrieval Log", ""])
    if not memory.retrieval_log:
        lines.append("No searches recorded.")
    for search in memory.retrieval_log:
        lines.append(f'- [{search.timestamp}] "{search.query}" -> {search.results_count} results')
    return "\n".join(lines) + "\n"


class WorkingMemoryWriter:
    """Snapshot and cursor files for each session under the working directory."""

    def __init__(self, working_dir: Path) -> None:
        self.working_dir = working_dir
        self._io = MemoryIO()

    def snapshot_path(self, session_id: str, suffix: str = ".json") -> Path:
        return self.working_dir / f"{session_id}.working_memory{suffix}"

    def cursor_path(self, session_id: str) -> Path:
        return self.working_dir / f"{session_id}.consolidation_cursor.json"

    async def write_snapshot(self, memory: WorkingMemory, session_id: str) -> None:
        self._io.write_json(self.snapshot_path(session_id), memory.to_dict())
        self._io.write_text(self.snapshot_path(session_id, ".md"), render_working_markdown(memory))

    async def read_snapshot(self, session_id: str) -> WorkingMemory | None:
        payload = self._io.read_json(self.snapshot_path(session_id))
        if payload is None:
            return None
        try:
            return WorkingMemory.from_dict(payload)
        except ValueError:
            return None

    async def write_cursor(self, cursor: ConsolidationCursor) -> None:
        self._io.write_json(self.cursor_path(cursor.session_id), cursor.to_dict())

    async def read_cursor(self, session_id: str) -> ConsolidationCursor | None:
        payload = self._io.read_json(self.cursor_path(session_id))
        if payload is None:
            return None
        try:
            return ConsolidationCursor.from_dict(payload)
        except ValueError:
            logger.warning("Malformed consolidation cursor", session_id=session_id)
            return None


@dataclass
class MicroConsolidationResult:
    working_memory: WorkingMemory
    events_processed: int
    entries_processed: int
    timestamp: str
    duration_ms: float


def generate_session_id(moment: datetime) -> str:
    return f"ses-{moment.astimezone(timezone.utc):%Y%m%d-%H%M%S}-{uuid.uuid4().hex[:4]}"


def _earliest_timestamp(entries: list[SessionEntry]) -> str | None:
    return min((entry.timestamp for entry in entries), default=None)


class MicroConsolidator:
    """Refreshes the working-memory snapshot of one session.

    Callers report activity through :meth:`notify_activity` and poll
    :meth:`should_consolidate`; :meth:`consolidate` can also be run on demand.
    Snapshot, cursor and audit-event writes are best effort: failures are
    logged and the run still returns its result.
    """

    def __init__(
        self,
        paths: BrainPaths,
        event_reader: EventRangeReader,
        *,
        event_logger: EventLogger | None = None,
        aggregator: EventAggregator | None = None,
        config: ConsolidationConfig | None = None,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.paths = paths
        self.event_reader = event_reader
        self.event_logger = event_logger
        self.aggregator = aggregator or DefaultEventAggregator()
        self.config = config or ConsolidationConfig()
        self.writer = WorkingMemoryWriter(paths.working)
        self._now = now
        self._last_consolidated_at: str | None = None
        self._activity_count = 0
        self._active_session_id: str | None = None

    def notify_activity(self) -> None:
        self._activity_count += 1

    def last_consolidation_time(self) -> str | None:
        return self._last_consolidated_at

    def should_consolidate(self) -> bool:
        if self._activity_count >= HARD_ACTIVITY_THRESHOLD:
            return True
        if self._last_consolidated_at is None:
            return self._activity_count >= INITIAL_ACTIVITY_THRESHOLD
        if self._activity_count < SUBSEQUENT_ACTIVITY_THRESHOLD:
            return False
        last = parse_timestamp(self._last_consolidated_at)
        if last is None:
            return False
        return self._now() - last >= timedelta(minutes=self.config.micro_interval_minutes)

    async def _read_cursor(self, session_id: str) -> ConsolidationCursor | None:
        try:
            return await self.writer.read_cursor(session_id)
        except OSError as exc:
            logger.warning("Consolidation cursor unreadable", session_id=session_id, error=str(exc))
            return None

    async def _read_events(
        self,
        cursor: ConsolidationCursor | None,
        entries: list[SessionEntry],
        moment: datetime,
    ) -> list[dict[str, Any]]:
        try:
            if cursor is not None:
                since = parse_timestamp(cursor.last_consolidated_at) or moment
                events = await self.event_reader.read_range(since, moment)
                return [e for e in events if str(e.get("timestamp", "")) > cursor.last_consolidated_at]
            earliest = parse_timestamp(_earliest_timestamp(entries))
            start = earliest if earliest is not None else to_utc_date(moment)
            return await self.event_reader.read_range(start, moment)
        except Exception as exc:
            logger.warning("Event log read failed during micro-consolidation", error=str(exc))
            return []

    async def consolidate(self, session_id: str | None = None) -> MicroConsolidationResult:
        started = time.perf_counter()
        moment = self._now()
        now_iso = utc_iso(moment)
        session = session_id or self._active_session_id or generate_session_id(moment)
        self._active_session_id = session

        cursor = await self._read_cursor(session)
        if cursor is not None:
            self._last_consolidated_at = cursor.last_consolidated_at

        entries = read_session_file(self.paths.working)
        events = await self._read_events(cursor, entries, moment)
        aggregated = self.aggregator.aggregate(events, entries)

        if cursor is not None:
            session_started_at = cursor.last_consolidated_at
        else:
            session_started_at = _earliest_timestamp(entries) or now_iso

        memory = WorkingMemory(
            session_id=session,
            started_at=session_started_at,
            updated_at=now_iso,
            context_summary=build_context_summary(aggregated, session_started_at, now=moment),
            active_files=[a.path for a in aggregated.file_activities][:MAX_ACTIVE_FILES],
            decisions=aggregated.decisions,
            scratch="\n---\n".join(aggregated.scratch_entries),
            retrieval_log=aggregated.search_activities,
        )
        new_cursor = ConsolidationCursor(
            last_consolidated_at=now_iso,
            last_event_id=str(events[-1].get("id", "")) if events else "",
            session_id=session,
            consolidation_count=(cursor.consolidation_count if cursor else 0) + 1,
        )

        try:
            await self.writer.write_snapshot(memory, session)
        except OSError as exc:
            logger.error("Failed to write working memory snapshot", session_id=session, error=str(exc))
        try:
            await self.writer.write_cursor(new_cursor)
        except OSError as exc:
            logger.error("Failed to write consolidation cursor", session_id=session, error=str(exc))
        if self.event_logger is not None:
            try:
                await self.event_logger.log(
                    {
                        "type": "memory.consolidated",
                        "source": "consolidator",
                        "priority": 50,
                        "session_id": session,
                        "data": {
                            "metadata": {
                                "session_id": session,
                                "events_processed": len(events),
                                "entries_processed": len(entries),
                                "consolidation_count": new_cursor.consolidation_count,
                            }
                        },
                    }
                )
            except Exception as exc:
                logger.debug("Audit event not logged", session_id=session, error=str(exc))

        self._last_consolidated_at = now_iso
        self._activity_count = 0
        logger.info(
            "Working memory consolidated",
            session_id=session,
            events=len(events),
            entries=len(entries),
            count=new_cursor.consolidation_count,
        )
        return MicroConsolidationResult(
            working_memory=memory,
            events_processed=len(events),
            entries_processed=len(entries),
            timestamp=now_iso,
            duration_ms=(time.perf_counter() - started) * 1000,
        )
