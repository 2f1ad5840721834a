"""Daily consolidation: condense one UTC day of raw activity into a :class:`DailyMemory`."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path

from brainvault.config.schema import ConsolidationConfig
from brainvault.logging import get_logger
from brainvault.memory.dates import date_key
from brainvault.memory.events import DefaultEventAggregator, EventAggregator, EventReader
from brainvault.memory.io import MemoryIO
from brainvault.memory.sessions import read_latest_continuation_notes, read_session_entries_for_date
from brainvault.memory.types import DailyMemory, FileChange, KeyDecision
from brainvault.vault.paths import BrainPaths

logger = get_logger(__name__)

GENERIC_TOPICS = frozenset({"src", "lib", "dist", "build", "node_modules", "test", "tests", "__tests__"})
_TOPIC_DEPTH = 2


@dataclass
class DailyConsolidationResult:
    daily: DailyMemory
    events_processed: int
    timestamp: str


def extract_topics(paths: list[str], *, limit: int = 10) -> list[str]:
    """Rank the first two directory segments of *paths* by frequency, then name."""
    counts: dict[str, int] = {}
    for file_path in paths:
        parts = [p for p in file_path.split("/") if p]
        for segment in parts[:-1][:_TOPIC_DEPTH]:
            if segment in GENERIC_TOPICS:
                continue
            counts[segment] = counts.get(segment, 0) + 1
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [topic for topic, _ in ranked[:limit]]


def extract_open_questions(scratch_entries: list[str], *, limit: int = 10) -> list[str]:
    """Sentence fragments (split on ``.``) that contain ``?``, deduplicated in order."""
    questions: list[str] = []
    seen: set[str] = set()
    for entry in scratch_entries:
        if "?" not in entry:
            continue
        for sentence in entry.split("."):
            fragment = sentence.strip()
            if "?" not in fragment or fragment in seen:
                continue
            seen.add(fragment)
            questions.append(fragment)
            if len(questions) >= limit:
                return questions
    return questions


def render_daily_markdown(daily: DailyMemory) -> str:
    lines = [f"# Daily Summary: {daily.date}", "", "## Summary", daily.summary, ""]

    lines.append("## Key Decisions")
    if not daily.key_decisions:
        lines.append("No decisions.")
    for index, item in enumerate(daily.key_decisions, start=1):
        lines.append(f"{index}. {item.decision} - {item.context}")
    lines.append("")

    lines.append("## Files Changed")
    if not daily.files_changed:
        lines.append("No files changed.")
    for change in daily.files_changed:
        lines.append(f"- {change.path}: {change.summary}")
    lines.append("")

    lines.append("## Topics")
    lines.append(", ".join(daily.topics) if daily.topics else "No topics identified.")
    lines.append("")

    lines.append("## Open Questions")
    if not daily.open_questions:
        lines.append("No open questions.")
    for question in daily.open_questions:
        lines.append(f"- {question}")
    lines.append("")

    lines.append("## Continuation Notes")
    lines.append(daily.continuation_notes or "No continuation notes.")
    return "\n".join(lines) + "\n"


class DailyConsolidator:
    """Builds, persists and reads ``memory/daily/YYYY-MM-DD.{json,md}``."""

    def __init__(
        self,
        paths: BrainPaths,
        event_reader: EventReader,
        *,
        aggregator: EventAggregator | None = None,
        config: ConsolidationConfig | None = None,
    ) -> None:
        self.paths = paths
        self.event_reader = event_reader
        self.aggregator = aggregator or DefaultEventAggregator()
        self.config = config or ConsolidationConfig()
        self._io = MemoryIO()

    def daily_json_path(self, day: date | datetime) -> Path:
        return self.paths.daily / f"{date_key(day)}.json"

    def daily_markdown_path(self, day: date | datetime) -> Path:
        return self.paths.daily / f"{date_key(day)}.md"

    async def consolidate_date(self, day: date | datetime) -> DailyConsolidationResult:
        """Rebuild the daily summary for *day*, overwriting any previous one.

        Storage and read failures propagate to the caller.
        """
        key = date_key(day)
        events = await self.event_reader.read_date(day)
        session_entries = read_session_entries_for_date(self.paths.working, key)
        aggregated = self.aggregator.aggregate(events, session_entries)

        files_changed = [
            FileChange(path=activity.path, summary=activity.latest_diff_summary or "Modified")
            for activity in aggregated.file_activities[: self.config.daily_max_files]
        ]
        topics = extract_topics(
            [activity.path for activity in aggregated.file_activities],
            limit=self.config.daily_max_topics,
        )
        if not events:
            summary = "No activity recorded."
        else:
            top_topics = ", ".join(topics[:3]) or "No topics identified"
            summary = (
                f"{key}: {len(aggregated.file_activities)} files changed, "
                f"{len(aggregated.decisions)} decisions made. {top_topics}."
            )

        daily = DailyMemory(
            date=key,
            summary=summary,
            key_decisions=[KeyDecision(decision=d.decision, context=d.reasoning) for d in aggregated.decisions],
            files_changed=files_changed,
            topics=topics,
            open_questions=extract_open_questions(
                aggregated.scratch_entries,
                limit=self.config.daily_max_open_questions,
            ),
            continuation_notes=read_latest_continuation_notes(self.paths.working),
        )

        timestamp = datetime.now(timezone.utc).isoformat()
        self._io.write_json(self.daily_json_path(day), daily.to_dict())
        self._io.write_text(self.daily_markdown_path(day), render_daily_markdown(daily))
        logger.info(
            "Daily summary written",
            date=key,
            events=len(events),
            session_entries=len(session_entries),
            files=len(files_changed),
            decisions=len(daily.key_decisions),
        )
        return DailyConsolidationResult(daily=daily, events_processed=len(events), timestamp=timestamp)

    async def has_daily_summary(self, day: date | datetime) -> bool:
        return self._io.exists(self.daily_json_path(day))

    async def read_daily_summary(self, day: date | datetime) -> DailyMemory | None:
        """Stored summary for *day*; None when missing or malformed."""
        path = self.daily_json_path(day)
        try:
            payload = self._io.read_json(path)
        except (OSError, UnicodeDecodeError):
            logger.warning("Unreadable daily summary", file=path)
            return None
        if payload is None:
            return None
        try:
            return DailyMemory.from_dict(payload)
        except ValueError:
            logger.warning("Malformed daily summary", file=path)
            return None
