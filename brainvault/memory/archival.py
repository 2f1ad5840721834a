"""Archival rollups: fold dailies into ISO-week archives and weeklies into month archives.

The rollup functions are pure. Ranked lists (themes, decisions) are capped and
every truncation is recorded in ``information_loss_notes`` with the
pre-truncation count, so an archive always says how lossy it is.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from brainvault.config.schema import ConsolidationConfig
from brainvault.logging import get_logger
from brainvault.memory.io import MemoryIO
from brainvault.memory.dates import monthly_period, weekly_period
from brainvault.memory.types import ArchivalMemory, ArchivedDecision, DailyMemory
from brainvault.vault.paths import BrainPaths

logger = get_logger(__name__)

WEEKLY_MAX_THEMES = 15
WEEKLY_MAX_DECISIONS = 20
MONTHLY_MAX_THEMES = 20
MONTHLY_MAX_DECISIONS = 30
_DAYS_PER_WEEK = 7
_WEEKS_PER_MONTH = 4


@dataclass(frozen=True)
class RollupLimits:
    weekly_max_themes: int = WEEKLY_MAX_THEMES
    weekly_max_decisions: int = WEEKLY_MAX_DECISIONS
    monthly_max_themes: int = MONTHLY_MAX_THEMES
    monthly_max_decisions: int = MONTHLY_MAX_DECISIONS

    @classmethod
    def from_config(cls, config: ConsolidationConfig) -> RollupLimits:
        return cls(
            weekly_max_themes=config.weekly_max_themes,
            weekly_max_decisions=config.weekly_max_decisions,
            monthly_max_themes=config.monthly_max_themes,
            monthly_max_decisions=config.monthly_max_decisions,
        )


def rank_by_frequency(items: Iterable[str]) -> list[str]:
    """Distinct *items* ordered by count descending, then name ascending."""
    counts: dict[str, list[int]] = {}  # item -> [count, first_seen]
    for position, item in enumerate(items):
        slot = counts.get(item)
        if slot is None:
            counts[item] = [1, position]
        else:
            slot[0] += 1
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1][0], kv[0]))
    return [item for item, _ in ranked]


def _date_sort_key(value: str) -> tuple[int, float, str]:
    """Parseable dates first in time order; the rest after them, lexicographically."""
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return (1, 0.0, value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return (0, parsed.timestamp(), "")


def _truncate(label: str, ranked: list, cap: int, notes: list[str]) -> list:
    if len(ranked) > cap:
        notes.append(f"{label}: {len(ranked)} total reduced to {cap}.")
    return ranked[:cap]


def _metric(archive: ArchivalMemory, key: str) -> float:
    value = (archive.metrics or {}).get(key)
    return value if isinstance(value, (int, float)) else 0


def rollup_weekly(
    year: int,
    week: int,
    dailies: list[DailyMemory],
    *,
    max_themes: int = WEEKLY_MAX_THEMES,
    max_decisions: int = WEEKLY_MAX_DECISIONS,
) -> ArchivalMemory:
    period = weekly_period(year, week)
    source_count = len(dailies)
    loss_notes: list[str] = []

    all_topics = [topic for daily in dailies for topic in daily.topics]
    themes = _truncate("Themes", rank_by_frequency(all_topics), max_themes, loss_notes)

    chronological = sorted(dailies, key=lambda daily: _date_sort_key(daily.date))
    all_decisions = [
        ArchivedDecision(date=daily.date, decision=item.decision)
        for daily in chronological
        for item in daily.key_decisions
    ]
    key_decisions = _truncate("Decisions", all_decisions, max_decisions, loss_notes)

    total_files = sum(len(daily.files_changed) for daily in dailies)
    total_decisions = sum(len(daily.key_decisions) for daily in dailies)
    metrics = {
        "days_active": source_count,
        "total_files_changed": total_files,
        "total_decisions": total_decisions,
        "total_topics": len(set(all_topics)),
        "open_questions": sum(len(daily.open_questions) for daily in dailies),
    }

    if source_count == 0:
        summary = "No activity this week."
    else:
        top_themes = ", ".join(themes[:3]) or "none"
        summary = (
            f"Week {period}: {source_count} days of activity. Themes: {top_themes}. "
            f"{total_decisions} decisions, {total_files} files changed."
        )

    return ArchivalMemory(
        period=period,
        type="weekly",
        summary=summary,
        themes=themes,
        key_decisions=key_decisions,
        metrics=metrics,
        source_count=source_count,
        source_daily_paths=[f"memory/daily/{daily.date}.json" for daily in dailies],
        source_event_ids=[],
        information_loss_notes=" ".join(loss_notes) if loss_notes else None,
        confidence=min(source_count / _DAYS_PER_WEEK, 1),
    )


def rollup_monthly(
    year: int,
    month: int,
    weeklies: list[ArchivalMemory],
    *,
    max_themes: int = MONTHLY_MAX_THEMES,
    max_decisions: int = MONTHLY_MAX_DECISIONS,
) -> ArchivalMemory:
    period = monthly_period(year, month)
    source_count = len(weeklies)
    loss_notes: list[str] = []

    all_themes = [theme for weekly in weeklies for theme in weekly.themes]
    themes = _truncate("Themes", rank_by_frequency(all_themes), max_themes, loss_notes)

    all_decisions = sorted(
        (item for weekly in weeklies for item in weekly.key_decisions),
        key=lambda item: _date_sort_key(item.date),
    )
    key_decisions = _truncate("Decisions", all_decisions, max_decisions, loss_notes)

    metrics = {
        "weeks_active": source_count,
        "total_days_active": sum(_metric(w, "days_active") for w in weeklies),
        "total_files_changed": sum(_metric(w, "total_files_changed") for w in weeklies),
        "total_decisions": sum(_metric(w, "total_decisions") for w in weeklies),
    }

    if source_count == 0:
        summary = "No activity this month."
    else:
        top_themes = ", ".join(themes[:3]) or "none"
        summary = (
            f"Month {period}: {source_count} weeks of activity. Key themes: {top_themes}. "
            f"{metrics['total_decisions']} decisions made."
        )

    confidences = [w.confidence for w in weeklies if isinstance(w.confidence, (int, float))]
    if confidences:
        confidence = sum(confidences) / len(confidences)
    else:
        confidence = min(source_count / _WEEKS_PER_MONTH, 1)

    return ArchivalMemory(
        period=period,
        type="monthly",
        summary=summary,
        themes=themes,
        key_decisions=key_decisions,
        metrics=metrics,
        source_count=source_count,
        source_daily_paths=[f"archive/weekly/{weekly.period}.json" for weekly in weeklies],
        source_event_ids=[event_id for weekly in weeklies for event_id in (weekly.source_event_ids or [])],
        information_loss_notes=" ".join(loss_notes) if loss_notes else None,
        confidence=confidence,
    )


def render_archive_markdown(archive: ArchivalMemory) -> str:
    lines = [
        f"# {archive.type.capitalize()} Archive: {archive.period}",
        "",
        "## Summary",
        "",
        archive.summary,
        "",
        "## Themes",
        "",
        ", ".join(archive.themes) if archive.themes else "No themes identified.",
        "",
        "## Key Decisions",
        "",
    ]
    if not archive.key_decisions:
        lines.append("No decisions recorded.")
    for index, item in enumerate(archive.key_decisions, start=1):
        lines.append(f"{index}. [{item.date}] {item.decision}")

    if archive.metrics:
        lines.extend(["", "## Metrics", ""])
        lines.extend(f"- {key}: {value}" for key, value in archive.metrics.items())

    lines.extend(["", "## Audit Trail", "", "Source paths:"])
    if archive.source_daily_paths:
        lines.extend(f"- {path}" for path in archive.source_daily_paths)
    else:
        lines.append("- None")
    if archive.information_loss_notes:
        lines.append(f"Information loss notes: {archive.information_loss_notes}")
    if archive.confidence is not None:
        lines.append(f"Confidence: {archive.confidence * 100:.1f}%")
    if archive.reviewed_by:
        lines.append(f"Reviewed by: {archive.reviewed_by}")
    return "\n".join(lines) + "\n"


class ArchivalRollup:
    """Rollups bound to configured caps, plus archive persistence under ``archive/``."""

    def __init__(self, paths: BrainPaths, *, limits: RollupLimits | None = None) -> None:
        self.paths = paths
        self.limits = limits or RollupLimits()
        self._io = MemoryIO()

    def rollup_weekly(self, year: int, week: int, dailies: list[DailyMemory]) -> ArchivalMemory:
        return rollup_weekly(
            year,
            week,
            dailies,
            max_themes=self.limits.weekly_max_themes,
            max_decisions=self.limits.weekly_max_decisions,
        )

    def rollup_monthly(self, year: int, month: int, weeklies: list[ArchivalMemory]) -> ArchivalMemory:
        return rollup_monthly(
            year,
            month,
            weeklies,
            max_themes=self.limits.monthly_max_themes,
            max_decisions=self.limits.monthly_max_decisions,
        )

    def to_markdown(self, archive: ArchivalMemory) -> str:
        return render_archive_markdown(archive)

    def weekly_archive_path(self, year: int, week: int, suffix: str = ".json") -> Path:
        return self.paths.weekly_archive / f"{weekly_period(year, week)}{suffix}"

    def monthly_archive_path(self, year: int, month: int, suffix: str = ".json") -> Path:
        return self.paths.monthly_archive / f"{monthly_period(year, month)}{suffix}"

    def _write(self, archive: ArchivalMemory, json_path: Path) -> None:
        self._io.write_json(json_path, archive.to_dict())
        self._io.write_text(json_path.with_suffix(".md"), self.to_markdown(archive))
        logger.info(
            "Archive written",
            period=archive.period,
            type=archive.type,
            source_count=archive.source_count,
            information_loss=archive.information_loss_notes is not None,
        )

    def _read(self, json_path: Path) -> ArchivalMemory | None:
        payload = self._io.read_json(json_path)
        if payload is None:
            return None
        try:
            return ArchivalMemory.from_dict(payload)
        except ValueError:
            logger.warning("Malformed archive", file=json_path)
            return None

    async def write_weekly_archive(self, archive: ArchivalMemory, year: int, week: int) -> None:
        self._write(archive, self.weekly_archive_path(year, week))

    async def write_monthly_archive(self, archive: ArchivalMemory, year: int, month: int) -> None:
        self._write(archive, self.monthly_archive_path(year, month))

    async def read_weekly_archive(self, year: int, week: int) -> ArchivalMemory | None:
        return self._read(self.weekly_archive_path(year, week))

    async def read_monthly_archive(self, year: int, month: int) -> ArchivalMemory | None:
        return self._read(self.monthly_archive_path(year, month))

    async def has_weekly_archive(self, year: int, week: int) -> bool:
        return self._io.exists(self.weekly_archive_path(year, week))

    async def has_monthly_archive(self, year: int, month: int) -> bool:
        return self._io.exists(self.monthly_archive_path(year, month))
