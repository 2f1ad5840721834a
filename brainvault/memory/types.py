"""Value objects persisted by the consolidation pipeline and the shapes exchanged with collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

ArchiveType = Literal["weekly", "monthly"]


def _require_object(payload: object, kind: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValueError(f"{kind} payload must be a JSON object, got {type(payload).__name__}")
    return payload


def _list(value: object) -> list:
    return value if isinstance(value, list) else []


def _str_list(value: object) -> list[str]:
    return [str(item) for item in _list(value)]


def _confidence(value: object) -> str:
    return str(value) if value in ("high", "medium", "low") else "medium"


@dataclass
class KeyDecision:
    decision: str
    context: str


@dataclass
class FileChange:
    path: str
    summary: str


@dataclass
class DailyMemory:
    """One day's digest, keyed by ``YYYY-MM-DD``."""

    date: str
    summary: str
    key_decisions: list[KeyDecision] = field(default_factory=list)
    files_changed: list[FileChange] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)
    open_questions: list[str] = field(default_factory=list)
    continuation_notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "summary": self.summary,
            "key_decisions": [{"decision": d.decision, "context": d.context} for d in self.key_decisions],
            "files_changed": [{"path": f.path, "summary": f.summary} for f in self.files_changed],
            "topics": list(self.topics),
            "open_questions": list(self.open_questions),
            "continuation_notes": self.continuation_notes,
        }

    @classmethod
    def from_dict(cls, payload: object) -> DailyMemory:
        data = _require_object(payload, "daily memory")
        decisions = [
            KeyDecision(decision=str(item.get("decision", "")), context=str(item.get("context", "")))
            for item in _list(data.get("key_decisions"))
            if isinstance(item, dict)
        ]
        files = [
            FileChange(path=str(item.get("path", "")), summary=str(item.get("summary", "")))
            for item in _list(data.get("files_changed"))
            if isinstance(item, dict)
        ]
        return cls(
            date=str(data.get("date", "")),
            summary=str(data.get("summary", "")),
            key_decisions=decisions,
            files_changed=files,
            topics=_str_list(data.get("topics")),
            open_questions=_str_list(data.get("open_questions")),
            continuation_notes=str(data.get("continuation_notes") or ""),
        )


@dataclass
class ArchivedDecision:
    date: str
    decision: str


@dataclass
class ArchivalMemory:
    """A weekly (``YYYY-Wnn``) or monthly (``YYYY-MM``) rollup with its audit trail."""

    period: str
    type: ArchiveType
    summary: str
    themes: list[str] = field(default_factory=list)
    key_decisions: list[ArchivedDecision] = field(default_factory=list)
    metrics: dict[str, float] = field(default_factory=dict)
    source_count: int = 0
    source_daily_paths: list[str] = field(default_factory=list)
    source_event_ids: list[str] = field(default_factory=list)
    information_loss_notes: str | None = None
    confidence: float | None = None
    reviewed_by: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "period": self.period,
            "type": self.type,
            "summary": self.summary,
            "themes": list(self.themes),
            "key_decisions": [{"date": d.date, "decision": d.decision} for d in self.key_decisions],
            "metrics": dict(self.metrics),
            "source_count": self.source_count,
            "source_daily_paths": list(self.source_daily_paths),
            "source_event_ids": list(self.source_event_ids),
        }
        if self.information_loss_notes is not None:
            payload["information_loss_notes"] = self.information_loss_notes
        if self.confidence is not None:
            payload["confidence"] = self.confidence
        if self.reviewed_by is not None:
            payload["reviewed_by"] = self.reviewed_by
        return payload

    @classmethod
    def from_dict(cls, payload: object) -> ArchivalMemory:
        data = _require_object(payload, "archival memory")
        decisions = [
            ArchivedDecision(date=str(item.get("date", "")), decision=str(item.get("decision", "")))
            for item in _list(data.get("key_decisions"))
            if isinstance(item, dict)
        ]
        raw_metrics = data.get("metrics")
        metrics = {
            str(k): v
            for k, v in (raw_metrics.items() if isinstance(raw_metrics, dict) else [])
            if isinstance(v, (int, float)) and not isinstance(v, bool)
        }
        confidence = data.get("confidence")
        if not isinstance(confidence, (int, float)) or isinstance(confidence, bool):
            confidence = None
        loss_notes = data.get("information_loss_notes")
        reviewed_by = data.get("reviewed_by")
        archive_type = data.get("type")
        source_count = data.get("source_count")
        return cls(
            period=str(data.get("period", "")),
            type=archive_type if archive_type in ("weekly", "monthly") else "weekly",
            summary=str(data.get("summary", "")),
            themes=_str_list(data.get("themes")),
            key_decisions=decisions,
            metrics=metrics,
            source_count=source_count if isinstance(source_count, int) and not isinstance(source_count, bool) else 0,
            source_daily_paths=_str_list(data.get("source_daily_paths")),
            source_event_ids=_str_list(data.get("source_event_ids")),
            information_loss_notes=loss_notes if isinstance(loss_notes, str) else None,
            confidence=confidence,
            reviewed_by=reviewed_by if isinstance(reviewed_by, str) else None,
        )


# Collaborator shapes


@dataclass
class SessionEntry:
    type: str  # working | scratch | decision
    content: str
    timestamp: str
    reasoning: str | None = None
    confidence: str | None = None


@dataclass
class SessionData:
    entries: list[SessionEntry]


@dataclass
class FileActivity:
    path: str
    event_count: int
    last_event_time: str
    max_priority: float
    types: set[str]
    latest_diff_summary: str | None = None


@dataclass
class AggregatedDecision:
    timestamp: str
    decision: str
    reasoning: str
    confidence: Literal["high", "medium", "low"] = "medium"


@dataclass
class SearchActivity:
    query: str
    results_count: int
    timestamp: str


@dataclass
class AggregatedEvents:
    file_activities: list[FileActivity]
    decisions: list[AggregatedDecision]
    scratch_entries: list[str]
    search_activities: list[SearchActivity] = field(default_factory=list)
    total_events: int = 0
    time_range: tuple[str, str] = ("", "")
    event_type_counts: dict[str, int] = field(default_factory=dict)


# Working memory


@dataclass
class WorkingMemory:
    """Rolling snapshot of the current session, refreshed by the micro-consolidator."""

    session_id: str
    started_at: str
    updated_at: str
    context_summary: str
    active_files: list[str] = field(default_factory=list)
    decisions: list[AggregatedDecision] = field(default_factory=list)
    scratch: str = ""
    retrieval_log: list[SearchActivity] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "started_at": self.started_at,
            "updated_at": self.updated_at,
            "context_summary": self.context_summary,
            "active_files": list(self.active_files),
            "decisions": [
                {
                    "timestamp": d.timestamp,
                    "decision": d.decision,
                    "reasoning": d.reasoning,
                    "confidence": d.confidence,
                }
                for d in self.decisions
            ],
            "scratch": self.scratch,
            "retrieval_log": [
                {"query": s.query, "results_count": s.results_count, "timestamp": s.timestamp}
                for s in self.retrieval_log
            ],
        }

    @classmethod
    def from_dict(cls, payload: object) -> WorkingMemory:
        data = _require_object(payload, "working memory")
        decisions = [
            AggregatedDecision(
                timestamp=str(item.get("timestamp", "")),
                decision=str(item.get("decision", "")),
                reasoning=str(item.get("reasoning", "")),
                confidence=_confidence(item.get("confidence")),
            )
            for item in _list(data.get("decisions"))
            if isinstance(item, dict)
        ]
        retrievals = [
            SearchActivity(
                query=str(item.get("query", "")),
                results_count=item["results_count"] if isinstance(item.get("results_count"), int) else 0,
                timestamp=str(item.get("timestamp", "")),
            )
            for item in _list(data.get("retrieval_log"))
            if isinstance(item, dict)
        ]
        return cls(
            session_id=str(data.get("session_id", "")),
            started_at=str(data.get("started_at", "")),
            updated_at=str(data.get("updated_at", "")),
            context_summary=str(data.get("context_summary", "")),
            active_files=_str_list(data.get("active_files")),
            decisions=decisions,
            scratch=str(data.get("scratch") or ""),
            retrieval_log=retrievals,
        )


@dataclass
class ConsolidationCursor:
    """Where the last micro-consolidation of a session stopped.

    Serialized with camelCase keys, matching cursors written by other brain clients.
    """

    last_consolidated_at: str
    last_event_id: str
    session_id: str
    consolidation_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastConsolidatedAt": self.last_consolidated_at,
            "lastEventId": self.last_event_id,
            "sessionId": self.session_id,
            "consolidationCount": self.consolidation_count,
        }

    @classmethod
    def from_dict(cls, payload: object) -> ConsolidationCursor:
        data = _require_object(payload, "consolidation cursor")
        last = data.get("lastConsolidatedAt")
        if not isinstance(last, str) or not last:
            raise ValueError("consolidation cursor has no lastConsolidatedAt")
        count = data.get("consolidationCount")
        return cls(
            last_consolidated_at=last,
            last_event_id=str(data.get("lastEventId") or ""),
            session_id=str(data.get("sessionId") or ""),
            consolidation_count=count if isinstance(count, int) and not isinstance(count, bool) else 0,
        )
