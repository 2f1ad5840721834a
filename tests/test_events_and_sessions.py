import json
from datetime import date, datetime, timezone
from pathlib import Path

import pytest

from brainvault.memory.events import DefaultEventAggregator, EventLogReader, EventLogWriter
from brainvault.memory.sessions import (
    decode_session_data,
    read_latest_continuation_notes,
    read_session_entries_for_date,
    read_session_file,
)
from brainvault.memory.types import SessionEntry
from brainvault.vault.paths import BrainPaths


def _entry(kind: str, content: str, ts: str, **extra) -> SessionEntry:
    return SessionEntry(type=kind, content=content, timestamp=ts, **extra)


def test_aggregator_merges_file_events_per_path() -> None:
    events = [
        {"timestamp": "2026-02-20T09:00:00Z", "type": "file.created", "priority": 40, "data": {"path": "a.md", "diff_summary": "Created"}},
        {"timestamp": "2026-02-20T12:00:00Z", "type": "file.modified", "priority": 70, "data": {"path": "a.md", "diff_summary": "Edited"}},
        {"timestamp": "2026-02-20T10:00:00Z", "type": "file.modified", "priority": 10, "data": {"path": "b.md"}},
        {"timestamp": "2026-02-20T11:00:00Z", "type": "search.performed", "data": {"metadata": {"query": "x"}}},
        {"timestamp": "2026-02-20T11:30:00Z", "type": "file.modified", "data": {}},
    ]
    aggregated = DefaultEventAggregator().aggregate(events, [])

    assert [a.path for a in aggregated.file_activities] == ["a.md", "b.md"]
    first = aggregated.file_activities[0]
    assert first.event_count == 2
    assert first.max_priority == 70
    assert first.types == {"file.created", "file.modified"}
    assert first.latest_diff_summary == "Edited"
    assert aggregated.file_activities[1].latest_diff_summary is None
    assert aggregated.total_events == 5
    assert aggregated.time_range == ("2026-02-20T09:00:00Z", "2026-02-20T12:00:00Z")
    assert aggregated.event_type_counts["file.modified"] == 3


def test_aggregator_orders_equal_timestamps_by_event_count() -> None:
    ts = "2026-02-20T09:00:00Z"
    events = [
        {"timestamp": ts, "type": "file.modified", "data": {"path": "quiet.md"}},
        {"timestamp": ts, "type": "file.modified", "data": {"path": "busy.md"}},
        {"timestamp": ts, "type": "file.modified", "data": {"path": "busy.md"}},
    ]
    aggregated = DefaultEventAggregator().aggregate(events, [])
    assert [a.path for a in aggregated.file_activities] == ["busy.md", "quiet.md"]


def test_aggregator_decisions_and_scratch_in_discovery_order() -> None:
    entries = [
        _entry("decision", "second", "2026-02-20T10:00:00Z", confidence="high"),
        _entry("decision", "first", "2026-02-20T09:00:00Z", reasoning="why", confidence="certain"),
        _entry("scratch", "note b", "2026-02-20T11:00:00Z"),
        _entry("scratch", "note a", "2026-02-20T08:00:00Z"),
        _entry("scratch", "note b", "2026-02-20T12:00:00Z"),
        _entry("working", "ignored", "2026-02-20T12:00:00Z"),
    ]
    aggregated = DefaultEventAggregator().aggregate([], entries)

    assert [(d.decision, d.reasoning, d.confidence) for d in aggregated.decisions] == [
        ("first", "why", "medium"),
        ("second", "No reasoning", "high"),
    ]
    assert aggregated.scratch_entries == ["note a", "note b"]


def test_decode_session_data_reports_reason() -> None:
    assert decode_session_data([]) == (None, "not_object")
    assert decode_session_data({"entries": "nope"}) == (None, "missing_entries")
    assert decode_session_data({"entries": [{"type": "scratch", "content": 1, "timestamp": "t"}]}) == (
        None,
        "invalid_entry:0",
    )
    data, reason = decode_session_data(
        {"entries": [{"type": "decision", "content": "c", "timestamp": "2026-02-20T00:00:00Z", "reasoning": "r"}]}
    )
    assert reason == "ok"
    assert data is not None
    assert data.entries[0].reasoning == "r"


def test_read_session_entries_filters_by_date_prefix(tmp_path: Path) -> None:
    working = tmp_path / "working"
    (working / "nested").mkdir(parents=True)
    (working / "nested" / "x.session.json").write_text(
        json.dumps(
            {
                "entries": [
                    {"type": "scratch", "content": "today", "timestamp": "2026-02-20T23:59:59Z"},
                    {"type": "scratch", "content": "tomorrow", "timestamp": "2026-02-21T00:00:00Z"},
                ]
            }
        ),
        encoding="utf-8",
    )
    (working / "notes.json").write_text(json.dumps({"entries": []}), encoding="utf-8")

    entries = read_session_entries_for_date(working, "2026-02-20")
    assert [e.content for e in entries] == ["today"]
    assert read_session_entries_for_date(tmp_path / "missing", "2026-02-20") == []


def test_read_latest_continuation_notes_picks_max_updated_at(tmp_path: Path) -> None:
    (tmp_path / "a.working_memory.json").write_text(
        json.dumps({"context_summary": "newest", "updated_at": "2026-02-20T10:00:00Z"}), encoding="utf-8"
    )
    (tmp_path / "b.working_memory.json").write_text(
        json.dumps({"context_summary": "older", "updated_at": "2026-02-19T10:00:00Z"}), encoding="utf-8"
    )
    (tmp_path / "c.working_memory.json").write_text(
        json.dumps({"context_summary": 5, "updated_at": "2099-01-01"}), encoding="utf-8"
    )
    assert read_latest_continuation_notes(tmp_path) == "newest"
    assert read_latest_continuation_notes(tmp_path / "missing") == ""


@pytest.mark.asyncio
async def test_event_log_reader_reads_jsonl_and_skips_bad_lines(tmp_path: Path) -> None:
    paths = BrainPaths.from_vault(tmp_path)
    paths.akashic_daily.mkdir(parents=True)
    (paths.akashic_daily / "2026-02-20.jsonl").write_text(
        '{"id": "1", "type": "file.modified"}\n\nnot json\n[1]\n{"id": "2", "type": "user.prompt"}\n',
        encoding="utf-8",
    )
    (paths.akashic_daily / "2026-02-21.jsonl").write_text('{"id": "3"}\n', encoding="utf-8")
    reader = EventLogReader(paths)

    events = await reader.read_date(date(2026, 2, 20))
    assert [e["id"] for e in events] == ["1", "2"]
    assert await reader.read_date(date(2026, 2, 22)) == []
    assert [e["id"] for e in await reader.read_range(date(2026, 2, 19), date(2026, 2, 21))] == ["1", "2", "3"]
    assert await reader.count(date(2026, 2, 21)) == 1
    assert await reader.count() == 3


def test_aggregator_skips_events_with_unhashable_type() -> None:
    events = [
        {"timestamp": "2026-02-20T09:00:00Z", "type": ["file.modified"], "data": {"path": "odd.md"}},
        {"timestamp": "2026-02-20T09:05:00Z", "type": {"k": 1}, "data": {"path": "odder.md"}},
        {"timestamp": "2026-02-20T09:10:00Z", "type": "file.modified", "data": {"path": "fine.md"}},
    ]
    aggregated = DefaultEventAggregator().aggregate(events, [])
    assert [a.path for a in aggregated.file_activities] == ["fine.md"]
    assert aggregated.total_events == 3


def _search(ts: str, query: object, count: object = 3) -> dict:
    return {"timestamp": ts, "type": "search.performed", "data": {"metadata": {"query": query, "results_count": count}}}


def test_aggregator_collects_searches_and_collapses_quick_repeats() -> None:
    events = [
        _search("2026-02-20T10:05:00.000Z", "iso weeks", 7),
        _search("2026-02-20T10:00:00.000Z", "iso weeks", 2),
        _search("2026-02-20T10:00:30.000Z", "iso weeks", 4),
        _search("2026-02-20T10:00:10.000Z", "rollup caps", "many"),
        _search("2026-02-20T10:01:00.000Z", ""),
        {"timestamp": "2026-02-20T10:02:00.000Z", "type": "search.performed", "data": {}},
    ]
    searches = DefaultEventAggregator().aggregate(events, []).search_activities
    assert [(s.query, s.results_count, s.timestamp) for s in searches] == [
        ("rollup caps", 0, "2026-02-20T10:00:10.000Z"),
        ("iso weeks", 4, "2026-02-20T10:00:30.000Z"),
        ("iso weeks", 7, "2026-02-20T10:05:00.000Z"),
    ]


@pytest.mark.asyncio
async def test_event_log_writer_appends_stamped_events(tmp_path: Path) -> None:
    paths = BrainPaths.from_vault(tmp_path)
    moment = datetime(2026, 2, 20, 23, 59, 59, 123000, tzinfo=timezone.utc)
    writer = EventLogWriter(paths, now=lambda: moment)

    first = await writer.log({"type": "memory.consolidated", "source": "consolidator", "data": {}})
    await writer.log({"type": "user.prompt", "data": {}})

    assert first["timestamp"] == "2026-02-20T23:59:59.123Z"
    assert first["id"].startswith("evt-")
    events = await EventLogReader(paths).read_date(date(2026, 2, 20))
    assert [e["type"] for e in events] == ["memory.consolidated", "user.prompt"]
    assert events[0] == first
    assert events[0]["id"] != events[1]["id"]


def test_read_session_file_only_reads_live_session(tmp_path: Path) -> None:
    (tmp_path / "nested").mkdir()
    (tmp_path / "nested" / "old.session.json").write_text(
        json.dumps({"entries": [{"type": "scratch", "content": "old", "timestamp": "2026-02-19T00:00:00Z"}]}),
        encoding="utf-8",
    )
    assert read_session_file(tmp_path) == []
    (tmp_path / "session.json").write_text(
        json.dumps({"entries": [{"type": "scratch", "content": "live", "timestamp": "2026-02-20T00:00:00Z"}]}),
        encoding="utf-8",
    )
    assert [e.content for e in read_session_file(tmp_path)] == ["live"]
    (tmp_path / "session.json").write_text(json.dumps({"entries": [{"type": 1}]}), encoding="utf-8")
    assert read_session_file(tmp_path) == []
