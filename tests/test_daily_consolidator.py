import json
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

from brainvault.config.schema import ConsolidationConfig
from brainvault.memory.daily import (
    DailyConsolidator,
    extract_open_questions,
    extract_topics,
    render_daily_markdown,
)
from brainvault.memory.dates import date_key
from brainvault.memory.types import DailyMemory
from brainvault.vault.paths import BrainPaths


class _FakeEventReader:
    def __init__(self, events_by_day: dict[str, list[dict]] | None = None) -> None:
        self.events_by_day = events_by_day or {}
        self.calls: list[str] = []

    async def read_date(self, day) -> list[dict]:
        key = date_key(day)
        self.calls.append(key)
        return list(self.events_by_day.get(key, []))


def _file_event(path: str, ts: str, diff: str | None = None, kind: str = "file.modified") -> dict:
    data: dict = {"path": path}
    if diff is not None:
        data["diff_summary"] = diff
    return {"id": f"evt-{path}-{ts}", "timestamp": ts, "type": kind, "source": "thalamus", "priority": 50, "data": data}


def _write_json(path: Path, payload: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")


def test_extract_topics_skips_generic_directories_and_ranks() -> None:
    topics = extract_topics(
        [
            "src/memory/daily.py",
            "src/memory/sleep.py",
            "docs/guide/intro.md",
            "lib/util.py",
            "README.md",
        ]
    )
    assert topics == ["memory", "docs", "guide"]


def test_extract_topics_caps_result() -> None:
    paths = [f"area{i:02d}/file.md" for i in range(12)]
    assert len(extract_topics(paths)) == 10
    assert extract_topics(paths, limit=3) == ["area00", "area01", "area02"]


def test_extract_open_questions_splits_on_periods_and_deduplicates() -> None:
    questions = extract_open_questions(
        [
            "Plain note without questions.",
            "Should we cap themes? We did. Is the ISO week right?",
            "Is the ISO week right?",
        ]
    )
    assert questions == ["Should we cap themes? We did", "Is the ISO week right?"]


def test_extract_open_questions_stops_at_limit() -> None:
    entries = [f"Question number {i}?" for i in range(15)]
    assert len(extract_open_questions(entries)) == 10


def test_render_daily_markdown_uses_placeholders_for_empty_sections() -> None:
    text = render_daily_markdown(DailyMemory(date="2026-02-20", summary="No activity recorded."))
    assert text.startswith("# Daily Summary: 2026-02-20\n")
    for placeholder in (
        "No decisions.",
        "No files changed.",
        "No topics identified.",
        "No open questions.",
        "No continuation notes.",
    ):
        assert placeholder in text


@pytest.mark.asyncio
async def test_consolidate_date_builds_and_persists_summary(tmp_path: Path) -> None:
    paths = BrainPaths.from_vault(tmp_path)
    reader = _FakeEventReader(
        {
            "2026-02-20": [
                _file_event("brain/memory/daily.py", "2026-02-20T09:00:00Z", "Added topics"),
                _file_event("brain/memory/daily.py", "2026-02-20T11:00:00Z", "Fixed ranking"),
                _file_event("brain/search/index.py", "2026-02-20T10:00:00Z"),
                {"id": "e4", "timestamp": "2026-02-20T12:00:00Z", "type": "user.prompt", "data": {}},
            ]
        }
    )
    _write_json(
        paths.working / "s1" / "main.session.json",
        {
            "entries": [
                {
                    "type": "decision",
                    "content": "Use ISO weeks",
                    "timestamp": "2026-02-20T08:00:00Z",
                    "reasoning": "Stable boundaries",
                },
                {"type": "scratch", "content": "Do we need monthly caps?", "timestamp": "2026-02-20T08:30:00Z"},
                {"type": "decision", "content": "Yesterday's call", "timestamp": "2026-02-19T08:00:00Z"},
            ]
        },
    )
    _write_json(paths.working / "a.working_memory.json", {"context_summary": "old", "updated_at": "2026-02-19T10:00:00Z"})
    _write_json(paths.working / "b.working_memory.json", {"context_summary": "Resume rollups", "updated_at": "2026-02-20T10:00:00Z"})

    consolidator = DailyConsolidator(paths, reader)
    result = await consolidator.consolidate_date(date(2026, 2, 20))

    daily = result.daily
    assert result.events_processed == 4
    assert daily.date == "2026-02-20"
    assert daily.summary == "2026-02-20: 2 files changed, 1 decisions made. brain, memory, search."
    assert [(f.path, f.summary) for f in daily.files_changed] == [
        ("brain/memory/daily.py", "Fixed ranking"),
        ("brain/search/index.py", "Modified"),
    ]
    assert [(d.decision, d.context) for d in daily.key_decisions] == [("Use ISO weeks", "Stable boundaries")]
    assert daily.topics == ["brain", "memory", "search"]
    assert daily.open_questions == ["Do we need monthly caps?"]
    assert daily.continuation_notes == "Resume rollups"

    stored = json.loads((paths.daily / "2026-02-20.json").read_text(encoding="utf-8"))
    assert stored == daily.to_dict()
    md = (paths.daily / "2026-02-20.md").read_text(encoding="utf-8")
    assert "1. Use ISO weeks - Stable boundaries" in md
    assert "- brain/search/index.py: Modified" in md


@pytest.mark.asyncio
async def test_consolidate_date_without_events_records_no_activity(tmp_path: Path) -> None:
    consolidator = DailyConsolidator(BrainPaths.from_vault(tmp_path), _FakeEventReader())
    result = await consolidator.consolidate_date(date(2026, 2, 21))
    assert result.events_processed == 0
    assert result.daily.summary == "No activity recorded."
    assert result.daily.continuation_notes == ""
    assert await consolidator.has_daily_summary(date(2026, 2, 21))


@pytest.mark.asyncio
async def test_consolidate_date_normalizes_to_utc_date_key(tmp_path: Path) -> None:
    reader = _FakeEventReader()
    consolidator = DailyConsolidator(BrainPaths.from_vault(tmp_path), reader)
    evening = datetime(2026, 2, 20, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    result = await consolidator.consolidate_date(evening)
    assert result.daily.date == "2026-02-21"
    assert reader.calls == ["2026-02-21"]


@pytest.mark.asyncio
async def test_consolidate_date_caps_files_from_config(tmp_path: Path) -> None:
    events = [_file_event(f"notes/n{i}.md", f"2026-02-20T10:{i:02d}:00Z") for i in range(40)]
    consolidator = DailyConsolidator(BrainPaths.from_vault(tmp_path), _FakeEventReader({"2026-02-20": events}))
    daily = (await consolidator.consolidate_date(date(2026, 2, 20))).daily
    assert len(daily.files_changed) == 30
    assert daily.files_changed[0].path == "notes/n39.md"

    small = DailyConsolidator(
        BrainPaths.from_vault(tmp_path),
        _FakeEventReader({"2026-02-20": events}),
        config=ConsolidationConfig(daily_max_files=5),
    )
    assert len((await small.consolidate_date(date(2026, 2, 20))).daily.files_changed) == 5


@pytest.mark.asyncio
async def test_consolidate_date_ignores_invalid_session_files(tmp_path: Path) -> None:
    paths = BrainPaths.from_vault(tmp_path)
    _write_json(paths.working / "bad.session.json", {"entries": [{"type": "decision"}]})
    (paths.working / "broken.session.json").write_text("{", encoding="utf-8")
    consolidator = DailyConsolidator(paths, _FakeEventReader())
    daily = (await consolidator.consolidate_date(date(2026, 2, 20))).daily
    assert daily.key_decisions == []


@pytest.mark.asyncio
async def test_consolidate_date_propagates_storage_errors(tmp_path: Path) -> None:
    paths = BrainPaths.from_vault(tmp_path)
    paths.daily.parent.mkdir(parents=True)
    paths.daily.write_text("not a directory", encoding="utf-8")
    consolidator = DailyConsolidator(paths, _FakeEventReader())
    with pytest.raises(OSError):
        await consolidator.consolidate_date(date(2026, 2, 20))


@pytest.mark.asyncio
async def test_read_daily_summary_missing_or_corrupt_returns_none(tmp_path: Path) -> None:
    paths = BrainPaths.from_vault(tmp_path)
    consolidator = DailyConsolidator(paths, _FakeEventReader())
    day = date(2026, 2, 20)
    assert not await consolidator.has_daily_summary(day)
    assert await consolidator.read_daily_summary(day) is None

    paths.daily.mkdir(parents=True)
    (paths.daily / "2026-02-20.json").write_text("{oops", encoding="utf-8")
    assert await consolidator.has_daily_summary(day)
    assert await consolidator.read_daily_summary(day) is None


@pytest.mark.asyncio
async def test_read_daily_summary_tolerates_wrongly_typed_lists(tmp_path: Path) -> None:
    paths = BrainPaths.from_vault(tmp_path)
    _write_json(
        paths.daily / "2026-02-16.json",
        {"date": "2026-02-16", "key_decisions": 5, "files_changed": {"path": "a.md"}, "topics": "memory"},
    )
    daily = await DailyConsolidator(paths, _FakeEventReader()).read_daily_summary(date(2026, 2, 16))
    assert daily is not None
    assert daily.date == "2026-02-16"
    assert daily.key_decisions == []
    assert daily.files_changed == []
    assert daily.topics == []


@pytest.mark.asyncio
async def test_read_daily_summary_returns_stored_memory(tmp_path: Path) -> None:
    consolidator = DailyConsolidator(BrainPaths.from_vault(tmp_path), _FakeEventReader())
    written = (await consolidator.consolidate_date(date(2026, 2, 20))).daily
    assert await consolidator.read_daily_summary(date(2026, 2, 20)) == written
