"""Temporal consolidation pipeline: working memory, daily summaries, weekly and monthly archives."""

from brainvault.memory.archival import ArchivalRollup, RollupLimits, rollup_monthly, rollup_weekly
from brainvault.memory.daily import DailyConsolidationResult, DailyConsolidator
from brainvault.memory.dates import iso_week_of, week_date_range
from brainvault.memory.events import DefaultEventAggregator, EventLogReader, EventLogWriter
from brainvault.memory.sleep import SleepConsolidationResult, SleepConsolidator
from brainvault.memory.types import ArchivalMemory, DailyMemory, WorkingMemory
from brainvault.memory.working import MicroConsolidationResult, MicroConsolidator, WorkingMemoryWriter

__all__ = [
    "ArchivalMemory",
    "ArchivalRollup",
    "DailyConsolidationResult",
    "DailyConsolidator",
    "DailyMemory",
    "DefaultEventAggregator",
    "EventLogReader",
    "EventLogWriter",
    "MicroConsolidationResult",
    "MicroConsolidator",
    "RollupLimits",
    "SleepConsolidationResult",
    "SleepConsolidator",
    "WorkingMemory",
    "WorkingMemoryWriter",
    "iso_week_of",
    "rollup_monthly",
    "rollup_weekly",
    "week_date_range",
]
