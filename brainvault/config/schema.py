"""Configuration schema for the consolidation pipeline."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field, PositiveInt, field_validator

from brainvault.vault.paths import BrainPaths


def _resolve_env(value: str) -> str:
    """Expand a ``$NAME`` reference from the environment; other values pass through."""
    if value.startswith("$") and len(value) > 1:
        return os.environ.get(value[1:], value)
    return value


class ConsolidationConfig(BaseModel):
    """Window length and the caps applied at each rollup level."""

    window_days: PositiveInt = 31
    micro_interval_minutes: int = Field(default=30, ge=5, le=120)
    daily_max_files: PositiveInt = 30
    daily_max_topics: PositiveInt = 10
    daily_max_open_questions: PositiveInt = 10
    weekly_max_themes: PositiveInt = 15
    weekly_max_decisions: PositiveInt = 20
    monthly_max_themes: PositiveInt = 20
    monthly_max_decisions: PositiveInt = 30


class LoggingConfig(BaseModel):
    json_output: bool = False
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return level


class Config(BaseModel):
    vault_path: str = "~/brainvault"
    brain_dir: str = "_brain"
    consolidation: ConsolidationConfig = Field(default_factory=ConsolidationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def workspace_path(self) -> Path:
        return Path(_resolve_env(self.vault_path)).expanduser()

    @property
    def paths(self) -> BrainPaths:
        return BrainPaths.from_vault(self.workspace_path, self.brain_dir)
