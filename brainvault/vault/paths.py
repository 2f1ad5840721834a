"""Directory layout of a brain inside a vault."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class BrainPaths:
    vault: Path
    brain: Path
    working: Path
    daily: Path
    akashic_daily: Path
    weekly_archive: Path
    monthly_archive: Path

    @classmethod
    def from_vault(cls, vault: Path | str, brain_dir: str = "_brain") -> BrainPaths:
        root = Path(vault).expanduser().resolve()
        brain = root / brain_dir
        return cls(
            vault=root,
            brain=brain,
            working=brain / "working",
            daily=brain / "memory" / "daily",
            akashic_daily=brain / "akashic" / "daily",
            weekly_archive=brain / "archive" / "weekly",
            monthly_archive=brain / "archive" / "monthly",
        )
