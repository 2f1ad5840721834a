"""Load :class:`Config` from a JSON file."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import ValidationError

from brainvault.config.schema import Config
from brainvault.logging import get_logger

logger = get_logger(__name__)


def get_config_path() -> Path:
    return Path.home() / ".brainvault" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """Read the config file, falling back to defaults when it is absent or invalid."""
    path = config_path or get_config_path()
    if not path.exists():
        return Config()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Config.model_validate(data)
    except (json.JSONDecodeError, ValidationError, OSError) as exc:
        logger.warning("Failed to load config, using defaults", file=path, error=str(exc))
        return Config()


def save_config(config: Config, config_path: Path | None = None) -> Path:
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.model_dump(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    return path
