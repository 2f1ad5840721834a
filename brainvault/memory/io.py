"""Memory artifact I/O with atomic write semantics."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from brainvault.utils.helpers import append_text, atomic_write_text, ensure_dir


def to_pretty_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2) + "\n"


class MemoryIO:
    """Thin I/O adapter so the consolidators can be tested against a temp vault."""

    @staticmethod
    def write_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
        ensure_dir(path.parent)
        atomic_write_text(path, content, encoding=encoding)

    @staticmethod
    def append_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
        ensure_dir(path.parent)
        append_text(path, content, encoding=encoding)

    @classmethod
    def write_json(cls, path: Path, value: Any) -> None:
        cls.write_text(path, to_pretty_json(value))

    @staticmethod
    def exists(path: Path) -> bool:
        return path.is_file()

    @staticmethod
    def read_json(path: Path) -> Any | None:
        """Parsed JSON from *path*, or None when the file is missing or not valid JSON.

        Other I/O errors (permissions, is-a-directory) propagate.
        """
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None
