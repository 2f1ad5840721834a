"""Filesystem helpers shared by the memory pipeline."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Create *path* (and parents) if missing and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def atomic_write_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Write *content* to a sibling temp file, then rename it over *path*.

    Readers never observe a half-written file; the parent directory must exist.
    """
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as fp:
            fp.write(content)
            fp.flush()
            os.fsync(fp.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def append_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Append *content* to *path* and fsync; the parent directory must exist."""
    with open(path, "a", encoding=encoding) as fp:
        fp.write(content)
        fp.flush()
        os.fsync(fp.fileno())
