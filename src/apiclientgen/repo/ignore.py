from __future__ import annotations

from pathlib import Path
from typing import Iterable

DEFAULT_IGNORES = {
    ".git",
    "node_modules",
    "dist",
    "build",
    "coverage",
    ".nx",
    ".angular",
    "tmp",
}


def should_ignore_path(rel_path: Path, ignores: Iterable[str] = DEFAULT_IGNORES) -> bool:
    ignored = set(ignores)
    return any(part in ignored for part in rel_path.parts[:-1])
