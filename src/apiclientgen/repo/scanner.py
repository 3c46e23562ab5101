from __future__ import annotations

from pathlib import Path
from typing import Iterable

from apiclientgen.repo.ignore import DEFAULT_IGNORES, should_ignore_path


def scan_source_files(
    workspace: Path,
    patterns: Iterable[str],
    ignores: Iterable[str] = DEFAULT_IGNORES,
) -> list[Path]:
    """
    Return absolute paths of files under workspace matching any glob pattern.
    Sorted and de-duplicated so that every run visits files in the same order.
    """
    workspace = workspace.resolve()
    ignores = set(ignores)
    seen: set[Path] = set()

    for pattern in patterns:
        for p in workspace.glob(pattern):
            if not p.is_file():
                continue
            if should_ignore_path(p.relative_to(workspace), ignores):
                continue
            seen.add(p.resolve())

    return sorted(seen, key=lambda p: p.as_posix())


def relative_posix(path: Path, root: Path) -> str:
    return path.resolve().relative_to(root.resolve()).as_posix()
