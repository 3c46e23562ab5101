from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Iterable

from apiclientgen.domain.models import GeneratedFile

logger = logging.getLogger(__name__)


def empty_directory(path: Path) -> int:
    """
    Remove everything under path, keeping path itself (created if missing).
    Returns how many entries were removed. The directory must be generator-owned.
    """
    if not path.exists():
        path.mkdir(parents=True, exist_ok=True)
        return 0

    removed = 0
    for child in sorted(path.iterdir()):
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()
        removed += 1
    return removed


def write_text(path: Path, contents: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding="utf-8", newline="\n")


def synchronize_directory(output_dir: Path, files: Iterable[GeneratedFile]) -> list[Path]:
    """Clear output_dir, then write every generated file beneath it."""
    removed = empty_directory(output_dir)
    logger.info("Emptied directory: %s (%d entries removed)", output_dir, removed)

    written: list[Path] = []
    for f in files:
        target = output_dir / f.relative_path
        write_text(target, f.contents)
        logger.debug("Wrote %s", target)
        written.append(target)
    return written
