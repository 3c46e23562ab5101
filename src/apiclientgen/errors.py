from __future__ import annotations

from pathlib import Path


class GeneratorError(Exception):
    """Base class for errors raised by the client generator."""


class ProjectConfigNotFoundError(GeneratorError):
    def __init__(self, path: Path) -> None:
        super().__init__(f"TypeScript project configuration not found: {path}")
        self.path = path


class SourceParseError(GeneratorError):
    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Could not parse {path}: {reason}")
        self.path = path
        self.reason = reason
