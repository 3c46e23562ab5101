from pathlib import Path
import textwrap

import pytest

CONTROLLERS = "apps/web-server/src/app"


def write(p: Path, s: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(textwrap.dedent(s), encoding="utf-8")


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Minimal NestJS/Angular monorepo layout with tsconfig and the API_PREFIX constant."""
    root = tmp_path / "repo"
    write(root / "tsconfig.base.json", '{ "compilerOptions": {} }\n')
    write(
        root / "packages/types/src/constants/api.ts",
        """
        export const API_PREFIX = 'ai-nx-starter/rest/api/v2';
        export const ORG_CODE_PATH_PARAM = 'orgCode';
        """,
    )
    return root


def add_controller(root: Path, rel: str, source: str) -> Path:
    path = root / CONTROLLERS / rel
    write(path, source)
    return path
