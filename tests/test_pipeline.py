from pathlib import Path

import pytest

from apiclientgen.config import GeneratorConfig
from apiclientgen.errors import ProjectConfigNotFoundError
from apiclientgen.orchestrator.pipeline import analyze_workspace, run_generate

from conftest import add_controller, write

API_DIR = "packages/api-client/src/api"
MANIFEST = "packages/api-client/src/index.ts"

EXAMPLES = """
import { Controller, Get, Post, Body, Param, Session } from '@nestjs/common';
import { API_PREFIX, ExampleDto, CreateExampleDto } from '@ai-nx-starter/types';

@Controller(`${API_PREFIX}/examples/examples`)
export class ExamplesController {
  @Get(':id')
  async findOne(@Param('id') id: string): Promise<ExampleDto> {
    return null as any;
  }

  @Post()
  async create(@Body() dto: CreateExampleDto, @Session() session: any): Promise<ExampleDto> {
    return null as any;
  }
}
"""

AUTH = """
import { Controller, Post, Body } from '@nestjs/common';
import { LoginDto, AuthResponseDto } from '@ai-nx-starter/types';

@Controller('auth')
export class AuthController {
  @Post('login')
  login(@Body() dto: LoginDto): Promise<AuthResponseDto> {
    return null as any;
  }
}
"""

NO_ENDPOINTS = """
import { Controller } from '@nestjs/common';

@Controller('health')
export class HealthController {
  ping() {
    return 'ok';
  }
}
"""


@pytest.fixture
def populated(workspace: Path) -> Path:
    add_controller(workspace, "features/examples/examples.controller.ts", EXAMPLES)
    add_controller(workspace, "auth/auth.controller.ts", AUTH)
    add_controller(workspace, "health/health.controller.ts", NO_ENDPOINTS)
    return workspace


def snapshot(root: Path) -> dict[str, bytes]:
    base = root / "packages/api-client/src"
    return {p.relative_to(base).as_posix(): p.read_bytes() for p in sorted(base.rglob("*")) if p.is_file()}


def test_generate_writes_clients_and_manifest(populated: Path):
    result = run_generate(populated)

    assert result.api_prefix == "ai-nx-starter/rest/api/v2"
    assert result.files_scanned == 3
    assert result.controllers_found == 3
    assert sorted(c.class_name for c in result.clients) == ["ApiAuthService", "ApiExamplesService"]
    assert result.output_dir == API_DIR
    assert result.manifest_path == MANIFEST
    assert sorted(result.written) == [
        f"{API_DIR}/auth/api-auth.service.ts",
        f"{API_DIR}/features/examples/api-examples.service.ts",
    ]

    examples = (populated / API_DIR / "features/examples/api-examples.service.ts").read_text(encoding="utf-8")
    assert "findOne(id: string): Observable<ExampleDto> {" in examples
    assert "const url = `${this.BASE_URL}/examples/examples/${id}`;" in examples
    assert "create(dto: CreateExampleDto): Observable<ExampleDto> {" in examples
    assert "session" not in examples
    assert "import { ExampleDto, CreateExampleDto } from '@ai-nx-starter/types';" in examples

    manifest = (populated / MANIFEST).read_text(encoding="utf-8")
    assert manifest.index("ApiAuthService") < manifest.index("ApiExamplesService")
    assert "export { ApiAuthService } from './api/auth/api-auth.service';" in manifest
    assert "export { ApiExamplesService } from './api/features/examples/api-examples.service';" in manifest


def test_zero_endpoint_controller_produces_nothing(populated: Path):
    run_generate(populated)

    assert not list((populated / API_DIR).rglob("*health*"))
    assert "Health" not in (populated / MANIFEST).read_text(encoding="utf-8")


def test_generate_is_idempotent(populated: Path):
    run_generate(populated)
    first = snapshot(populated)
    run_generate(populated)
    assert snapshot(populated) == first


def test_stale_generated_files_are_removed(populated: Path):
    stale = populated / API_DIR / "old/api-old.service.ts"
    write(stale, "export class ApiOldService {}\n")

    run_generate(populated)

    assert not stale.exists()
    assert not (populated / API_DIR / "old").exists()


def test_hand_written_services_next_to_output_are_kept(populated: Path):
    base = populated / "packages/api-client/src/services/base-api.service.ts"
    write(base, "export abstract class BaseApiService {}\n")

    run_generate(populated)

    assert base.read_text(encoding="utf-8") == "export abstract class BaseApiService {}\n"


def test_unparsable_controller_is_skipped(populated: Path):
    add_controller(populated, "broken/broken.controller.ts", "export class Broken { @Get() x( {\n")

    result = run_generate(populated)

    assert result.skipped_files == ["apps/web-server/src/app/broken/broken.controller.ts"]
    assert len(result.clients) == 2


def test_missing_tsconfig_aborts(populated: Path):
    (populated / "tsconfig.base.json").unlink()
    with pytest.raises(ProjectConfigNotFoundError):
        run_generate(populated)
    assert not (populated / MANIFEST).exists()


def test_no_controllers_still_writes_manifest(workspace: Path):
    result = run_generate(workspace)

    assert result.clients == []
    manifest = (workspace / MANIFEST).read_text(encoding="utf-8")
    assert "export { BaseApiService } from './services/base-api.service';" in manifest


def test_default_prefix_is_used_when_constant_is_missing(populated: Path):
    (populated / "packages/types/src/constants/api.ts").unlink()
    config = GeneratorConfig(default_api_prefix="ai-nx-starter/rest/api/v2")

    analysis = analyze_workspace(populated, config)

    routes = {e.method_name: e.route_template for plan in analysis.plans for e in plan.endpoints}
    assert routes["findOne"] == "examples/examples/:id"
    assert routes["login"] == "auth/login"


def test_analyze_does_not_write(populated: Path):
    analysis = analyze_workspace(populated)

    assert [p.group.name for p in analysis.plans] == ["AuthController", "ExamplesController"]
    assert not (populated / "packages/api-client").exists()


def test_types_reached_through_namespace_import_are_imported(workspace: Path):
    add_controller(
        workspace,
        "things/things.controller.ts",
        """
        import { Controller, Get, Param } from '@nestjs/common';
        import * as types from '@ai-nx-starter/types';

        @Controller('things')
        export class ThingsController {
          @Get(':id')
          find(@Param('id') id: string): Promise<types.ThingDto> {
            return null as any;
          }
        }
        """,
    )

    run_generate(workspace)

    src = (workspace / API_DIR / "things/api-things.service.ts").read_text(encoding="utf-8")
    assert "find(id: string): Observable<ThingDto> {" in src
    assert "import { ThingDto } from '@ai-nx-starter/types';" in src
