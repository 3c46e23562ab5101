from pathlib import Path

from apiclientgen.config import GeneratorConfig
from apiclientgen.domain.models import HttpVerb, ParameterRole
from apiclientgen.extractors.nestjs.controllers import discover_controllers
from apiclientgen.extractors.nestjs.endpoints import EndpointExtractor
from apiclientgen.extractors.nestjs.type_resolver import TypeResolver
from apiclientgen.extractors.typescript.source import load_project
from apiclientgen.orchestrator.pipeline import analyze_workspace

from conftest import add_controller

PREFIX = "ai-nx-starter/rest/api/v2"

TEAM = """
import { Controller, Get, Post, Put, Delete, Param, Query, Body, Session, Req } from '@nestjs/common';
import { API_PREFIX, ClientTeamDto, CreateTeamDto, UpdateTeamDto, TeamMemberDto } from '@ai-nx-starter/types';
import { SessionInfo } from '@ai-nx-starter/backend-common';

@Controller(`${API_PREFIX}/:orgCode/teams`)
export class TeamController {
  @Get()
  async findAll(@Query('limit') limit?: number, @Session() session: SessionInfo): Promise<ClientTeamDto[]> {
    return [];
  }

  @Get(':id/members/:userId')
  async member(
    @Param('orgCode') orgCode: string,
    @Param('id') id: string,
    @Param('userId') memberId: string,
    @Req() req: any,
  ): Promise<TeamMemberDto> {
    return null as any;
  }

  @Post()
  async create(@Body() dto: CreateTeamDto, @Session() session: SessionInfo): Promise<ClientTeamDto> {
    return null as any;
  }

  @Put(':id')
  async update(@Param('id') id: string, @Body() dto: UpdateTeamDto, @Body() extra: CreateTeamDto): Promise<ClientTeamDto> {
    return null as any;
  }

  @Delete(':id')
  async remove(@Param('id') id: string, @Query('force') force: boolean | undefined): Promise<void> {}

  @Get('search')
  async search(@Body() ignored: CreateTeamDto, @Query() filter: Partial<ClientTeamDto>): Promise<{ items: ClientTeamDto[]; total: number }> {
    return null as any;
  }

  private helper(): string {
    return '';
  }
}
"""


def extract(root: Path):
    config = GeneratorConfig()
    project = load_project(root, config.tsconfig_path, config.controller_globs)
    [controller] = discover_controllers(project, config, PREFIX)
    extractor = EndpointExtractor(config, TypeResolver(config.is_shared_types_module, config.dto_suffix), PREFIX)
    return {e.method_name: e for e in extractor.extract(controller)}, extractor


def test_methods_keep_declaration_order_and_skip_undecorated(workspace: Path):
    add_controller(workspace, "features/team/team.controller.ts", TEAM)
    config = GeneratorConfig()
    project = load_project(workspace, config.tsconfig_path, config.controller_globs)
    [controller] = discover_controllers(project, config, PREFIX)
    extractor = EndpointExtractor(config, TypeResolver(config.is_shared_types_module), PREFIX)

    names = [e.method_name for e in extractor.extract(controller)]
    assert names == ["findAll", "member", "create", "update", "remove", "search"]


def test_prefix_and_org_code_are_stripped_from_routes(workspace: Path):
    add_controller(workspace, "features/team/team.controller.ts", TEAM)
    endpoints, _ = extract(workspace)

    assert endpoints["findAll"].route_template == "teams"
    assert endpoints["member"].route_template == "teams/:id/members/:userId"
    assert endpoints["update"].http_verb is HttpVerb.PUT
    assert ":orgCode" not in endpoints["member"].route_template


def test_org_code_and_request_params_are_ignored(workspace: Path):
    add_controller(workspace, "features/team/team.controller.ts", TEAM)
    endpoints, _ = extract(workspace)
    member = endpoints["member"]

    roles = {p.name: p.role for p in member.parameters}
    assert roles == {
        "orgCode": ParameterRole.IGNORED,
        "id": ParameterRole.PATH,
        "memberId": ParameterRole.PATH,
        "req": ParameterRole.IGNORED,
    }
    assert [p.name for p in member.client_parameters] == ["id", "memberId"]
    assert [p.binding_key for p in member.client_parameters] == ["id", "userId"]
    assert member.return_type.expression == "TeamMemberDto"
    assert member.required_imports == ("TeamMemberDto",)


def test_session_parameter_is_stripped(workspace: Path):
    add_controller(workspace, "features/team/team.controller.ts", TEAM)
    endpoints, _ = extract(workspace)

    find_all = endpoints["findAll"]
    assert len(find_all.client_parameters) < len(find_all.parameters)
    assert [p.name for p in find_all.client_parameters] == ["limit"]
    limit = find_all.client_parameters[0]
    assert limit.role is ParameterRole.QUERY
    assert limit.optional is True
    assert limit.binding_key == "limit"
    assert find_all.return_type.expression == "ClientTeamDto[]"


def test_imports_are_accumulated_without_duplicates(workspace: Path):
    add_controller(workspace, "features/team/team.controller.ts", TEAM)
    endpoints, _ = extract(workspace)

    create = endpoints["create"]
    assert create.body_parameter.name == "dto"
    assert create.required_imports == ("ClientTeamDto", "CreateTeamDto")


def test_only_first_body_is_kept(workspace: Path):
    add_controller(workspace, "features/team/team.controller.ts", TEAM)
    endpoints, _ = extract(workspace)

    update = endpoints["update"]
    bodies = update.params_with_role(ParameterRole.BODY)
    assert [p.name for p in bodies] == ["dto"]
    assert "CreateTeamDto" not in update.required_imports
    assert update.required_imports == ("ClientTeamDto", "UpdateTeamDto")


def test_union_with_undefined_marks_optional(workspace: Path):
    add_controller(workspace, "features/team/team.controller.ts", TEAM)
    endpoints, _ = extract(workspace)

    remove = endpoints["remove"]
    force = remove.params_with_role(ParameterRole.QUERY)[0]
    assert force.optional is True
    assert force.resolved_type.expression == "boolean"
    assert remove.return_type.expression == "void"
    assert remove.required_imports == ()


def test_get_body_is_dropped_and_keyless_query_kept(workspace: Path):
    add_controller(workspace, "features/team/team.controller.ts", TEAM)
    endpoints, _ = extract(workspace)

    search = endpoints["search"]
    assert search.body_parameter is None
    [query] = search.params_with_role(ParameterRole.QUERY)
    assert query.binding_key is None
    assert query.resolved_type.expression == "Partial<ClientTeamDto>"
    assert search.return_type.expression == "{ items: ClientTeamDto[]; total: number }"
    assert search.required_imports == ("ClientTeamDto",)


def test_route_template_joins_and_normalizes():
    config = GeneratorConfig()
    extractor = EndpointExtractor(config, TypeResolver(config.is_shared_types_module), PREFIX)

    assert extractor.route_template("examples/examples", ":id") == "examples/examples/:id"
    assert extractor.route_template("/teams/", "") == "teams"
    assert extractor.route_template(f"{PREFIX}/:orgCode/teams", "/:id//members/") == "teams/:id/members"


def test_org_code_written_through_shared_constant_is_stripped(workspace: Path):
    add_controller(
        workspace,
        "features/users/users.controller.ts",
        """
        import { Controller, Get, Param } from '@nestjs/common';
        import { ORG_CODE_PATH_PARAM, UserDto } from '@ai-nx-starter/types';

        @Controller(`:${ORG_CODE_PATH_PARAM}/users`)
        export class UsersController {
          @Get(':id')
          getUser(@Param(`${ORG_CODE_PATH_PARAM}`) code: string, @Param('id') id: string): Promise<UserDto> {
            return null as any;
          }

          @Get()
          getUsers(@Param(ORG_CODE_PATH_PARAM) code: string): Promise<UserDto[]> {
            return [];
          }
        }
        """,
    )

    [plan] = analyze_workspace(workspace).plans
    get_user, get_users = plan.endpoints

    assert get_user.route_template == "users/:id"
    assert get_users.route_template == "users"
    assert [p.name for p in get_user.client_parameters] == ["id"]
    assert get_users.client_parameters == ()
    assert get_user.parameters[0].binding_key == "orgCode"
