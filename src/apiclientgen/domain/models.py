from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class HttpVerb(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class ParameterRole(str, Enum):
    PATH = "path"
    QUERY = "query"
    BODY = "body"
    IGNORED = "ignored"


class ResolvedType(BaseModel):
    """Target-language type text plus the shared-type symbols it needs imported."""

    model_config = ConfigDict(frozen=True)

    expression: str
    import_names: tuple[str, ...] = ()


class Parameter(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    resolved_type: ResolvedType
    role: ParameterRole
    binding_key: Optional[str] = None  # None means "the whole object" for Query/Body
    optional: bool = False


class Endpoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    method_name: str
    http_verb: HttpVerb
    route_template: str  # relative to BASE_URL, ":key" placeholders
    parameters: tuple[Parameter, ...] = ()
    return_type: ResolvedType
    required_imports: tuple[str, ...] = ()

    @property
    def client_parameters(self) -> tuple[Parameter, ...]:
        return tuple(p for p in self.parameters if p.role is not ParameterRole.IGNORED)

    def params_with_role(self, role: ParameterRole) -> tuple[Parameter, ...]:
        return tuple(p for p in self.parameters if p.role is role)

    @property
    def body_parameter(self) -> Optional[Parameter]:
        found = self.params_with_role(ParameterRole.BODY)
        return found[0] if found else None


class EndpointGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    base_path: str
    source_file_path: str  # workspace-relative, forward slashes
    folder: str = ""  # output sub-folder mirroring the controller location


class GeneratedFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    relative_path: str
    contents: str
    class_name: str = ""


class ClientDescriptor(BaseModel):
    """What the manifest needs to know about one written client."""

    model_config = ConfigDict(frozen=True)

    class_name: str
    import_path: str
    endpoint_count: int = Field(default=0, ge=0)
