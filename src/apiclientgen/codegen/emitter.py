from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from apiclientgen.codegen.naming import client_class_name, client_file_name
from apiclientgen.config import GeneratorConfig
from apiclientgen.domain.models import (
    ClientDescriptor,
    Endpoint,
    EndpointGroup,
    GeneratedFile,
    HttpVerb,
    Parameter,
    ParameterRole,
)

TEMPLATES_DIR = Path(__file__).parent / "templates"

_IDENT = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_BODY_VERBS = (HttpVerb.POST, HttpVerb.PUT, HttpVerb.PATCH)
_ROLE_LABELS = {
    ParameterRole.PATH: "Param",
    ParameterRole.QUERY: "Query",
    ParameterRole.BODY: "Body",
}


@dataclass(frozen=True)
class ParamView:
    name: str
    role: str


@dataclass(frozen=True)
class QueryView:
    name: str
    key: Optional[str]  # None spreads the whole object


@dataclass(frozen=True)
class MethodView:
    name: str
    verb: str
    route: str
    signature: str
    return_type: str
    url: str
    params: tuple[ParamView, ...]
    query: tuple[QueryView, ...]
    call_args: tuple[str, ...]

    @property
    def verb_lower(self) -> str:
        return self.verb.lower()


def ts_string(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def url_expression(endpoint: Endpoint) -> str:
    """
    Template literal for the request URL. Each Path-role parameter is
    interpolated into its ':key' placeholder; keys may contain '-' or '.'.
    """
    by_key = {p.binding_key: p.name for p in endpoint.params_with_role(ParameterRole.PATH) if p.binding_key}
    route = endpoint.route_template.replace("\\", "\\\\").replace("`", "\\`").replace("${", "\\${")
    if not by_key:
        return "`${this.BASE_URL}" + ("/" + route if route else "") + "`"

    keys = "|".join(re.escape(k) for k in sorted(by_key, key=len, reverse=True))
    placeholder = re.compile(r"(?:^|(?<=/)):(" + keys + r")(?![\w$-])")
    path = placeholder.sub(lambda m: "${" + by_key[m.group(1)] + "}", route)
    return "`${this.BASE_URL}" + ("/" + path if path else "") + "`"


def body_expression(body: Parameter) -> str:
    """A keyed @Body('field') binds one field of the request body."""
    if body.binding_key is None:
        return body.name
    key = body.binding_key if _IDENT.match(body.binding_key) else ts_string(body.binding_key)
    return f"{{ {key}: {body.name} }}"


def method_signature(endpoint: Endpoint) -> str:
    params = endpoint.client_parameters
    parts: list[str] = []
    for i, p in enumerate(params):
        type_expr = p.resolved_type.expression
        if not p.optional:
            parts.append(f"{p.name}: {type_expr}")
        elif any(not later.optional for later in params[i + 1 :]):
            # a '?' parameter cannot precede a required one
            parts.append(f"{p.name}: {type_expr} | undefined")
        else:
            parts.append(f"{p.name}?: {type_expr}")
    return ", ".join(parts)


def call_arguments(endpoint: Endpoint) -> tuple[str, ...]:
    body = endpoint.body_parameter
    has_query = bool(endpoint.params_with_role(ParameterRole.QUERY))

    args = ["url"]
    options: list[str] = []
    if endpoint.http_verb in _BODY_VERBS:
        args.append(body_expression(body) if body is not None else "{}")
    elif body is not None:
        options.append(f"body: {body_expression(body)}")
    if has_query:
        options.insert(0, "params")
    if options:
        args.append("{ " + ", ".join(options) + " }")
    return tuple(args)


def method_view(endpoint: Endpoint) -> MethodView:
    return MethodView(
        name=endpoint.method_name,
        verb=endpoint.http_verb.value,
        route=endpoint.route_template,
        signature=method_signature(endpoint),
        return_type=endpoint.return_type.expression,
        url=url_expression(endpoint),
        params=tuple(ParamView(p.name, _ROLE_LABELS[p.role]) for p in endpoint.client_parameters),
        query=tuple(QueryView(p.name, p.binding_key) for p in endpoint.params_with_role(ParameterRole.QUERY)),
        call_args=call_arguments(endpoint),
    )


def client_relative_path(group: EndpointGroup) -> str:
    file_name = client_file_name(client_class_name(group.name))
    return f"{group.folder}/{file_name}" if group.folder else file_name


class ClientEmitter:
    """Renders Angular client services and the manifest from Jinja templates."""

    def __init__(self, config: GeneratorConfig) -> None:
        self.config = config
        self.env = Environment(
            loader=FileSystemLoader(TEMPLATES_DIR),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )
        self.env.filters["ts_string"] = ts_string
        self._client_template = self.env.get_template("angular_service.ts.jinja")
        self._manifest_template = self.env.get_template("index.ts.jinja")

    def _base_import(self, relative_path: str, module: str) -> str:
        # base symbols live at fixed paths next to the manifest
        output_dir = posixpath.normpath(self.config.output_dir)
        manifest_dir = posixpath.dirname(posixpath.normpath(self.config.manifest_path))
        file_dir = posixpath.dirname(posixpath.join(output_dir, relative_path))
        rel = posixpath.relpath(posixpath.join(manifest_dir, module), file_dir)
        return rel if rel.startswith(".") else "./" + rel

    def render_client(self, group: EndpointGroup, endpoints: Iterable[Endpoint]) -> GeneratedFile:
        endpoints = list(endpoints)
        class_name = client_class_name(group.name)
        relative_path = client_relative_path(group)

        type_imports = list(dict.fromkeys(n for e in endpoints for n in e.required_imports))
        methods = [method_view(e) for e in endpoints]

        contents = self._client_template.render(
            class_name=class_name,
            controller_name=group.name,
            source_file=group.source_file_path,
            types_module=self.config.shared_types_module,
            type_imports=type_imports,
            uses_http_params=any(m.query for m in methods),
            base_service_path=self._base_import(relative_path, self.config.base_service_module),
            config_service_path=self._base_import(relative_path, self.config.config_service_module),
            methods=methods,
        )
        return GeneratedFile(relative_path=relative_path, contents=contents, class_name=class_name)

    def describe(self, generated: GeneratedFile, endpoint_count: int) -> ClientDescriptor:
        stem = generated.relative_path[: -len(".ts")] if generated.relative_path.endswith(".ts") else generated.relative_path
        return ClientDescriptor(
            class_name=generated.class_name,
            import_path=f"{self.config.manifest_import_root()}/{stem}",
            endpoint_count=endpoint_count,
        )

    def render_manifest(self, clients: Iterable[ClientDescriptor]) -> str:
        ordered = sorted(clients, key=lambda c: (c.class_name.lower(), c.class_name))
        return self._manifest_template.render(
            base_service_path="./" + self.config.base_service_module,
            config_service_path="./" + self.config.config_service_module,
            clients=ordered,
        )
