from __future__ import annotations

import logging
from typing import Mapping, Optional

from apiclientgen.config import GeneratorConfig
from apiclientgen.domain.models import Endpoint, HttpVerb, Parameter, ParameterRole
from apiclientgen.extractors.nestjs.controllers import DiscoveredController, route_argument
from apiclientgen.extractors.nestjs.params import (
    classify_parameter,
    join_route,
    strip_internal_segments,
    strip_prefix,
)
from apiclientgen.extractors.nestjs.type_resolver import TypeResolver
from apiclientgen.extractors.typescript.source import DecoratorDecl, MethodDecl

logger = logging.getLogger(__name__)

VERB_DECORATORS = {
    "Get": HttpVerb.GET,
    "Post": HttpVerb.POST,
    "Put": HttpVerb.PUT,
    "Patch": HttpVerb.PATCH,
    "Delete": HttpVerb.DELETE,
}


def _verb_decorator(method: MethodDecl) -> Optional[DecoratorDecl]:
    return next((d for d in method.decorators if d.name in VERB_DECORATORS), None)


class EndpointExtractor:
    """Builds Endpoint descriptors for every verb-decorated method of a controller."""

    def __init__(
        self,
        config: GeneratorConfig,
        resolver: TypeResolver,
        api_prefix: str,
        constants: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.config = config
        self.resolver = resolver
        self.api_prefix = api_prefix.strip("/")
        self.constants = dict(constants or {})

    def extract(self, controller: DiscoveredController) -> list[Endpoint]:
        available = controller.source.imported_names_from(self.config.is_shared_types_module)
        constants = {**self.constants, **controller.source.constants}
        endpoints: list[Endpoint] = []

        # declaration order, never sorted
        for method in controller.declaration.methods:
            verb_decorator = _verb_decorator(method)
            if verb_decorator is None:
                continue
            endpoints.append(
                self._endpoint(controller, method, verb_decorator, available, constants)
            )

        return endpoints

    def route_template(self, base_path: str, route: str) -> str:
        merged = join_route(base_path, route)
        merged = strip_internal_segments(merged, self.config.internal_path_keys)
        return strip_prefix(merged, self.api_prefix)

    def _endpoint(
        self,
        controller: DiscoveredController,
        method: MethodDecl,
        verb_decorator: DecoratorDecl,
        available: set[str],
        constants: Mapping[str, str],
    ) -> Endpoint:
        verb = VERB_DECORATORS[verb_decorator.name]
        route = route_argument(verb_decorator, self.api_prefix, self.config.prefix_constant, constants)
        template = self.route_template(controller.group.base_path, route)

        return_type = self.resolver.resolve(method.return_type_text, available)
        imports: list[str] = list(return_type.import_names)

        parameters: list[Parameter] = []
        has_body = False
        for decl in method.parameters:
            c = classify_parameter(decl, self.config.internal_path_keys, constants)
            role = c.role

            if role is ParameterRole.BODY and (has_body or verb is HttpVerb.GET):
                logger.warning(
                    "%s.%s: dropping body parameter %r (%s)",
                    controller.group.name,
                    method.name,
                    decl.name,
                    "GET has no body" if verb is HttpVerb.GET else "only one body per request",
                )
                role = ParameterRole.IGNORED
            elif role is ParameterRole.IGNORED:
                logger.debug("%s.%s: ignoring %r (%s)", controller.group.name, method.name, decl.name, c.reason)

            has_body = has_body or role is ParameterRole.BODY
            resolved = self.resolver.resolve(c.type_text, available)
            if role is not ParameterRole.IGNORED:
                imports.extend(resolved.import_names)

            parameters.append(
                Parameter(
                    name=decl.name,
                    resolved_type=resolved,
                    role=role,
                    binding_key=c.binding_key,
                    optional=c.optional,
                )
            )

        return Endpoint(
            method_name=method.name,
            http_verb=verb,
            route_template=template,
            parameters=tuple(parameters),
            return_type=return_type,
            required_imports=tuple(dict.fromkeys(imports)),
        )
