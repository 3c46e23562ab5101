from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Mapping, Optional

from apiclientgen.config import GeneratorConfig
from apiclientgen.domain.models import EndpointGroup
from apiclientgen.extractors.nestjs.params import argument_value, substitute_constants
from apiclientgen.extractors.typescript.source import (
    ClassDecl,
    DecoratorDecl,
    SourceFileModel,
    SourceProject,
)

logger = logging.getLogger(__name__)

CONTROLLER_DECORATOR = "Controller"


@dataclass(frozen=True)
class DiscoveredController:
    group: EndpointGroup
    declaration: ClassDecl
    source: SourceFileModel


def shared_constants(project: SourceProject, config: GeneratorConfig) -> dict[str, str]:
    """String constants exported by the shared constants file; empty when it is absent."""
    model = project.load_file(config.constants_file)
    return dict(model.constants) if model is not None else {}


def resolve_api_prefix(
    project: SourceProject,
    config: GeneratorConfig,
    constants: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Read the shared path prefix constant; fall back to the configured default
    when the constants file or the constant cannot be resolved statically.
    """
    if constants is None:
        constants = shared_constants(project, config)
    value = constants.get(config.prefix_constant)
    if not value:
        logger.info(
            "%s not found in %s, using default %r",
            config.prefix_constant,
            config.constants_file,
            config.default_api_prefix,
        )
        return config.default_api_prefix.strip("/")
    return value.strip("/")


def route_argument(
    decorator: Optional[DecoratorDecl],
    api_prefix: str,
    prefix_constant: str,
    constants: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Route fragment carried by a @Controller or verb decorator.
    References to the prefix constant, and to any other known string constant,
    are replaced by their values. Unknown template substitutions are kept.
    """
    if decorator is None or not decorator.arguments:
        return ""
    known = dict(constants or {})
    known[prefix_constant] = api_prefix

    arg = decorator.arguments[0]
    if arg.kind == "template_string":
        return substitute_constants(arg.value or "", known)
    if arg.kind == "object":
        return substitute_constants(arg.property("path") or "", known)
    return argument_value(arg, known) or ""


def controller_folder(rel_path: str, config: GeneratorConfig) -> str:
    """Output sub-folder for a controller: its folder under the controllers root, minus 'app'."""
    path = PurePosixPath(rel_path)
    root = PurePosixPath(config.controllers_root)
    try:
        folder = path.parent.relative_to(root)
    except ValueError:
        folder = path.parent
    skipped = set(config.skipped_folder_segments)
    parts = [p for p in folder.parts if p not in (".", "") and p not in skipped]
    return "/".join(parts)


def discover_controllers(
    project: SourceProject,
    config: GeneratorConfig,
    api_prefix: str,
    constants: Optional[Mapping[str, str]] = None,
) -> list[DiscoveredController]:
    out: list[DiscoveredController] = []

    for source in project.files:
        # first decorated class per file
        cls = next((c for c in source.classes if c.decorator(CONTROLLER_DECORATOR)), None)
        if cls is None:
            continue

        known = {**(constants or {}), **source.constants}
        base_path = route_argument(cls.decorator(CONTROLLER_DECORATOR), api_prefix, config.prefix_constant, known)
        group = EndpointGroup(
            name=cls.name,
            base_path=base_path,
            source_file_path=source.rel_path,
            folder=controller_folder(source.rel_path, config),
        )
        logger.info("Found controller %s at %r (%s)", cls.name, base_path, source.rel_path)
        out.append(DiscoveredController(group=group, declaration=cls, source=source))

    return out
