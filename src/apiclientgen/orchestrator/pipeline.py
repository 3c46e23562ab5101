from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from apiclientgen.codegen.emitter import ClientEmitter
from apiclientgen.codegen.writer import synchronize_directory, write_text
from apiclientgen.config import GeneratorConfig
from apiclientgen.domain.models import ClientDescriptor, Endpoint, EndpointGroup, GeneratedFile
from apiclientgen.extractors.nestjs.controllers import (
    discover_controllers,
    resolve_api_prefix,
    shared_constants,
)
from apiclientgen.extractors.nestjs.endpoints import EndpointExtractor
from apiclientgen.extractors.nestjs.type_resolver import TypeResolver
from apiclientgen.extractors.typescript.source import load_project

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientPlan:
    group: EndpointGroup
    endpoints: tuple[Endpoint, ...]


@dataclass(frozen=True)
class AnalysisResult:
    api_prefix: str
    files_scanned: int
    skipped_files: list[str]
    controllers_found: int
    plans: list[ClientPlan]


@dataclass(frozen=True)
class GenerateResult:
    api_prefix: str
    files_scanned: int
    skipped_files: list[str]
    controllers_found: int
    clients: list[ClientDescriptor]
    written: list[str]
    output_dir: str
    manifest_path: str


def analyze_workspace(workspace: Path, config: Optional[GeneratorConfig] = None) -> AnalysisResult:
    """
    Load, discover and extract. Controllers without verb-decorated methods
    are dropped here. Raises ProjectConfigNotFoundError when tsconfig is missing.
    """
    config = config or GeneratorConfig()
    workspace = workspace.resolve()

    project = load_project(workspace, config.tsconfig_path, config.controller_globs, config.ignored_dirs)
    constants = shared_constants(project, config)
    api_prefix = resolve_api_prefix(project, config, constants)
    logger.info("Using API_PREFIX: %s", api_prefix)

    resolver = TypeResolver(config.is_shared_types_module, dto_suffix=config.dto_suffix)
    extractor = EndpointExtractor(config, resolver, api_prefix, constants)

    controllers = discover_controllers(project, config, api_prefix, constants)
    plans: list[ClientPlan] = []
    for controller in controllers:
        endpoints = extractor.extract(controller)
        if not endpoints:
            logger.info("No API methods found in %s, skipping", controller.group.name)
            continue
        plans.append(ClientPlan(group=controller.group, endpoints=tuple(endpoints)))

    return AnalysisResult(
        api_prefix=api_prefix,
        files_scanned=len(project.files) + len(project.skipped),
        skipped_files=list(project.skipped),
        controllers_found=len(controllers),
        plans=plans,
    )


def run_generate(workspace: Path, config: Optional[GeneratorConfig] = None) -> GenerateResult:
    """Full run: analyze, render every client, then replace the output tree and manifest."""
    config = config or GeneratorConfig()
    workspace = workspace.resolve()
    analysis = analyze_workspace(workspace, config)

    emitter = ClientEmitter(config)
    generated: list[GeneratedFile] = []
    clients: list[ClientDescriptor] = []
    for plan in analysis.plans:
        f = emitter.render_client(plan.group, plan.endpoints)
        generated.append(f)
        clients.append(emitter.describe(f, len(plan.endpoints)))
        logger.info("Generated %s (%d methods)", f.relative_path, len(plan.endpoints))

    output_dir = config.output_path(workspace)
    written = synchronize_directory(output_dir, generated)

    manifest = config.manifest_file(workspace)
    write_text(manifest, emitter.render_manifest(clients))
    logger.info("Generated %s with %d service exports", manifest, len(clients))

    return GenerateResult(
        api_prefix=analysis.api_prefix,
        files_scanned=analysis.files_scanned,
        skipped_files=analysis.skipped_files,
        controllers_found=analysis.controllers_found,
        clients=clients,
        written=[p.relative_to(workspace).as_posix() for p in written],
        output_dir=output_dir.relative_to(workspace).as_posix(),
        manifest_path=manifest.relative_to(workspace).as_posix(),
    )
