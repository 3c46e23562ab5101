from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from apiclientgen.repo.ignore import DEFAULT_IGNORES


class GeneratorConfig(BaseModel):
    """
    Fixed locations and conventions of the workspace the generator runs in.
    Every path is relative to the workspace root.
    """

    tsconfig_path: str = "tsconfig.base.json"
    controller_globs: list[str] = Field(
        default_factory=lambda: ["apps/web-server/src/**/*.controller.ts"]
    )
    controllers_root: str = "apps/web-server/src"
    output_dir: str = "packages/api-client/src/api"
    manifest_path: str = "packages/api-client/src/index.ts"
    # hand-written symbols, relative to the manifest directory
    base_service_module: str = "services/base-api.service"
    config_service_module: str = "services/app-config.service"

    constants_file: str = "packages/types/src/constants/api.ts"
    prefix_constant: str = "API_PREFIX"
    default_api_prefix: str = "ai-nx-starter/rest/api/v2"

    shared_types_module: str = "@ai-nx-starter/types"
    shared_types_path_marker: str = "packages/types/"
    internal_path_keys: list[str] = Field(default_factory=lambda: ["orgCode"])
    dto_suffix: str = "Dto"
    skipped_folder_segments: list[str] = Field(default_factory=lambda: ["app"])
    ignored_dirs: set[str] = Field(default_factory=lambda: set(DEFAULT_IGNORES))

    def is_shared_types_module(self, specifier: str) -> bool:
        spec = specifier.replace("\\", "/")
        return (
            spec == self.shared_types_module
            or spec.startswith(self.shared_types_module + "/")
            or self.shared_types_path_marker in spec
        )

    def output_path(self, workspace: Path) -> Path:
        return workspace / self.output_dir

    def manifest_file(self, workspace: Path) -> Path:
        return workspace / self.manifest_path

    def manifest_import_root(self) -> str:
        # "./api" when the manifest sits next to the output directory
        out = Path(self.output_dir)
        manifest_dir = Path(self.manifest_path).parent
        try:
            rel = out.relative_to(manifest_dir)
        except ValueError:
            rel = out
        return "./" + rel.as_posix()
