from __future__ import annotations

import re

CONTROLLER_SUFFIX = "Controller"
CLIENT_PREFIX = "Api"
CLIENT_SUFFIX = "Service"

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_SEPARATORS = re.compile(r"[\s_]+")


def kebab_case(value: str) -> str:
    value = _CAMEL_BOUNDARY.sub(r"\1-\2", value)
    return _SEPARATORS.sub("-", value).lower()


def client_class_name(controller_name: str) -> str:
    """TeamController -> ApiTeamService"""
    stem = controller_name
    if stem.endswith(CONTROLLER_SUFFIX) and stem != CONTROLLER_SUFFIX:
        stem = stem[: -len(CONTROLLER_SUFFIX)]
    return f"{CLIENT_PREFIX}{stem}{CLIENT_SUFFIX}"


def client_file_name(class_name: str) -> str:
    """ApiTeamService -> api-team.service.ts"""
    stem = kebab_case(class_name)
    suffix = "-" + CLIENT_SUFFIX.lower()
    if stem.endswith(suffix):
        stem = stem[: -len(suffix)] + "." + CLIENT_SUFFIX.lower()
    return f"{stem}.ts"
