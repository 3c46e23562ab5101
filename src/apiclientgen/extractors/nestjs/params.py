from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from apiclientgen.domain.models import ParameterRole
from apiclientgen.extractors.nestjs.type_resolver import split_top_level
from apiclientgen.extractors.typescript.source import DecoratorArg, ParamDecl

BINDING_ROLES = {
    "Param": ParameterRole.PATH,
    "Query": ParameterRole.QUERY,
    "Body": ParameterRole.BODY,
}
# bindings that only make sense on the server
SERVER_CONTEXT_DECORATORS = frozenset({"Session", "Req", "Request"})

_MULTI_SLASH = re.compile(r"/{2,}")
_TEMPLATE_SUB = re.compile(r"\$\{([^}]*)\}")
_IDENT = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_MISSING_VALUE = "undefined"


@dataclass(frozen=True)
class Classification:
    role: ParameterRole
    binding_key: Optional[str]
    optional: bool
    type_text: str  # declared type with the missing-value union member removed
    reason: str = ""  # why a parameter was ignored


def join_route(*parts: str) -> str:
    """Join route fragments, collapsing repeated separators and trimming the ends."""
    joined = "/".join(p.strip() for p in parts if p and p.strip())
    joined = _MULTI_SLASH.sub("/", joined)
    return joined.strip("/")


def strip_internal_segments(route: str, internal_keys: Iterable[str]) -> str:
    """Drop ':key' segments and ${...KEY} substitutions for internally-supplied keys."""
    keys = set(internal_keys)
    upper = {_constant_case(k) for k in keys}

    def drop_sub(m: re.Match) -> str:
        name = _last_segment(m.group(1))
        return "" if name in keys or name in upper else m.group(0)

    route = _TEMPLATE_SUB.sub(drop_sub, route)
    # a bare ":" is what remains of ":${ORG_CODE}"
    segments = [s for s in route.split("/") if not (s.startswith(":") and (s[1:] in keys or s == ":"))]
    return join_route(*segments)


def strip_prefix(route: str, prefix: str) -> str:
    prefix = prefix.strip("/")
    if prefix and (route == prefix or route.startswith(prefix + "/")):
        route = route[len(prefix) :]
    return route.strip("/")


def substitute_constants(text: str, constants: Mapping[str, str]) -> str:
    """Replace ${NAME} / ${ns.NAME} with known string constants; unknown ones stay as written."""

    def sub(m: re.Match) -> str:
        value = constants.get(_last_segment(m.group(1)))
        return value if value is not None else m.group(0)

    return _TEMPLATE_SUB.sub(sub, text)


def argument_value(arg: DecoratorArg, constants: Mapping[str, str]) -> Optional[str]:
    """
    Static string value of a decorator argument: a literal, a template whose
    substitutions all name known constants, or a reference to a known constant.
    """
    if arg.kind == "string":
        return arg.value
    if arg.kind == "template_string":
        value = substitute_constants(arg.value or "", constants)
        return None if _TEMPLATE_SUB.search(value) else value
    if arg.kind in ("identifier", "member_expression"):
        return constants.get(_last_segment(arg.text))
    return None


def _last_segment(expr: str) -> str:
    return expr.strip().rsplit(".", 1)[-1].strip()


def _constant_case(name: str) -> str:
    # orgCode -> ORG_CODE
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name).upper()


def strip_missing_value(type_text: str) -> tuple[str, bool]:
    """Remove a top-level `| undefined` member; report whether one was there."""
    members = split_top_level(type_text, "|")
    kept = [m for m in members if m != _MISSING_VALUE]
    if len(kept) == len(members) or not kept:
        return type_text, False
    return " | ".join(kept), True


def classify_parameter(
    param: ParamDecl,
    internal_keys: Iterable[str],
    constants: Optional[Mapping[str, str]] = None,
) -> Classification:
    type_text, union_optional = strip_missing_value(param.type_text)
    optional = param.has_question_token or param.has_initializer or union_optional

    binding = next(
        (d for d in param.decorators if d.name in BINDING_ROLES or d.name in SERVER_CONTEXT_DECORATORS),
        None,
    )
    if binding is None:
        return Classification(ParameterRole.IGNORED, None, optional, type_text, "no binding decorator")
    if binding.name in SERVER_CONTEXT_DECORATORS:
        return Classification(ParameterRole.IGNORED, None, optional, type_text, f"@{binding.name}")
    if not _IDENT.match(param.name):
        return Classification(ParameterRole.IGNORED, None, optional, type_text, "destructured parameter")

    role = BINDING_ROLES[binding.name]
    key = None
    if binding.arguments:
        key = (argument_value(binding.arguments[0], constants or {}) or "").strip() or None
    if role is ParameterRole.PATH:
        key = key or param.name
        keys = set(internal_keys)
        if key in keys or param.name in keys:
            return Classification(ParameterRole.IGNORED, key, optional, type_text, "internal path key")

    return Classification(role, key, optional, type_text)
