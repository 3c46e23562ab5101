from __future__ import annotations

import re
from typing import Callable, Iterable, Optional

from apiclientgen.domain.models import ResolvedType

ANY = ResolvedType(expression="any")

_QUALIFIED_REF = re.compile(r"""import\(\s*["']([^"']+)["']\s*\)\.([A-Za-z_$][A-Za-z0-9_$]*)""")
_IDENT = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_ARRAY_OPEN = re.compile(r"\bArray<")

# wrappers whose syntax is kept verbatim while the wrapped type is resolved
_PASSTHROUGH_WRAPPERS = ("Omit", "Partial")
_DEFERRED_WRAPPER = "Promise"


def matching_angle(text: str, open_idx: int) -> Optional[int]:
    """Index of the '>' closing the '<' at open_idx, ignoring '=>' arrows."""
    depth = 0
    for i in range(open_idx, len(text)):
        ch = text[i]
        if ch == "<":
            depth += 1
        elif ch == ">" and not (i > 0 and text[i - 1] == "="):
            depth -= 1
            if depth == 0:
                return i
    return None


def unwrap_generic(text: str, wrapper: str) -> Optional[str]:
    """Inner text of `wrapper<...>` when it spans the whole expression, else None."""
    text = text.strip()
    prefix = wrapper + "<"
    if not text.startswith(prefix) or not text.endswith(">"):
        return None
    close = matching_angle(text, len(wrapper))
    if close != len(text) - 1:
        return None
    return text[len(prefix) : -1].strip()


def split_top_level(text: str, sep: str) -> list[str]:
    """Split on sep where it is not nested inside <>, (), [] or {}."""
    parts: list[str] = []
    depth = 0
    start = 0
    for i, ch in enumerate(text):
        if ch in "<([{":
            depth += 1
        elif ch in ")]}" or (ch == ">" and not (i > 0 and text[i - 1] == "=")):
            depth -= 1
        elif ch == sep and depth == 0:
            parts.append(text[start:i])
            start = i + 1
    parts.append(text[start:])
    return [p.strip() for p in parts]


def _needs_parens(expr: str) -> bool:
    return len(split_top_level(expr, "|")) > 1 or len(split_top_level(expr, "&")) > 1


def rewrite_array_generics(text: str) -> str:
    """Array<T> -> T[] at any depth."""
    out: list[str] = []
    i = 0
    while True:
        m = _ARRAY_OPEN.search(text, i)
        if m is None:
            out.append(text[i:])
            break
        close = matching_angle(text, m.end() - 1)
        if close is None:
            out.append(text[i:])
            break
        inner = rewrite_array_generics(text[m.end() : close]).strip()
        out.append(text[i : m.start()])
        out.append(f"({inner})[]" if _needs_parens(inner) else f"{inner}[]")
        i = close + 1
    return "".join(out)


def _ordered_unique(names: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for n in names:
        if n not in seen:
            seen.add(n)
            out.append(n)
    return out


class TypeResolver:
    """
    Maps module-qualified server type text to client type text plus the
    shared-type symbols the client file has to import.

    Only symbols in `available` (what the controller itself imports from the
    shared types module) are ever reported as imports.
    """

    def __init__(self, is_shared_module: Callable[[str], bool], dto_suffix: str = "Dto") -> None:
        self.is_shared_module = is_shared_module
        self.dto_suffix = dto_suffix

    def resolve(self, type_text: str, available: Iterable[str] = ()) -> ResolvedType:
        text = (type_text or "").strip()
        if not text:
            return ANY

        inner = unwrap_generic(text, _DEFERRED_WRAPPER)
        while inner is not None:
            text = inner
            inner = unwrap_generic(text, _DEFERRED_WRAPPER)

        return self._resolve_value(rewrite_array_generics(text), set(available))

    def _resolve_value(self, text: str, available: set[str]) -> ResolvedType:
        refs = list(_QUALIFIED_REF.finditer(text))
        shared = [m for m in refs if self.is_shared_module(m.group(1))]

        if shared:
            names = _ordered_unique(m.group(2) for m in shared)
            expression = _QUALIFIED_REF.sub(
                lambda m: m.group(2) if self.is_shared_module(m.group(1)) else m.group(0),
                text,
            )
            if _QUALIFIED_REF.search(expression):
                # mixed with a type the client cannot see
                return ANY
            return ResolvedType(
                expression=expression,
                import_names=tuple(n for n in names if n in available),
            )

        if refs or "import(" in text:
            return ANY

        for wrapper in _PASSTHROUGH_WRAPPERS:
            inner = unwrap_generic(text, wrapper)
            if inner is not None:
                target = split_top_level(inner, ",")[0]
                return self._with_symbol(text, self.dto_symbol(target), available)

        symbol = self.dto_symbol(text)
        if symbol is not None:
            return self._with_symbol(text, symbol, available)

        if text in ("unknown", "any"):
            return ANY
        return ResolvedType(expression=text)

    def dto_symbol(self, text: str) -> Optional[str]:
        bare = text.strip()
        while bare.endswith("[]"):
            bare = bare[:-2].strip()
        if bare.startswith("(") and bare.endswith(")"):
            bare = bare[1:-1].strip()
        if _IDENT.match(bare) and bare.endswith(self.dto_suffix) and bare != self.dto_suffix:
            return bare
        return None

    @staticmethod
    def _with_symbol(expression: str, symbol: Optional[str], available: set[str]) -> ResolvedType:
        if symbol is not None and symbol in available:
            return ResolvedType(expression=expression, import_names=(symbol,))
        return ResolvedType(expression=expression)
