from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Optional

import tree_sitter_typescript as tsts
from tree_sitter import Language, Node, Parser

from apiclientgen.errors import ProjectConfigNotFoundError, SourceParseError
from apiclientgen.repo.ignore import DEFAULT_IGNORES
from apiclientgen.repo.scanner import relative_posix, scan_source_files

logger = logging.getLogger(__name__)

TS_LANGUAGE = Language(tsts.language_typescript())

_QUOTES = "'\"`"
_CLASS_NODES = ("class_declaration", "abstract_class_declaration")
_VARIABLE_NODES = ("lexical_declaration", "variable_declaration")
_WRAPPING_EXPRESSIONS = (
    "as_expression",
    "satisfies_expression",
    "parenthesized_expression",
    "non_null_expression",
)


@dataclass(frozen=True)
class DecoratorArg:
    kind: str  # tree-sitter node type: string, template_string, identifier, object, ...
    text: str
    value: Optional[str] = None  # unquoted value for string and template literals
    properties: tuple[tuple[str, Optional[str]], ...] = ()  # object literal key -> literal

    def property(self, key: str) -> Optional[str]:
        for k, v in self.properties:
            if k == key:
                return v
        return None


@dataclass(frozen=True)
class DecoratorDecl:
    name: str
    arguments: tuple[DecoratorArg, ...] = ()


@dataclass(frozen=True)
class ImportDecl:
    specifier: str
    named: tuple[tuple[str, str], ...] = ()  # (imported name, local name)
    namespace: Optional[str] = None
    default: Optional[str] = None


@dataclass(frozen=True)
class ParamDecl:
    name: str
    decorators: tuple[DecoratorDecl, ...]
    type_text: str  # module-qualified, "" when undeclared
    raw_type_text: str
    has_question_token: bool = False
    has_initializer: bool = False


@dataclass(frozen=True)
class MethodDecl:
    name: str
    decorators: tuple[DecoratorDecl, ...]
    parameters: tuple[ParamDecl, ...]
    return_type_text: str  # module-qualified, "" when undeclared
    raw_return_type_text: str
    line: int


@dataclass(frozen=True)
class ClassDecl:
    name: str
    decorators: tuple[DecoratorDecl, ...]
    methods: tuple[MethodDecl, ...]
    line: int

    def decorator(self, name: str) -> Optional[DecoratorDecl]:
        for d in self.decorators:
            if d.name == name:
                return d
        return None


@dataclass(frozen=True)
class SourceFileModel:
    path: Path
    rel_path: str
    imports: tuple[ImportDecl, ...]
    classes: tuple[ClassDecl, ...]
    constants: dict[str, str] = field(default_factory=dict)
    # (specifier, name) for every type reached through a namespace import
    namespace_refs: tuple[tuple[str, str], ...] = ()

    def imported_names_from(self, predicate) -> set[str]:
        """
        Names importable from every module whose specifier matches: named
        imports (by imported name, not alias) and names referenced as ns.Name.
        """
        out: set[str] = set()
        for imp in self.imports:
            if predicate(imp.specifier):
                out.update(imported for imported, _ in imp.named)
        out.update(name for spec, name in self.namespace_refs if predicate(spec))
        return out


@dataclass
class SourceProject:
    """In-memory semantic model for one generation run."""

    root: Path
    config_path: Path
    files: list[SourceFileModel] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def load_file(self, rel_path: str) -> Optional[SourceFileModel]:
        """Load one extra file by workspace-relative path; None if absent or unparsable."""
        path = self.root / rel_path
        if not path.is_file():
            return None
        try:
            return load_source_file(path, self.root)
        except SourceParseError as exc:
            logger.warning("%s", exc)
            return None


class _ImportIndex:
    def __init__(self, imports: Iterable[ImportDecl]) -> None:
        self.named: dict[str, tuple[str, str]] = {}  # local -> (specifier, imported)
        self.namespaces: dict[str, str] = {}  # local -> specifier
        for imp in imports:
            for imported, local in imp.named:
                self.named[local] = (imp.specifier, imported)
            if imp.default:
                self.named[imp.default] = (imp.specifier, imp.default)
            if imp.namespace:
                self.namespaces[imp.namespace] = imp.specifier


class _FileReader:
    """Turns one tree-sitter syntax tree into the declaration model."""

    def __init__(self, source: bytes) -> None:
        self.src = source
        self.index = _ImportIndex(())
        self.namespace_refs: dict[tuple[str, str], None] = {}

    def text(self, node: Optional[Node]) -> str:
        if node is None:
            return ""
        return self.src[node.start_byte : node.end_byte].decode("utf-8")

    def read(self, root: Node) -> tuple[list[ImportDecl], list[ClassDecl], dict[str, str]]:
        imports = [self._import(n) for n in root.named_children if n.type == "import_statement"]
        self.index = _ImportIndex(imports)

        classes: list[ClassDecl] = []
        constants: dict[str, str] = {}
        for node, outer_decorators in _top_level_declarations(root):
            if node.type in _CLASS_NODES:
                classes.append(self._class(node, outer_decorators))
            elif node.type in _VARIABLE_NODES:
                constants.update(self._constants(node))
        return imports, classes, constants

    # imports / constants

    def _import(self, node: Node) -> ImportDecl:
        specifier = _unquote(self.text(node.child_by_field_name("source")))
        named: list[tuple[str, str]] = []
        namespace = None
        default = None

        clause = next((c for c in node.named_children if c.type == "import_clause"), None)
        if clause is not None:
            for c in clause.named_children:
                if c.type == "named_imports":
                    for spec in c.named_children:
                        if spec.type != "import_specifier":
                            continue
                        name = self.text(spec.child_by_field_name("name"))
                        alias = spec.child_by_field_name("alias")
                        named.append((name, self.text(alias) if alias is not None else name))
                elif c.type == "namespace_import":
                    ident = next((x for x in c.named_children if x.type == "identifier"), None)
                    namespace = self.text(ident) or None
                elif c.type == "identifier":
                    default = self.text(c)

        return ImportDecl(specifier=specifier, named=tuple(named), namespace=namespace, default=default)

    def _constants(self, node: Node) -> dict[str, str]:
        out: dict[str, str] = {}
        for decl in node.named_children:
            if decl.type != "variable_declarator":
                continue
            name = self.text(decl.child_by_field_name("name"))
            value = self._literal(decl.child_by_field_name("value"))
            if name and value is not None:
                out[name] = value
        return out

    def _literal(self, node: Optional[Node]) -> Optional[str]:
        if node is None:
            return None
        if node.type in ("string", "template_string"):
            return _unquote(self.text(node))
        if node.type in _WRAPPING_EXPRESSIONS:
            inner = _first_named(node)
            return self._literal(inner)
        return None

    # classes

    def _class(self, node: Node, outer_decorators: list[Node]) -> ClassDecl:
        decorators = outer_decorators + [c for c in node.children if c.type == "decorator"]
        body = node.child_by_field_name("body")
        methods: list[MethodDecl] = []

        pending: list[Node] = []
        if body is not None:
            for member in body.named_children:
                if member.type == "decorator":
                    pending.append(member)
                    continue
                if member.type == "comment":
                    continue
                if member.type == "method_definition":
                    own = [c for c in member.children if c.type == "decorator"]
                    methods.append(self._method(member, pending + own))
                pending = []

        return ClassDecl(
            name=self.text(node.child_by_field_name("name")),
            decorators=tuple(self._decorator(d) for d in decorators),
            methods=tuple(methods),
            line=node.start_point[0] + 1,
        )

    def _method(self, node: Node, decorators: list[Node]) -> MethodDecl:
        params_node = node.child_by_field_name("parameters")
        params: list[ParamDecl] = []
        if params_node is not None:
            for p in params_node.named_children:
                if p.type in ("required_parameter", "optional_parameter"):
                    params.append(self._param(p))

        return_node = _annotation_type(node.child_by_field_name("return_type"))
        return MethodDecl(
            name=self.text(node.child_by_field_name("name")),
            decorators=tuple(self._decorator(d) for d in decorators),
            parameters=tuple(params),
            return_type_text=self.qualified_type(return_node),
            raw_return_type_text=self.text(return_node),
            line=node.start_point[0] + 1,
        )

    def _param(self, node: Node) -> ParamDecl:
        pattern = node.child_by_field_name("pattern")
        if pattern is None:
            pattern = next(
                (
                    c
                    for c in node.named_children
                    if c.type not in ("decorator", "accessibility_modifier", "override_modifier", "type_annotation")
                ),
                None,
            )
        type_node = _annotation_type(node.child_by_field_name("type"))
        return ParamDecl(
            name=self.text(pattern),
            decorators=tuple(self._decorator(c) for c in node.children if c.type == "decorator"),
            type_text=self.qualified_type(type_node),
            raw_type_text=self.text(type_node),
            has_question_token=node.type == "optional_parameter",
            has_initializer=any(c.type == "=" for c in node.children),
        )

    # decorators

    def _decorator(self, node: Node) -> DecoratorDecl:
        expr = _first_named(node)
        if expr is None:
            return DecoratorDecl(name="")

        if expr.type == "call_expression":
            fn = expr.child_by_field_name("function")
            args_node = expr.child_by_field_name("arguments")
            args: tuple[DecoratorArg, ...] = ()
            if args_node is not None and args_node.type == "arguments":
                args = tuple(self._decorator_arg(a) for a in args_node.named_children if a.type != "comment")
            return DecoratorDecl(name=_last_segment(self.text(fn)), arguments=args)

        return DecoratorDecl(name=_last_segment(self.text(expr)))

    def _decorator_arg(self, node: Node) -> DecoratorArg:
        text = self.text(node)
        if node.type in ("string", "template_string"):
            return DecoratorArg(kind=node.type, text=text, value=_unquote(text))
        if node.type == "object":
            props: list[tuple[str, Optional[str]]] = []
            for pair in node.named_children:
                if pair.type != "pair":
                    continue
                key = _unquote(self.text(pair.child_by_field_name("key")))
                props.append((key, self._literal(pair.child_by_field_name("value"))))
            return DecoratorArg(kind="object", text=text, properties=tuple(props))
        return DecoratorArg(kind=node.type, text=text)

    # types

    def qualified_type(self, node: Optional[Node]) -> str:
        """
        Declared type text with every imported type name rewritten to
        import("<specifier>").<Name>, the form a type checker prints.
        """
        if node is None:
            return ""

        replacements: list[tuple[int, int, str]] = []
        stack = [node]
        while stack:
            n = stack.pop()
            if n.type == "nested_type_identifier":
                module = n.child_by_field_name("module")
                name = n.child_by_field_name("name")
                spec = self.index.namespaces.get(self.text(module))
                if spec is not None and name is not None:
                    self.namespace_refs[(spec, self.text(name))] = None
                    replacements.append((n.start_byte, n.end_byte, f'import("{spec}").{self.text(name)}'))
                continue
            if n.type == "type_identifier":
                hit = self.index.named.get(self.text(n))
                if hit is not None:
                    spec, imported = hit
                    replacements.append((n.start_byte, n.end_byte, f'import("{spec}").{imported}'))
                continue
            stack.extend(n.children)

        base = node.start_byte
        out = self.src[node.start_byte : node.end_byte]
        for start, end, repl in sorted(replacements, reverse=True):
            out = out[: start - base] + repl.encode("utf-8") + out[end - base :]
        return out.decode("utf-8")


def _top_level_declarations(root: Node) -> Iterator[tuple[Node, list[Node]]]:
    for child in root.named_children:
        if child.type == "export_statement":
            decl = child.child_by_field_name("declaration")
            if decl is not None:
                yield decl, [c for c in child.children if c.type == "decorator"]
        else:
            yield child, []


def _annotation_type(node: Optional[Node]) -> Optional[Node]:
    # type_annotation is ": T"; the type is its only named child
    if node is None:
        return None
    if node.type == "type_annotation":
        return _first_named(node)
    return node


def _first_named(node: Node) -> Optional[Node]:
    for c in node.named_children:
        if c.type != "comment":
            return c
    return None


def _last_segment(name: str) -> str:
    return name.rsplit(".", 1)[-1].strip()


def _unquote(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] in _QUOTES and text[-1] == text[0]:
        return text[1:-1]
    return text


def _first_error_line(root: Node) -> int:
    stack = [root]
    while stack:
        n = stack.pop()
        if n.type == "ERROR" or n.is_missing:
            return n.start_point[0] + 1
        if n.has_error:
            stack.extend(reversed(n.children))
    return root.start_point[0] + 1


def parse_source(source: bytes, path: Path, rel_path: str = "") -> SourceFileModel:
    """
    Parse TypeScript source into the declaration model.
    Raises SourceParseError when the tree contains syntax errors.
    """
    tree = Parser(TS_LANGUAGE).parse(source)
    root = tree.root_node
    if root.has_error:
        raise SourceParseError(path, f"syntax error near line {_first_error_line(root)}")

    reader = _FileReader(source)
    imports, classes, constants = reader.read(root)
    return SourceFileModel(
        path=path,
        rel_path=rel_path or path.name,
        imports=tuple(imports),
        classes=tuple(classes),
        constants=constants,
        namespace_refs=tuple(reader.namespace_refs),
    )


def load_source_file(path: Path, root: Path) -> SourceFileModel:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SourceParseError(path, str(exc)) from exc
    return parse_source(text.encode("utf-8"), path, relative_posix(path, root))


def load_project(
    workspace: Path,
    tsconfig_path: str,
    patterns: Iterable[str],
    ignores: Iterable[str] = DEFAULT_IGNORES,
) -> SourceProject:
    """
    Load the semantic model for every file matching patterns.
    A missing tsconfig is fatal; an unparsable file is skipped with a warning.
    """
    workspace = workspace.resolve()
    config_path = workspace / tsconfig_path
    if not config_path.is_file():
        raise ProjectConfigNotFoundError(config_path)

    project = SourceProject(root=workspace, config_path=config_path)
    logger.info("Project loaded from %s", config_path)

    for path in scan_source_files(workspace, patterns, ignores):
        try:
            project.files.append(load_source_file(path, workspace))
        except SourceParseError as exc:
            logger.warning("Skipping %s", exc)
            project.skipped.append(relative_posix(path, workspace))

    return project
