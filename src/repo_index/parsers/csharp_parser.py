"""Tree-sitter based parser for C# source files.

Extracts namespace-level type declarations (classes, interfaces, structs,
enums, records) together with their base lists, constructor-injected
dependencies, XML doc summaries and, for public types, their public
methods and HTTP/GraphQL endpoints.
"""

from __future__ import annotations

from typing import Any

import tree_sitter_c_sharp
from tree_sitter import Language, Parser, Query, QueryCursor

from src.shared.constants import GLOBAL_NAMESPACE
from src.shared.models.index import (
    EndpointKind,
    EndpointRecord,
    MethodRecord,
    ParameterRecord,
    TypeKind,
    TypeRecord,
)

_TYPE_KINDS: dict[str, TypeKind] = {
    "class_declaration": TypeKind.CLASS,
    "interface_declaration": TypeKind.INTERFACE,
    "struct_declaration": TypeKind.STRUCT,
    "enum_declaration": TypeKind.ENUM,
    "record_declaration": TypeKind.RECORD,
}

# Kinds whose constructors are inspected for injected dependencies.
_INJECTABLE_KINDS = frozenset({TypeKind.CLASS, TypeKind.RECORD, TypeKind.RECORD_STRUCT})

_SKIPPED_PARAMETER_TYPES = frozenset({
    "string", "int", "bool", "long", "double", "float", "decimal",
    "Guid", "DateTime", "TimeSpan", "CancellationToken",
})

_HTTP_ATTRIBUTES: dict[str, str] = {
    "httpget": "GET",
    "httppost": "POST",
    "httpput": "PUT",
    "httpdelete": "DELETE",
    "httppatch": "PATCH",
    "httphead": "HEAD",
    "httpoptions": "OPTIONS",
}

_GRAPHQL_ATTRIBUTES = frozenset({
    "query", "mutation", "subscription", "extendobjecttype",
    "querytype", "mutationtype", "subscriptiontype",
})


def looks_like_interface(name: str) -> bool:
    """``I`` followed by an upper-case letter, e.g. ``IOrderService``."""
    return len(name) >= 2 and name[0] == "I" and name[1].isupper()


def is_likely_dependency(type_name: str) -> bool:
    """Whether a constructor parameter type looks like an injected service."""
    base = type_name.rstrip("?")
    if base in _SKIPPED_PARAMETER_TYPES:
        return False
    if looks_like_interface(base):
        return True
    return base.startswith("IOptions<") or base.startswith("ILogger<")


def combine_route(prefix: str, route: str) -> str:
    if not prefix:
        return route
    if not route:
        return prefix
    return prefix.rstrip("/") + "/" + route.lstrip("/")


def _text(node: Any) -> str:
    return node.text.decode("utf-8", errors="replace")


def _attribute_name(attribute: Any) -> str:
    name_node = attribute.child_by_field_name("name")
    name = _text(name_node) if name_node is not None else ""
    if name.endswith("Attribute"):
        name = name[: -len("Attribute")]
    return name


def _attribute_first_argument(attribute: Any) -> str:
    for child in attribute.named_children:
        if child.type == "attribute_argument_list":
            for arg in child.named_children:
                if arg.type == "attribute_argument":
                    text = _text(arg).strip()
                    if text.startswith("@"):
                        text = text[1:]
                    return text.strip('"')
    return ""


def _attributes(node: Any) -> list[Any]:
    found: list[Any] = []
    for child in node.children:
        if child.type == "attribute_list":
            found.extend(c for c in child.named_children if c.type == "attribute")
    return found


class CSharpParser:
    """Parser for C# source code using tree-sitter.

    Only types declared directly in a namespace (block or file-scoped) or
    at the top level of a file are reported; nested types are not.
    """

    _TYPE_QUERY = """
    [
      (class_declaration name: (identifier) @name)
      (interface_declaration name: (identifier) @name)
      (struct_declaration name: (identifier) @name)
      (enum_declaration name: (identifier) @name)
      (record_declaration name: (identifier) @name)
    ] @def
    """

    def __init__(self) -> None:
        self._lang = Language(tree_sitter_c_sharp.language())
        self._parser = Parser(self._lang)
        self._type_q = Query(self._lang, self._TYPE_QUERY)

    def parse_types(self, source: bytes, file_path: str) -> list[TypeRecord]:
        """Extract type declarations from C# source code.

        Args:
            source: Raw bytes of the C# source file.
            file_path: Path stored on every returned record, relative to
                the project root.

        Returns:
            One :class:`TypeRecord` per namespace-level declaration, in
            source order.
        """
        tree = self._parser.parse(source)
        root = tree.root_node
        file_scoped = self._file_scoped_namespace(root)

        records: list[TypeRecord] = []
        for node, name in self._run_query(self._type_q, root):
            namespace = self._namespace_of(node, file_scoped)
            if namespace is None:
                continue
            records.append(self._build_type(node, name, namespace, file_path))
        return records

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _run_query(self, query: Query, root_node: Any) -> list[tuple[Any, str]]:
        """Execute a tree-sitter query and return (definition_node, name) pairs in source order."""
        cursor = QueryCursor(query)
        results: list[tuple[Any, str]] = []
        for _pattern_idx, captures in cursor.matches(root_node):
            def_nodes = captures.get("def", [])
            name_nodes = captures.get("name", [])
            if def_nodes and name_nodes:
                results.append((def_nodes[0], _text(name_nodes[0])))
        results.sort(key=lambda pair: pair[0].start_byte)
        return results

    @staticmethod
    def _file_scoped_namespace(root: Any) -> str | None:
        for child in root.named_children:
            if child.type == "file_scoped_namespace_declaration":
                name = child.child_by_field_name("name")
                if name is not None:
                    return _text(name)
        return None

    @staticmethod
    def _namespace_of(node: Any, file_scoped: str | None) -> str | None:
        """Return the enclosing namespace, or ``None`` for a nested type."""
        parent = node.parent
        if parent is None:
            return None
        if parent.type in ("compilation_unit", "file_scoped_namespace_declaration"):
            return file_scoped or GLOBAL_NAMESPACE
        if parent.type != "declaration_list":
            return None
        container = parent.parent
        if container is None or container.type != "namespace_declaration":
            return None

        parts: list[str] = []
        current = container
        while current is not None and current.type == "namespace_declaration":
            name = current.child_by_field_name("name")
            if name is not None:
                parts.insert(0, _text(name))
            body = current.parent
            current = body.parent if body is not None and body.type == "declaration_list" else None
        if file_scoped:
            parts.insert(0, file_scoped)
        return ".".join(parts)

    def _build_type(self, node: Any, name: str, namespace: str, file_path: str) -> TypeRecord:
        kind = _TYPE_KINDS[node.type]
        if kind == TypeKind.RECORD and any(c.type == "struct" for c in node.children):
            kind = TypeKind.RECORD_STRUCT

        modifiers = self._modifiers(node)
        is_public = "public" in modifiers
        base_type, interfaces = (None, []) if kind == TypeKind.ENUM else self._base_list(node)

        injected: list[str] = []
        if kind in _INJECTABLE_KINDS:
            injected = self._constructor_injections(node)

        methods: list[MethodRecord] = []
        if is_public and kind != TypeKind.ENUM:
            methods = self._public_methods(node)

        return TypeRecord(
            namespace=namespace,
            name=name,
            kind=kind,
            is_public=is_public,
            is_partial="partial" in modifiers,
            file_path=file_path,
            base_type=base_type,
            summary=self._extract_xml_summary(node),
            interfaces=interfaces,
            injected_dependencies=injected,
            methods=methods,
        )

    @staticmethod
    def _modifiers(node: Any) -> set[str]:
        return {_text(c) for c in node.children if c.type == "modifier"}

    @staticmethod
    def _body(node: Any) -> Any | None:
        body = node.child_by_field_name("body")
        if body is not None:
            return body
        for child in node.children:
            if child.type == "declaration_list":
                return child
        return None

    @staticmethod
    def _base_list(node: Any) -> tuple[str | None, list[str]]:
        """Split a base list into (base type, interfaces).

        The first entry is an interface only when it looks like one; every
        later entry is an interface.
        """
        base_type: str | None = None
        interfaces: list[str] = []
        base_list = next((c for c in node.children if c.type == "base_list"), None)
        if base_list is None:
            return base_type, interfaces

        entries = [c for c in base_list.named_children if c.type not in ("comment", "argument_list")]
        for index, entry in enumerate(entries):
            if entry.type == "primary_constructor_base_type" and entry.named_children:
                entry = entry.named_children[0]
            name = _text(entry).strip()
            if index == 0 and not looks_like_interface(name):
                base_type = name
            else:
                interfaces.append(name)
        return base_type, interfaces

    @staticmethod
    def _parameters(parameter_list: Any) -> list[tuple[str, str]]:
        """Return (name, type) pairs of a parameter list."""
        params: list[tuple[str, str]] = []
        for param in parameter_list.named_children:
            if param.type != "parameter":
                continue
            name_node = param.child_by_field_name("name")
            type_node = param.child_by_field_name("type")
            params.append((
                _text(name_node) if name_node is not None else "",
                _text(type_node) if type_node is not None else "unknown",
            ))
        return params

    def _constructor_injections(self, node: Any) -> list[str]:
        lists = [c for c in node.children if c.type == "parameter_list"]
        body = self._body(node)
        if body is not None:
            for member in body.named_children:
                if member.type == "constructor_declaration":
                    params = member.child_by_field_name("parameters")
                    if params is not None:
                        lists.append(params)

        deps: list[str] = []
        for parameter_list in lists:
            for _name, type_name in self._parameters(parameter_list):
                if is_likely_dependency(type_name) and type_name not in deps:
                    deps.append(type_name)
        return deps

    def _public_methods(self, node: Any) -> list[MethodRecord]:
        body = self._body(node)
        if body is None:
            return []
        route_prefix = self._class_route_prefix(node)

        methods: list[MethodRecord] = []
        for member in body.named_children:
            if member.type != "method_declaration":
                continue
            modifiers = self._modifiers(member)
            if "public" not in modifiers:
                continue
            name_node = member.child_by_field_name("name")
            returns = member.child_by_field_name("returns") or member.child_by_field_name("type")
            params = member.child_by_field_name("parameters")
            method_name = _text(name_node) if name_node is not None else ""
            methods.append(MethodRecord(
                name=method_name,
                return_type=_text(returns) if returns is not None else "void",
                is_public=True,
                is_static="static" in modifiers,
                parameters=[
                    ParameterRecord(name=p_name, type_name=p_type, position=i)
                    for i, (p_name, p_type) in enumerate(
                        self._parameters(params) if params is not None else []
                    )
                ],
                endpoints=self._endpoints(member, method_name, route_prefix),
            ))
        return methods

    @staticmethod
    def _class_route_prefix(node: Any) -> str:
        for attribute in _attributes(node):
            if _attribute_name(attribute) == "Route":
                return _attribute_first_argument(attribute)
        return ""

    @staticmethod
    def _endpoints(method: Any, method_name: str, route_prefix: str) -> list[EndpointRecord]:
        endpoints: list[EndpointRecord] = []
        for attribute in _attributes(method):
            attr_name = _attribute_name(attribute)
            lowered = attr_name.lower()
            verb = _HTTP_ATTRIBUTES.get(lowered)
            if verb is not None:
                endpoints.append(EndpointRecord(
                    verb=verb,
                    route=combine_route(route_prefix, _attribute_first_argument(attribute)),
                    kind=EndpointKind.REST,
                ))
            if lowered in _GRAPHQL_ATTRIBUTES:
                if "mutation" in lowered:
                    operation = "MUTATION"
                elif "subscription" in lowered:
                    operation = "SUBSCRIPTION"
                else:
                    operation = "QUERY"
                endpoints.append(EndpointRecord(
                    verb=operation,
                    route=_attribute_first_argument(attribute) or method_name,
                    kind=EndpointKind.GRAPHQL,
                ))
        return endpoints

    @staticmethod
    def _extract_xml_summary(node: Any) -> str | None:
        """Return the ``<summary>`` text of the ``///`` comments preceding a declaration."""
        doc_lines: list[str] = []
        sibling = node.prev_named_sibling
        while sibling is not None and sibling.type == "comment":
            text = _text(sibling).strip()
            if not text.startswith("///"):
                break
            doc_lines.append(text)
            sibling = sibling.prev_named_sibling
        if not doc_lines:
            return None

        doc_lines.reverse()
        xml = "\n".join(doc_lines)
        start = xml.find("<summary>")
        end = xml.find("</summary>")
        if start < 0 or end <= start:
            return None
        raw = xml[start + len("<summary>"):end]
        content = "\n".join(line.lstrip().lstrip("/").lstrip() for line in raw.split("\n")).strip()
        return content or None
