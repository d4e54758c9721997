"""
Tree-sitter access for JSX/TSX component sources.

Parses a file, finds a named component at the top level of the program and
walks the markup nodes of that component in document order. Nothing here
mutates source text; see patch_engine for the edits.
"""

import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, Dict, Iterator, List, Optional

import tree_sitter_javascript
import tree_sitter_typescript
from tree_sitter import Language, Node, Parser, Tree

from ..core.errors import ComponentNotFound, UnsupportedSourceFile

logger = logging.getLogger(__name__)

EXTENSION_LANGUAGES = {
    ".tsx": "tsx",
    ".ts": "typescript",
    ".jsx": "javascript",
    ".js": "javascript",
    ".mjs": "javascript",
}

MARKUP_NODE_TYPES = frozenset(["jsx_element", "jsx_self_closing_element", "jsx_fragment"])
FUNCTION_EXPRESSION_TYPES = frozenset(["arrow_function", "function_expression", "function"])
DEFAULT_EXPORT_ALIAS = "default"

_languages: Dict[str, Language] = {}


def get_language(name: str) -> Language:
    """Load and cache a grammar"""
    if name not in _languages:
        if name == "tsx":
            _languages[name] = Language(tree_sitter_typescript.language_tsx())
        elif name == "typescript":
            _languages[name] = Language(tree_sitter_typescript.language_typescript())
        elif name == "javascript":
            _languages[name] = Language(tree_sitter_javascript.language())
        else:
            raise UnsupportedSourceFile(f"No grammar for language: {name}")
    return _languages[name]


def detect_language(file_path: str) -> str:
    suffix = PurePosixPath(file_path).suffix.lower()
    language = EXTENSION_LANGUAGES.get(suffix)
    if language is None:
        raise UnsupportedSourceFile(
            f"Unsupported source file type: {file_path}",
            details={"supported": sorted(EXTENSION_LANGUAGES)},
        )
    return language


@dataclass
class ParsedSource:
    file_path: str
    source: bytes
    tree: Tree

    @property
    def root(self) -> Node:
        return self.tree.root_node

    def text(self, node: Node) -> str:
        return self.source[node.start_byte:node.end_byte].decode("utf-8")


def parse_source(content: str, file_path: str) -> ParsedSource:
    """Parse a component file into a syntax tree"""
    # A parser per call: patches run on worker threads and Parser is not thread-safe.
    parser = Parser(get_language(detect_language(file_path)))
    source = content.encode("utf-8")
    tree = parser.parse(source)
    if tree.root_node.has_error:
        logger.warning(f"Syntax errors while parsing {file_path}; continuing with a partial tree")
    return ParsedSource(file_path=file_path, source=source, tree=tree)


def _top_level_declarations(root: Node) -> Iterator[Node]:
    """Program-level statements, looking through `export` wrappers"""
    for child in root.named_children:
        if child.type == "export_statement":
            declaration = child.child_by_field_name("declaration")
            if declaration is not None:
                yield declaration
        else:
            yield child


def _default_export_value(root: Node) -> Optional[Node]:
    for child in root.named_children:
        if child.type != "export_statement":
            continue
        if not any(token.type == "default" for token in child.children):
            continue
        value = child.child_by_field_name("value")
        if value is None:
            value = child.child_by_field_name("declaration")
        return value
    return None


def _identifier(parsed: ParsedSource, node: Optional[Node]) -> Optional[str]:
    return parsed.text(node) if node is not None else None


def _unwrap_parentheses(node: Node) -> Node:
    while node.type == "parenthesized_expression" and node.named_children:
        node = node.named_children[0]
    return node


def find_component(parsed: ParsedSource, component_name: str) -> Node:
    """Locate a component's function node.

    Priority: a top-level function declaration with that name, then a
    top-level variable whose initializer is an arrow function, then the
    default export when its expression is a function and the name denotes it
    (``"default"`` or the file's stem).
    """
    declarations = list(_top_level_declarations(parsed.root))

    for node in declarations:
        if node.type == "function_declaration":
            if _identifier(parsed, node.child_by_field_name("name")) == component_name:
                return node

    for node in declarations:
        if node.type not in ("lexical_declaration", "variable_declaration"):
            continue
        for declarator in node.named_children:
            if declarator.type != "variable_declarator":
                continue
            if _identifier(parsed, declarator.child_by_field_name("name")) != component_name:
                continue
            value = declarator.child_by_field_name("value")
            if value is not None and _unwrap_parentheses(value).type == "arrow_function":
                return _unwrap_parentheses(value)

    if component_name in (DEFAULT_EXPORT_ALIAS, PurePosixPath(parsed.file_path).stem):
        value = _default_export_value(parsed.root)
        if value is not None:
            value = _unwrap_parentheses(value)
            if value.type in FUNCTION_EXPRESSION_TYPES or value.type == "function_declaration":
                return value

    raise ComponentNotFound(
        f"Component '{component_name}' not found in {parsed.file_path}",
        details={"file": parsed.file_path, "componentName": component_name},
    )


def component_body(component: Node) -> Node:
    body = component.child_by_field_name("body")
    return body if body is not None else component


def iter_markup_nodes(scope: Node) -> Iterator[Node]:
    """Yield markup nodes under `scope` in document (pre-)order"""
    stack = [scope]
    while stack:
        node = stack.pop()
        if node.type in MARKUP_NODE_TYPES:
            yield node
        stack.extend(reversed(node.children))


@dataclass
class MarkupMatch:
    element: Node
    target: Node


MarkupPredicate = Callable[[Node], Optional[Node]]


def find_first_markup(scope: Node, predicate: MarkupPredicate) -> Optional[MarkupMatch]:
    """First markup node for which `predicate` yields a target, or None"""
    for element in iter_markup_nodes(scope):
        target = predicate(element)
        if target is not None:
            return MarkupMatch(element=element, target=target)
    return None


# Markup helpers

def opening_node(element: Node) -> Optional[Node]:
    """The node that carries the tag name and attributes"""
    if element.type == "jsx_self_closing_element":
        return element
    if element.type == "jsx_element":
        opening = element.child_by_field_name("open_tag")
        if opening is None and element.named_children:
            opening = element.named_children[0]
        if opening is not None and opening.type == "jsx_opening_element":
            return opening
    return None


def tag_name(parsed: ParsedSource, element: Node) -> Optional[str]:
    opening = opening_node(element)
    if opening is None:
        return None
    return _identifier(parsed, opening.child_by_field_name("name"))


def first_text_child(element: Node) -> Optional[Node]:
    """First direct `jsx_text` child with non-whitespace content"""
    if element.type not in ("jsx_element", "jsx_fragment"):
        return None
    for child in element.children:
        if child.type == "jsx_text" and child.text.strip():
            return child
    return None


def attributes(element: Node) -> List[Node]:
    opening = opening_node(element)
    if opening is None:
        return []
    return [child for child in opening.named_children if child.type == "jsx_attribute"]


def attribute_name(parsed: ParsedSource, attribute: Node) -> str:
    return parsed.text(attribute.named_children[0])


def attribute_value(attribute: Node) -> Optional[Node]:
    children = attribute.named_children
    return children[1] if len(children) > 1 else None


def find_attribute(parsed: ParsedSource, element: Node, name: str) -> Optional[Node]:
    for attribute in attributes(element):
        if attribute_name(parsed, attribute) == name:
            return attribute
    return None
