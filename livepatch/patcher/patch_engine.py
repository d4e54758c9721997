"""
Syntax-tree guided edits of a single node inside a named component.

Every function returns the complete file text; bytes outside the edited node
are copied through untouched. Files are read here but never written: the
update channel owns persistence.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from tree_sitter import Node

from ..core.errors import FileNotFoundInProject, NoTargetAttributeCarrier, NoTextNodeFound
from ..core.models import EditIntent, PatchResult, ReplaceAttribute, ReplaceText, SourceLocator
from ..core.paths import resolve_within
from .syntax import (
    ParsedSource,
    attribute_name,
    attribute_value,
    attributes,
    component_body,
    find_attribute,
    find_component,
    find_first_markup,
    first_text_child,
    opening_node,
    parse_source,
    tag_name,
)

logger = logging.getLogger(__name__)

DEFAULT_ATTRIBUTE = "src"
ALT_ATTRIBUTE = "alt"
DEFAULT_CANDIDATE_ATTRIBUTES = ("src", "image", "imageSrc", "icon", "logo")
CARRIER_TAGS = frozenset(["img", "Image", "source", "video", "audio", "iframe"])

_WHITESPACE = b" \t\r\n"

Edit = Tuple[int, int, bytes]


def _splice(source: bytes, edits: List[Edit]) -> str:
    """Apply non-overlapping (start, end, replacement) edits"""
    result = source
    # Later-queued edits at the same offset go in first so queue order is kept in the output.
    ordered = sorted(enumerate(edits), key=lambda item: (item[1][0], item[1][1], item[0]), reverse=True)
    for _, (start, end, replacement) in ordered:
        result = result[:start] + replacement + result[end:]
    return result.decode("utf-8")


def _read_source(root: Union[str, Path], file_path: str) -> str:
    path = resolve_within(root, file_path)
    if not path.is_file():
        raise FileNotFoundInProject(f"File not found: {file_path}", details={"file": file_path})
    # Bytes, so CRLF line endings come back unchanged.
    return path.read_bytes().decode("utf-8")


def _scope(parsed: ParsedSource, component_name: Optional[str]) -> Node:
    if component_name is None:
        return parsed.root
    return component_body(find_component(parsed, component_name))


# Text edits

def replace_text_in_source(content: str, file_path: str, component_name: str, new_text: str) -> PatchResult:
    """Replace the first literal text inside `component_name` with `new_text`"""
    parsed = parse_source(content, file_path)
    scope = _scope(parsed, component_name)

    match = find_first_markup(scope, first_text_child)
    if match is None:
        raise NoTextNodeFound(
            f"No text node found in component '{component_name}'",
            details={"file": file_path, "componentName": component_name},
        )

    text_node = match.target
    raw = parsed.source[text_node.start_byte:text_node.end_byte]
    # Keep the layout whitespace around the literal.
    start = text_node.start_byte + (len(raw) - len(raw.lstrip(_WHITESPACE)))
    end = text_node.end_byte - (len(raw) - len(raw.rstrip(_WHITESPACE)))

    updated = _splice(parsed.source, [(start, end, new_text.encode("utf-8"))])
    logger.info(f"Replaced text in {file_path}::{component_name} at byte {start}")
    return PatchResult(updated_source=updated)


def apply_text_edit(root: Union[str, Path], file_path: str, component_name: str, new_text: str) -> PatchResult:
    return replace_text_in_source(_read_source(root, file_path), file_path, component_name, new_text)


# Attribute edits

def _quote(value: str, quote: str = '"') -> bytes:
    entity = "&quot;" if quote == '"' else "&#39;"
    return f"{quote}{value.replace(quote, entity)}{quote}".encode("utf-8")


def _find_carrier(parsed: ParsedSource, scope: Node, attr_name: str,
                  candidates: Sequence[str]) -> Tuple[Node, str]:
    """Element to edit and the attribute name to write on it"""
    match = find_first_markup(scope, lambda element: find_attribute(parsed, element, attr_name))
    if match is not None:
        return match.element, attr_name

    def has_candidate(element: Node) -> Optional[Node]:
        for attribute in attributes(element):
            if attribute_name(parsed, attribute) in candidates:
                return attribute
        return None

    match = find_first_markup(scope, has_candidate)
    if match is not None:
        return match.element, attribute_name(parsed, match.target)

    def is_carrier_tag(element: Node) -> Optional[Node]:
        return opening_node(element) if tag_name(parsed, element) in CARRIER_TAGS else None

    match = find_first_markup(scope, is_carrier_tag)
    if match is not None:
        return match.element, attr_name

    raise NoTargetAttributeCarrier(
        f"No element can carry attribute '{attr_name}' in {parsed.file_path}",
        details={"file": parsed.file_path, "attrName": attr_name, "candidates": list(candidates)},
    )


def _set_attribute(parsed: ParsedSource, element: Node, name: str, value: str,
                   edits: List[Edit], insertions: List[bytes]):
    """Queue a value replacement, or an insertion when the attribute is absent"""
    attribute = find_attribute(parsed, element, name)
    if attribute is None:
        insertions.append(b" " + name.encode("utf-8") + b"=" + _quote(value))
        return

    value_node = attribute_value(attribute)
    if value_node is None:
        # Boolean attribute such as `<img src />`
        edits.append((attribute.end_byte, attribute.end_byte, b"=" + _quote(value)))
        return

    quote = "'" if parsed.text(value_node).startswith("'") else '"'
    edits.append((value_node.start_byte, value_node.end_byte, _quote(value, quote)))


def _insertion_point(element: Node) -> int:
    """Byte offset just before the element's closing delimiter (`>` or `/>`)"""
    opening = opening_node(element)
    return opening.named_children[-1].end_byte


def replace_attribute_in_source(content: str, file_path: str, component_name: Optional[str],
                                attr_name: str, new_value: str, alt_value: Optional[str] = None,
                                candidates: Sequence[str] = DEFAULT_CANDIDATE_ATTRIBUTES) -> PatchResult:
    """Set an attribute (and optionally `alt`) on the first element able to carry it.

    With `component_name` None the whole file is searched.
    """
    attr_name = attr_name or DEFAULT_ATTRIBUTE
    parsed = parse_source(content, file_path)
    scope = _scope(parsed, component_name)

    element, write_name = _find_carrier(parsed, scope, attr_name, candidates)

    edits: List[Edit] = []
    insertions: List[bytes] = []
    _set_attribute(parsed, element, write_name, new_value, edits, insertions)
    if alt_value is not None:
        _set_attribute(parsed, element, ALT_ATTRIBUTE, alt_value, edits, insertions)

    if insertions:
        point = _insertion_point(element)
        edits.append((point, point, b"".join(insertions)))

    updated = _splice(parsed.source, edits)
    logger.info(f"Set attribute '{write_name}' in {file_path}::{component_name or '<file>'}")
    return PatchResult(updated_source=updated)


def apply_attribute_edit(root: Union[str, Path], file_path: str, component_name: Optional[str],
                         attr_name: str, new_value: str, alt_value: Optional[str] = None) -> PatchResult:
    content = _read_source(root, file_path)
    return replace_attribute_in_source(content, file_path, component_name, attr_name, new_value, alt_value)


def apply_edit(root: Union[str, Path], locator: SourceLocator, intent: EditIntent) -> PatchResult:
    """Dispatch an edit intent against the locator's file and component"""
    if isinstance(intent, ReplaceText):
        return apply_text_edit(root, locator.file_path, locator.component_name, intent.new_text)
    if isinstance(intent, ReplaceAttribute):
        return apply_attribute_edit(
            root,
            locator.file_path,
            locator.component_name,
            intent.attr_name or locator.target_attribute or DEFAULT_ATTRIBUTE,
            intent.new_value,
            intent.alt_value,
        )
    raise TypeError(f"Unknown edit intent: {intent!r}")
