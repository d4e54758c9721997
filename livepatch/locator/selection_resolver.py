"""
DOM path to source locator resolution.

Rendered markup is tagged with `data-lp-*` attributes by the preview's
instrumentation. Each tagged element's DOM path becomes an entry in the
resolver's map; a lookup falls back to the nearest ancestor path with an
entry when the exact path is unknown.
"""

import json
import logging
import re
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, List, Optional, Union

from bs4 import BeautifulSoup
from bs4.element import Tag

from ..core.errors import LocatorNotFound
from ..core.models import EditKind, SourceLocator

logger = logging.getLogger(__name__)

PATH_SEPARATOR = " > "
ROOT_BOUNDARY = frozenset(["body", "html", "[document]"])
MAX_CLASSES = 2

FILE_ATTR = "data-lp-file"
COMPONENT_ATTR = "data-lp-component"
LINE_ATTR = "data-lp-line"
COL_ATTR = "data-lp-col"

ASSET_ELEMENTS = frozenset(["img", "div", "section", "header", "main", "aside"])
ASSET_ATTRIBUTES = frozenset(["src", "image", "imageSrc", "icon", "logo", "href"])
NON_TEXT_ELEMENTS = frozenset(["img", "input", "br", "hr", "source", "video", "audio", "iframe", "svg"])

_SEGMENT_SPLIT = re.compile(r"\s*>\s*")
_SEGMENT_TAG = re.compile(r"^[A-Za-z][\w-]*")


@dataclass
class LocatorEntry:
    file_path: str
    component_name: str
    line: int = 1
    col: int = 1
    target_attribute: Optional[str] = None


def split_path(dom_path: str) -> List[str]:
    return [segment for segment in _SEGMENT_SPLIT.split(dom_path.strip()) if segment]


def normalize_path(dom_path: str) -> str:
    return PATH_SEPARATOR.join(split_path(dom_path))


def element_type_of(dom_path: str) -> Optional[str]:
    segments = split_path(dom_path)
    if not segments:
        return None
    match = _SEGMENT_TAG.match(segments[-1])
    return match.group(0).lower() if match else None


def position_hint(raw: object) -> int:
    """Line or column hint; unusable values fall back to 1"""
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring invalid position hint: {raw!r}")
        return 1
    return value if value > 0 else 1


def target_attribute_for(element_type: Optional[str], attrs: Optional[Dict[str, object]] = None) -> Optional[str]:
    """Attribute an asset edit should target for this kind of element"""
    attrs = attrs or {}
    if element_type == "img" or "src" in attrs:
        return "src"
    if "href" in attrs:
        return "href"
    return None


def compute_path(element: Tag) -> str:
    """Ancestor chain of `element` up to (not including) the document body.

    Each segment is the tag, `#id` when present, up to two class names, and
    `:nth-of-type(n)` when the element has neither id nor class and shares
    its tag with siblings.
    """
    segments = []
    current = element
    while isinstance(current, Tag) and current.name not in ROOT_BOUNDARY:
        selector = current.name.lower()

        element_id = current.get("id")
        if element_id:
            selector += f"#{element_id}"

        classes = current.get("class") or []
        if isinstance(classes, str):
            classes = classes.split()
        if classes:
            selector += "." + ".".join(classes[:MAX_CLASSES])

        parent = current.parent
        if not element_id and not classes and parent is not None:
            same_tag = parent.find_all(current.name, recursive=False)
            if len(same_tag) > 1:
                index = next(i for i, sibling in enumerate(same_tag) if sibling is current)
                selector += f":nth-of-type({index + 1})"

        segments.insert(0, selector)
        current = parent
    return PATH_SEPARATOR.join(segments)


class SelectionResolver:
    def __init__(self, entries: Optional[Dict[str, LocatorEntry]] = None):
        self.entries: Dict[str, LocatorEntry] = {}
        for dom_path, entry in (entries or {}).items():
            self.entries[normalize_path(dom_path)] = entry

    def register(self, dom_path: str, file_path: str, component_name: str,
                 line: int = 1, col: int = 1, target_attribute: Optional[str] = None):
        """Add or replace the mapping for a DOM path"""
        self.entries[normalize_path(dom_path)] = LocatorEntry(
            file_path=file_path,
            component_name=component_name,
            line=line,
            col=col,
            target_attribute=target_attribute,
        )

    def load_map(self, map_path: Union[str, Path]) -> int:
        """Load `{domPath: {file, componentName, line?, col?}}` entries from JSON"""
        with open(map_path) as f:
            data = json.load(f)
        for dom_path, raw in data.items():
            self.register(
                dom_path,
                raw["file"],
                raw["componentName"],
                line=position_hint(raw.get("line", 1)),
                col=position_hint(raw.get("col", 1)),
                target_attribute=raw.get("targetAttr"),
            )
        logger.info(f"Loaded {len(data)} locator entries from {map_path}")
        return len(data)

    def save_map(self, map_path: Union[str, Path]):
        data = {}
        for dom_path, entry in self.entries.items():
            raw = asdict(entry)
            data[dom_path] = {
                "file": raw["file_path"],
                "componentName": raw["component_name"],
                "line": raw["line"],
                "col": raw["col"],
                "targetAttr": raw["target_attribute"],
            }
        with open(map_path, "w") as f:
            json.dump(data, f, indent=2)

    def index_rendered_html(self, html: str) -> int:
        """Register every element tagged by the render instrumentation"""
        soup = BeautifulSoup(html, "html.parser")
        count = 0
        for element in soup.find_all(attrs={FILE_ATTR: True, COMPONENT_ATTR: True}):
            locator = locator_for_element(
                element,
                element[FILE_ATTR],
                element[COMPONENT_ATTR],
                line=position_hint(element.get(LINE_ATTR, 1)),
                col=position_hint(element.get(COL_ATTR, 1)),
            )
            self.register(
                locator.dom_path,
                locator.file_path,
                locator.component_name,
                line=locator.line,
                col=locator.col,
                target_attribute=locator.target_attribute,
            )
            count += 1
        logger.debug(f"Indexed {count} instrumented elements")
        return count

    def resolve(self, dom_path: str) -> SourceLocator:
        """Map a DOM path to its source, falling back to the nearest mapped ancestor"""
        segments = split_path(dom_path)
        element_type = element_type_of(dom_path)

        for depth in range(len(segments), 0, -1):
            entry = self.entries.get(PATH_SEPARATOR.join(segments[:depth]))
            if entry is None:
                continue
            exact = depth == len(segments)
            if not exact:
                logger.debug(f"Resolved {dom_path!r} through ancestor at depth {depth}")
            return SourceLocator(
                file_path=entry.file_path,
                component_name=entry.component_name,
                target_attribute=entry.target_attribute if exact else target_attribute_for(element_type),
                dom_path=PATH_SEPARATOR.join(segments),
                element_type=element_type,
                line=entry.line,
                col=entry.col,
            )

        raise LocatorNotFound(f"No source mapping for DOM path: {dom_path}", details={"domPath": dom_path})


def locator_for_element(element: Tag, file_path: str, component_name: str,
                        line: Optional[int] = None, col: Optional[int] = None) -> SourceLocator:
    """Build a locator straight from a rendered element and known component info"""
    element_type = element.name.lower()
    return SourceLocator(
        file_path=file_path,
        component_name=component_name,
        target_attribute=target_attribute_for(element_type, element.attrs),
        dom_path=compute_path(element),
        element_type=element_type,
        line=line or 1,
        col=col or 1,
    )


def is_editable_for(locator: Optional[SourceLocator], edit_kind: EditKind) -> bool:
    """Whether the UI should offer `edit_kind` for the selected element"""
    if locator is None:
        return False
    if edit_kind is EditKind.ASSET:
        return (locator.element_type or "") in ASSET_ELEMENTS or (locator.target_attribute or "") in ASSET_ATTRIBUTES
    if edit_kind is EditKind.TEXT:
        return (locator.element_type or "") not in NON_TEXT_ELEMENTS
    return False


def format_selection(locator: Optional[SourceLocator]) -> str:
    if locator is None:
        return "No element selected"
    parts = [
        f"Component: {locator.component_name}",
        f"File: {locator.file_path}",
        locator.element_type and f"Element: <{locator.element_type}>",
        locator.target_attribute and f"Attribute: {locator.target_attribute}",
    ]
    return " • ".join(part for part in parts if part)
