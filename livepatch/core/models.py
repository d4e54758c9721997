from typing import Dict, Any, Optional, Union
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum


def utc_timestamp() -> str:
    """ISO-8601 timestamp used on every wire message"""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class SourceLocator:
    """Structured reference to the source of a rendered element.

    `component_name` is what the patch engine uses to find the node;
    `line` and `col` are hints and are never needed to apply an edit.
    """
    file_path: str
    component_name: str
    target_attribute: Optional[str] = None
    dom_path: Optional[str] = None
    element_type: Optional[str] = None
    line: int = 1
    col: int = 1
    captured_at: float = field(default_factory=lambda: datetime.now().timestamp())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filePath": self.file_path,
            "componentName": self.component_name,
            "targetAttribute": self.target_attribute,
            "domPath": self.dom_path,
            "elementType": self.element_type,
            "line": self.line,
            "col": self.col,
            "capturedAt": self.captured_at,
        }


@dataclass(frozen=True)
class ReplaceText:
    new_text: str


@dataclass(frozen=True)
class ReplaceAttribute:
    attr_name: Optional[str]
    new_value: str
    alt_value: Optional[str] = None


EditIntent = Union[ReplaceText, ReplaceAttribute]


class EditKind(Enum):
    TEXT = "text"
    ASSET = "asset"


@dataclass
class PatchResult:
    updated_source: str
    applied_at: float = field(default_factory=lambda: datetime.now().timestamp())


class MessageKind(Enum):
    """Server to client message tags on the observer push channel"""
    CONNECTION = "connection"
    FILE_UPDATE = "file-update"
    CODE_UPDATE = "code-update"
    ECHO = "echo"


@dataclass
class PreviewUpdateMessage:
    kind: MessageKind
    content: str
    file_path: Optional[str] = None
    language: Optional[str] = None
    timestamp: str = field(default_factory=utc_timestamp)

    def to_wire(self) -> Dict[str, Any]:
        if self.kind is MessageKind.FILE_UPDATE:
            data = {"filePath": self.file_path, "content": self.content}
        else:
            data = {"code": self.content, "language": self.language}
        return {
            "type": self.kind.value,
            "data": data,
            "timestamp": self.timestamp,
        }


@dataclass
class AssetResult:
    url: str
    kind: str  # 'image' or 'svg'
    alt: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    view_box: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssetResult":
        return cls(
            url=data["url"],
            kind=data.get("kind", "image"),
            alt=data.get("alt"),
            width=data.get("width"),
            height=data.get("height"),
            view_box=data.get("viewBox"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {k: v for k, v in asdict(self).items() if v is not None and k != "view_box"}
        if self.view_box is not None:
            result["viewBox"] = self.view_box
        return result
