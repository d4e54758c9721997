from typing import Any, Dict, Optional


class LivePatchError(Exception):
    """Base error; `stage` tells the caller which step of an edit failed"""

    stage = "request"
    code = "LIVEPATCH_ERROR"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "stage": self.stage,
            "details": self.details,
        }


class LocatorNotFound(LivePatchError):
    stage = "locate"
    code = "LOCATOR_NOT_FOUND"


class ComponentNotFound(LivePatchError):
    stage = "patch"
    code = "COMPONENT_NOT_FOUND"


class NoTextNodeFound(LivePatchError):
    stage = "patch"
    code = "NO_TEXT_NODE_FOUND"


class NoTargetAttributeCarrier(LivePatchError):
    stage = "patch"
    code = "NO_TARGET_ATTRIBUTE_CARRIER"


class UnsupportedSourceFile(LivePatchError):
    stage = "patch"
    code = "UNSUPPORTED_SOURCE_FILE"


class PreviewUnreachable(LivePatchError):
    stage = "deliver"
    code = "PREVIEW_UNREACHABLE"


class PreviewRejected(LivePatchError):
    stage = "deliver"
    code = "PREVIEW_REJECTED"

    def __init__(self, message: str, status: Optional[int] = None, details: Optional[Any] = None):
        super().__init__(message, details)
        self.status = status


class MalformedRequest(LivePatchError):
    stage = "request"
    code = "MALFORMED_REQUEST"


class FileNotFoundInProject(LivePatchError):
    stage = "request"
    code = "FILE_NOT_FOUND"
