from pathlib import Path, PurePosixPath
from typing import Union

from .errors import MalformedRequest


def resolve_within(root: Union[str, Path], relative_path: str) -> Path:
    """Resolve `relative_path` under `root`, refusing anything that escapes it"""
    if not relative_path or not isinstance(relative_path, str):
        raise MalformedRequest("File path must be a non-empty string")
    if PurePosixPath(relative_path).is_absolute() or Path(relative_path).is_absolute():
        raise MalformedRequest(f"File path must be relative: {relative_path}")

    base = Path(root).resolve()
    target = (base / relative_path).resolve()
    if target != base and base not in target.parents:
        raise MalformedRequest(f"File path escapes the project root: {relative_path}")
    return target
