import logging
import random
import re
import string
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..core.models import AssetResult

logger = logging.getLogger(__name__)

ASSET_URL_PREFIX = "/assets/"
IMAGE_EXTENSIONS = frozenset([".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp"])

_VIEWBOX = re.compile(r"""viewBox=["']([^"']+)["']""")
_NAME_TIMESTAMP = re.compile(r"-(\d{13})-[a-z0-9]{6}(?:\.[^.]+)?$")


def detect_asset_kind(file_name: str) -> str:
    """'image', 'svg' or 'unknown' from the file extension"""
    ext = Path(file_name).suffix.lower()
    if ext == ".svg":
        return "svg"
    if ext in IMAGE_EXTENSIONS:
        return "image"
    return "unknown"


def generate_unique_file_name(original_name: str) -> str:
    """`<base>-<epoch millis>-<6 random chars>`, without the extension"""
    base = Path(original_name).stem
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"{base}-{int(time.time() * 1000)}-{suffix}"


def save_image(data: bytes, dest_dir: Union[str, Path], file_name: str, alt: Optional[str] = None) -> AssetResult:
    """Store an image as-is; no transcoding"""
    dest = Path(dest_dir)
    dest.mkdir(parents=True, exist_ok=True)
    (dest / file_name).write_bytes(data)
    logger.info(f"Saved image asset {file_name}")
    return AssetResult(url=f"{ASSET_URL_PREFIX}{file_name}", kind="image", alt=alt)


def save_svg(source: Union[bytes, str, Path], dest_dir: Union[str, Path], file_base: str) -> AssetResult:
    """Store an SVG from bytes or a path and report its viewBox"""
    if isinstance(source, bytes):
        svg_content = source.decode("utf-8")
    else:
        svg_content = Path(source).read_text(encoding="utf-8")

    dest = Path(dest_dir)
    dest.mkdir(parents=True, exist_ok=True)
    (dest / f"{file_base}.svg").write_text(svg_content, encoding="utf-8")

    match = _VIEWBOX.search(svg_content)
    logger.info(f"Saved svg asset {file_base}.svg")
    return AssetResult(
        url=f"{ASSET_URL_PREFIX}{file_base}.svg",
        kind="svg",
        view_box=match.group(1) if match else None,
    )


def ingest_upload(data: bytes, original_name: str, dest_dir: Union[str, Path],
                  alt: Optional[str] = None) -> AssetResult:
    """Name and store an uploaded file; raises ValueError for unsupported types"""
    kind = detect_asset_kind(original_name)
    if kind == "unknown":
        raise ValueError(f"Unsupported asset type: {original_name}")

    unique_base = generate_unique_file_name(original_name)
    if kind == "svg":
        return save_svg(data, dest_dir, unique_base)
    return save_image(data, dest_dir, unique_base + Path(original_name).suffix.lower(), alt)


def _created_at(file_name: str) -> Optional[int]:
    match = _NAME_TIMESTAMP.search(file_name)
    return int(match.group(1)) if match else None


def list_assets(assets_dir: Union[str, Path]) -> List[Dict[str, Any]]:
    """Stored assets, newest first (by the timestamp in their name)"""
    directory = Path(assets_dir)
    if not directory.is_dir():
        return []

    assets = []
    for path in directory.iterdir():
        kind = detect_asset_kind(path.name)
        if not path.is_file() or kind == "unknown":
            continue
        assets.append({
            "url": f"{ASSET_URL_PREFIX}{path.name}",
            "kind": kind,
            "fileName": path.name,
            "createdAt": _created_at(path.name),
        })

    assets.sort(key=lambda asset: (asset["createdAt"] is not None, asset["createdAt"] or 0, asset["fileName"]),
                reverse=True)
    return assets
