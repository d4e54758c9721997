import asyncio
import logging
from dataclasses import dataclass
from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ..assets.asset_pipeline import ingest_upload, list_assets
from ..core.config_manager import LivePatchConfig
from ..core.errors import MalformedRequest, PreviewRejected, PreviewUnreachable
from ..core.models import AssetResult, EditIntent, EditKind, PatchResult, ReplaceAttribute, ReplaceText
from ..locator.selection_resolver import SelectionResolver, format_selection, is_editable_for
from ..patcher.patch_engine import DEFAULT_ATTRIBUTE, apply_attribute_edit, apply_edit, apply_text_edit
from .preview_client import PreviewClient
from .ui_manager import UIManager

logger = logging.getLogger(__name__)

router = APIRouter()


@dataclass
class StudioServices:
    config: LivePatchConfig
    ui_manager: UIManager
    resolver: SelectionResolver
    preview: PreviewClient


def get_services(request: Request) -> StudioServices:
    return request.app.state.services


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ResolveRequest(CamelModel):
    dom_path: str = Field(alias="domPath", min_length=1)


class IndexRequest(CamelModel):
    html: str


class PatchRequest(CamelModel):
    """Replace the first text of a component"""
    file: str = Field(min_length=1)
    component_name: str = Field(alias="componentName", min_length=1)
    new_text: str = Field(alias="newText", min_length=1)


class AttributePatchRequest(CamelModel):
    file: str = Field(min_length=1)
    component_name: str = Field(alias="componentName", min_length=1)
    attr_name: Optional[str] = Field(default=None, alias="attrName")
    value: str
    alt: Optional[str] = None


class AssetPayload(CamelModel):
    url: str = Field(min_length=1)
    kind: str = "image"
    alt: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    view_box: Optional[str] = Field(default=None, alias="viewBox")


class ApplyAssetRequest(CamelModel):
    file: str = Field(min_length=1)
    component_name: Optional[str] = Field(default=None, alias="componentName")
    target_attr: Optional[str] = Field(default=None, alias="targetAttr")
    asset: AssetPayload


class EditIntentPayload(CamelModel):
    kind: Literal["text", "attribute"]
    new_text: Optional[str] = Field(default=None, alias="newText")
    attr_name: Optional[str] = Field(default=None, alias="attrName")
    value: Optional[str] = None
    alt: Optional[str] = None

    def to_intent(self) -> EditIntent:
        if self.kind == "text":
            if not self.new_text:
                raise MalformedRequest("Text edits need a non-empty newText")
            return ReplaceText(self.new_text)
        if self.value is None:
            raise MalformedRequest("Attribute edits need a value")
        return ReplaceAttribute(self.attr_name, self.value, self.alt)


class EditRequest(CamelModel):
    """Edit the element at a DOM path, wherever its source lives"""
    dom_path: str = Field(alias="domPath", min_length=1)
    intent: EditIntentPayload


class CodeUpdateRequest(BaseModel):
    code: str = Field(min_length=1)
    language: str = Field(min_length=1)


async def _ensure_reachable(services: StudioServices):
    """Refuse to compute an edit the preview runner cannot receive"""
    if not await services.preview.is_reachable():
        raise PreviewUnreachable(f"Preview runner at {services.config.runner_url} is not reachable")


async def _run_patch(services: StudioServices, func, *args) -> PatchResult:
    start_time = services.ui_manager.metrics.time()
    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(services.ui_manager.executor, func, *args)
    services.ui_manager.metrics.record("patch_time", services.ui_manager.metrics.time() - start_time)
    return result


async def _deliver(services: StudioServices, file_path: str, result: PatchResult) -> None:
    await services.preview.push_file(file_path, result.updated_source)


@router.post("/selection/resolve")
async def resolve_selection(body: ResolveRequest, services: StudioServices = Depends(get_services)):
    """Map a clicked element's DOM path to its source locator"""
    locator = services.resolver.resolve(body.dom_path)
    return services.ui_manager.success_response({
        "locator": locator.to_dict(),
        "editable": {
            kind.value: is_editable_for(locator, kind) for kind in EditKind
        },
        "summary": format_selection(locator),
    })


@router.post("/selection/index")
async def index_rendered_markup(body: IndexRequest, services: StudioServices = Depends(get_services)):
    """Register source mappings from instrumented, rendered markup"""
    count = services.resolver.index_rendered_html(body.html)
    return services.ui_manager.success_response({"indexed": count, "total": len(services.resolver.entries)})


@router.post("/edit")
async def edit_selection(body: EditRequest, services: StudioServices = Depends(get_services)):
    """Resolve a clicked element and apply an edit intent to its component"""
    locator = services.resolver.resolve(body.dom_path)
    intent = body.intent.to_intent()
    edit_kind = EditKind.TEXT if isinstance(intent, ReplaceText) else EditKind.ASSET
    if not is_editable_for(locator, edit_kind):
        raise MalformedRequest(
            f"<{locator.element_type}> does not accept {edit_kind.value} edits",
            details={"domPath": locator.dom_path},
        )

    logger.info(f"Edit request: {body.dom_path} -> {locator.file_path}::{locator.component_name}")
    await _ensure_reachable(services)
    result = await _run_patch(services, apply_edit, services.config.served_root, locator, intent)
    await _deliver(services, locator.file_path, result)
    return services.ui_manager.success_response({
        "file": locator.file_path,
        "componentName": locator.component_name,
        "appliedAt": result.applied_at,
    })


@router.post("/patch")
async def patch_text(body: PatchRequest, services: StudioServices = Depends(get_services)):
    logger.info(f"Text patch request: {body.file} -> {body.component_name} -> {body.new_text!r}")
    await _ensure_reachable(services)
    result = await _run_patch(
        services, apply_text_edit, services.config.served_root, body.file, body.component_name, body.new_text
    )
    await _deliver(services, body.file, result)
    return services.ui_manager.success_response({"file": body.file, "appliedAt": result.applied_at})


@router.post("/patch/attribute")
async def patch_attribute(body: AttributePatchRequest, services: StudioServices = Depends(get_services)):
    logger.info(f"Attribute patch request: {body.file} -> {body.component_name} -> {body.attr_name or DEFAULT_ATTRIBUTE}")
    await _ensure_reachable(services)
    result = await _run_patch(
        services,
        apply_attribute_edit,
        services.config.served_root,
        body.file,
        body.component_name,
        body.attr_name or DEFAULT_ATTRIBUTE,
        body.value,
        body.alt,
    )
    await _deliver(services, body.file, result)
    return services.ui_manager.success_response({"file": body.file, "appliedAt": result.applied_at})


@router.post("/assets/upload")
async def upload_asset(file: UploadFile = File(...), alt: Optional[str] = Form(None),
                       services: StudioServices = Depends(get_services)):
    data = await file.read()
    try:
        asset = ingest_upload(data, file.filename or "", services.config.assets_dir, alt)
    except ValueError as e:
        raise MalformedRequest(
            "Unsupported file type. Use images (jpg, png, webp, gif, bmp) or SVG.", details=str(e)
        ) from e
    return services.ui_manager.success_response({"asset": asset.to_dict()})


@router.get("/assets/list")
async def get_assets(services: StudioServices = Depends(get_services)):
    return services.ui_manager.success_response({"assets": list_assets(services.config.assets_dir)})


@router.post("/assets/apply")
async def apply_asset(body: ApplyAssetRequest, services: StudioServices = Depends(get_services)):
    """Point an element's image attribute at an uploaded asset"""
    asset = AssetResult.from_dict(body.asset.model_dump(by_alias=True))
    target_attr = body.target_attr or DEFAULT_ATTRIBUTE
    await _ensure_reachable(services)
    result = await _run_patch(
        services,
        apply_attribute_edit,
        services.config.served_root,
        body.file,
        body.component_name,
        target_attr,
        asset.url,
        asset.alt,
    )
    await _deliver(services, body.file, result)
    return services.ui_manager.success_response({
        "message": "Asset applied",
        "asset": {"url": asset.url, "kind": asset.kind},
    })


@router.get("/preview")
async def preview_status(services: StudioServices = Depends(get_services)):
    """Whether the preview runner answers its health check"""
    url = services.config.runner_url
    try:
        health = await services.preview.health()
    except (PreviewUnreachable, PreviewRejected) as e:
        logger.info(f"Preview runner offline: {e.message}")
        return JSONResponse(
            status_code=503,
            content={"status": "offline", "url": url, "message": "Runner offline - start the preview runner",
                     "error": e.message},
        )
    if not health.get("ok"):
        return JSONResponse(
            status_code=503,
            content={"status": "offline", "url": url, "message": "Runner health check failed"},
        )
    return {"status": "online", "url": url, "message": "Preview runner is online"}


@router.post("/preview")
async def forward_code_update(body: CodeUpdateRequest, services: StudioServices = Depends(get_services)):
    """Legacy whole-document replacement, bypassing the patch engine"""
    data = await services.preview.push_code(body.code, body.language)
    return services.ui_manager.success_response({"message": data.get("message")})
