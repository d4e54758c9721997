from typing import Any, Dict, Optional, List
from dataclasses import dataclass, field
from concurrent.futures import ThreadPoolExecutor
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..core.errors import (
    FileNotFoundInProject,
    LivePatchError,
    LocatorNotFound,
    MalformedRequest,
    PreviewRejected,
    PreviewUnreachable,
)
from ..monitoring.metrics import MetricsTracker

logger = logging.getLogger(__name__)

STAGE_STATUS = {
    "request": 400,
    "locate": 404,
    "patch": 422,
    "deliver": 502,
}


def status_for(error: LivePatchError) -> int:
    if isinstance(error, PreviewUnreachable):
        return 503
    if isinstance(error, PreviewRejected):
        return 502
    if isinstance(error, (FileNotFoundInProject, LocatorNotFound)):
        return 404
    return STAGE_STATUS.get(error.stage, 500)


@dataclass
class UIConfig:
    """Editing surface API settings"""
    api_version: str = "v1"
    enable_metrics: bool = True
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    patch_workers: int = 4


class ResponseWrapper(BaseModel):
    """Standard API response wrapper"""
    success: bool
    data: Optional[Any] = None
    error: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None


class UIManager:
    """Owns the FastAPI app of the editing surface, its middleware and error mapping"""

    def __init__(self, config: Optional[UIConfig] = None, metrics: Optional[MetricsTracker] = None):
        self.config = config or UIConfig()
        self.app = FastAPI(title="LivePatch Studio API", version=self.config.api_version)
        self.metrics = metrics or MetricsTracker()
        # Patch computation is CPU-bound; keep it off the event loop.
        self.executor = ThreadPoolExecutor(max_workers=self.config.patch_workers, thread_name_prefix="patch")
        self._setup_middleware()
        self._setup_error_handlers()

    def _setup_middleware(self):
        """Setup API middleware"""
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=self.config.cors_origins or ["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"]
        )

        @self.app.middleware("http")
        async def add_timing_header(request: Request, call_next):
            start_time = self.metrics.time()
            response = await call_next(request)
            process_time = self.metrics.time() - start_time
            response.headers["X-Process-Time"] = str(process_time)
            self.metrics.record("request_processing_time", process_time)
            return response

    def _setup_error_handlers(self):
        """Map every failure to the standard wrapper at the request boundary"""
        @self.app.exception_handler(LivePatchError)
        async def livepatch_error_handler(request: Request, exc: LivePatchError):
            status_code = status_for(exc)
            log = logger.error if status_code >= 500 else logger.warning
            log(f"{request.url.path} failed at {exc.stage}: {exc.message}")
            self.metrics.record_error(exc.code, exc.message)
            return self.error_response(exc, status_code=status_code)

        @self.app.exception_handler(RequestValidationError)
        async def validation_error_handler(request: Request, exc: RequestValidationError):
            error = MalformedRequest("Validation error", details=jsonable_encoder(exc.errors()))
            logger.warning(f"{request.url.path} rejected: malformed body")
            return self.error_response(error, status_code=400)

        @self.app.exception_handler(HTTPException)
        async def http_error_handler(request: Request, exc: HTTPException):
            error = LivePatchError(str(exc.detail))
            error.code = "HTTP_ERROR"
            return self.error_response(error, status_code=exc.status_code)

    def success_response(
        self,
        data: Any,
        metadata: Optional[Dict[str, Any]] = None,
        status_code: int = 200
    ) -> JSONResponse:
        """Create a standardized success response"""
        return JSONResponse(
            status_code=status_code,
            content=ResponseWrapper(
                success=True,
                data=data,
                metadata=metadata or {}
            ).model_dump()
        )

    def error_response(self, error: LivePatchError, status_code: int = 400) -> JSONResponse:
        """Create a standardized error response"""
        return JSONResponse(
            status_code=status_code,
            content=ResponseWrapper(success=False, error=error.to_dict()).model_dump()
        )

    def register_routes(self):
        """Register service routes"""
        @self.app.get("/health")
        async def health_check():
            return self.success_response({"status": "healthy"})

        @self.app.get("/metrics")
        async def get_metrics():
            if not self.config.enable_metrics:
                raise HTTPException(status_code=404, detail="Metrics disabled")
            return self.success_response(self.metrics.summary())
