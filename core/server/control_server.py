# core/server/control_server.py
"""
Local control plane (HTTP + JSON)

Runs on the same event loop as the capture pipeline; handlers await pipeline
operations directly instead of blocking a thread.
"""
import datetime
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from utils.logger import setup_logger

from ..understand import ProviderError
from ..storage import VectorIndexError
from .capture_service import CaptureService

logger = setup_logger(__name__)


class ConfigureRequest(BaseModel):
    """Body of POST /configure; every field is optional"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    capture_interval_seconds: Optional[float] = Field(None, alias="captureIntervalSeconds", gt=0)
    enable_full_screen_captures: Optional[bool] = Field(None, alias="enableFullScreenCaptures")
    full_screen_capture_interval_seconds: Optional[float] = Field(
        None, alias="fullScreenCaptureIntervalSeconds", gt=0
    )

    gemini_api_key: Optional[str] = Field(None, alias="geminiAPIKey")
    openai_api_key: Optional[str] = Field(None, alias="openaiAPIKey")
    claude_api_key: Optional[str] = Field(None, alias="claudeAPIKey")
    active_vision_provider: Optional[str] = Field(None, alias="activeVisionProvider")
    active_embedding_provider: Optional[str] = Field(None, alias="activeEmbeddingProvider")
    active_chat_provider: Optional[str] = Field(None, alias="activeChatProvider")


USAGE_DEFAULT_WINDOW = datetime.timedelta(hours=24)


def _from_epoch(seconds: float) -> datetime.datetime:
    return datetime.datetime.fromtimestamp(seconds, tz=datetime.timezone.utc)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(service: CaptureService) -> FastAPI:
    """Build the FastAPI application around one CaptureService"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await service.startup()
        try:
            yield
        finally:
            await service.shutdown()

    app = FastAPI(
        title="ScreenIndex Capture Service",
        description="Control plane for the screen capture -> analysis -> indexing pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )

    # 宿主进程（Electron）从任意 origin 访问
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Malformed request to {request.url.path}: {exc.errors()}")
        return _error(400, "Malformed request body")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/status")
    async def status():
        return service.status()

    @app.post("/configure")
    async def configure(body: Optional[ConfigureRequest] = None):
        # 空请求体等同于不修改任何设置
        body = body or ConfigureRequest()
        try:
            service.configure(
                capture_interval_seconds=body.capture_interval_seconds,
                enable_full_screen_captures=body.enable_full_screen_captures,
                full_screen_capture_interval_seconds=body.full_screen_capture_interval_seconds,
                api_keys={
                    "gemini": body.gemini_api_key,
                    "openai": body.openai_api_key,
                    "claude": body.claude_api_key,
                },
                active_providers={
                    "vision": body.active_vision_provider,
                    "embedding": body.active_embedding_provider,
                    "chat": body.active_chat_provider,
                },
            )
        except ValueError as e:
            return _error(400, str(e))
        return {"success": True}

    @app.post("/capture/start")
    async def capture_start():
        await service.start_capture()
        return {"success": True}

    @app.post("/capture/stop")
    async def capture_stop():
        await service.stop_capture()
        return {"success": True}

    @app.post("/capture/now")
    async def capture_now():
        if not service.scheduler.is_running:
            return _error(409, "Capture is not running")
        frame = await service.scheduler.capture_now()
        if frame is None:
            return _error(503, service.scheduler.last_error or "Capture failed")
        return {"success": True, "id": frame.id}

    @app.get("/frame/latest")
    async def frame_latest():
        frame = service.scheduler.latest_frame
        if frame is None:
            return _error(404, "No frames captured")
        return frame.to_wire()

    @app.get("/stats")
    async def stats():
        return await service.stats()

    @app.get("/search")
    async def search(q: str = "", limit: int = Query(10, ge=1, le=100)):
        if not q.strip():
            return {"results": []}
        if not service.registry.has_embedding_provider():
            return _error(503, "No embedding provider configured")
        try:
            results = await service.search.search(q, limit=limit)
        except ProviderError as e:
            return _error(502, str(e))
        except VectorIndexError as e:
            return _error(503, str(e))
        return {"results": [r.model_dump() for r in results]}

    @app.get("/search/app")
    async def search_app(
        app_name: str = Query(..., alias="app", min_length=1),
        q: Optional[str] = None,
        limit: int = Query(10, ge=1, le=100)
    ):
        if q and q.strip() and not service.registry.has_embedding_provider():
            return _error(503, "No embedding provider configured")
        try:
            results = await service.search.search_by_app(app_name, query=q, limit=limit)
        except ProviderError as e:
            return _error(502, str(e))
        except VectorIndexError as e:
            return _error(503, str(e))
        return {"results": [r.model_dump() for r in results]}

    @app.get("/stats/usage")
    async def stats_usage(
        start: Optional[float] = None,
        end: Optional[float] = None
    ):
        """Per-application capture counts between two epoch timestamps (default: last 24h)"""
        end_dt = _from_epoch(end) if end is not None else service.search.now()
        start_dt = _from_epoch(start) if start is not None else end_dt - USAGE_DEFAULT_WINDOW
        if start_dt > end_dt:
            return _error(400, "start must not be after end")
        try:
            usage = await service.search.app_usage(start_dt, end_dt)
        except VectorIndexError as e:
            return _error(503, str(e))
        return {"start": start_dt.timestamp(), "end": end_dt.timestamp(), "applications": usage}

    @app.get("/frames/recent")
    async def frames_recent(limit: int = Query(20, ge=1, le=500)):
        try:
            results = await service.search.recent(limit)
        except VectorIndexError as e:
            return _error(503, str(e))
        return {"results": [r.model_dump() for r in results]}

    return app
