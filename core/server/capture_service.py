# core/server/capture_service.py
"""
Capture Service

Constructs the pipeline once and wires it together explicitly:

    CaptureScheduler --(asyncio.Queue)--> FrameProcessor --> ProviderRegistry
                                                         --> VectorIndexClient

The control server only talks to this object.
"""
import asyncio
from typing import Optional, Dict, Any, Callable, Awaitable

from utils.logger import setup_logger
from config import config

from ..capture import (
    CaptureScheduler,
    SchedulerSettings,
    ScreenshotCapturer,
    XdotoolWindowSource,
    ForegroundWindowWatcher,
)
from ..accessibility import AccessibilityExtractor, AtspiBackend
from ..understand import ProviderRegistry, build_providers_from_settings
from ..processing import FrameProcessor
from ..storage import ImageStore, VectorIndexClient, VectorIndexError
from ..retrieval import FrameSearch

logger = setup_logger(__name__)


async def _to_thread(fn: Callable, *args) -> Any:
    return await asyncio.to_thread(fn, *args)


class CaptureService:
    """Owns the scheduler, processor, registry, index and search for one process"""

    def __init__(
        self,
        scheduler: CaptureScheduler,
        processor: FrameProcessor,
        registry: ProviderRegistry,
        index: VectorIndexClient,
        search: FrameSearch,
        api_keys: Optional[Dict[str, str]] = None,
        active_providers: Optional[Dict[str, str]] = None,
        provider_factory: Callable = build_providers_from_settings,
        run_blocking: Optional[Callable[..., Awaitable[Any]]] = None
    ):
        self.scheduler = scheduler
        self.processor = processor
        self.registry = registry
        self.index = index
        self.search = search
        self._run_blocking = run_blocking or _to_thread

        # /configure 可以只更新部分 key，这里保留当前值
        self.api_keys: Dict[str, str] = dict(api_keys or {})
        self.active_provider_names: Dict[str, str] = dict(active_providers or {})
        self._provider_factory = provider_factory

        self._processor_task: Optional[asyncio.Task] = None
        self.last_error: Optional[str] = None

    @classmethod
    def from_config(cls) -> "CaptureService":
        channel: asyncio.Queue = asyncio.Queue(maxsize=config.FRAME_CHANNEL_SIZE)

        scheduler = CaptureScheduler(
            capturer=ScreenshotCapturer(),
            channel=channel,
            watcher=ForegroundWindowWatcher(XdotoolWindowSource()),
            extractor=AccessibilityExtractor(AtspiBackend()),
            settings=SchedulerSettings(),
        )

        api_keys = {
            "gemini": config.GEMINI_API_KEY,
            "openai": config.OPENAI_API_KEY,
            "claude": config.CLAUDE_API_KEY,
        }
        active = {
            "vision": config.ACTIVE_VISION_PROVIDER,
            "embedding": config.ACTIVE_EMBEDDING_PROVIDER,
            "chat": config.ACTIVE_CHAT_PROVIDER,
        }

        registry = ProviderRegistry()
        index = VectorIndexClient()
        processor = FrameProcessor(registry, index, ImageStore(), channel=channel)
        search = FrameSearch(registry, index)

        service = cls(scheduler, processor, registry, index, search,
                      api_keys=api_keys, active_providers=active)
        service.reconfigure_providers()
        return service

    # ---------------------------------------------------------------- lifecycle

    async def startup(self):
        """Start the processing consumer and make sure the collection exists"""
        if self._processor_task is None:
            self._processor_task = asyncio.create_task(self.processor.run())

        try:
            await self._run_blocking(self.index.ensure_collection)
        except VectorIndexError as e:
            # 索引不可用时仍然启动；帧图片照常保存
            self.last_error = str(e)
            logger.error(f"Failed to ensure vector collection: {e}")

        logger.info("Capture service ready")

    async def shutdown(self):
        await self.stop_capture()
        if self._processor_task is not None:
            self._processor_task.cancel()
            await asyncio.gather(self._processor_task, return_exceptions=True)
            self._processor_task = None
        logger.info("Capture service shut down")

    async def start_capture(self) -> bool:
        return await self.scheduler.start()

    async def stop_capture(self) -> bool:
        stopped = await self.scheduler.stop()
        if stopped:
            self.processor.discard_backlog()
        return stopped

    # ---------------------------------------------------------------- configuration

    def configure(
        self,
        capture_interval_seconds: Optional[float] = None,
        enable_full_screen_captures: Optional[bool] = None,
        full_screen_capture_interval_seconds: Optional[float] = None,
        api_keys: Optional[Dict[str, Optional[str]]] = None,
        active_providers: Optional[Dict[str, Optional[str]]] = None
    ):
        """
        Apply capture settings and, when any provider field is given, rebuild the
        provider set atomically.

        Raises:
            ValueError: non-positive interval
        """
        self.scheduler.configure(
            capture_interval_seconds=capture_interval_seconds,
            enable_full_screen_captures=enable_full_screen_captures,
            full_screen_capture_interval_seconds=full_screen_capture_interval_seconds,
        )

        provider_changed = False
        for name, key in (api_keys or {}).items():
            if key is not None:
                self.api_keys[name] = key
                provider_changed = True
        for capability, name in (active_providers or {}).items():
            if name is not None:
                self.active_provider_names[capability] = name.lower()
                provider_changed = True

        if provider_changed:
            self.reconfigure_providers()

    def reconfigure_providers(self):
        providers = self._provider_factory(
            gemini_api_key=self.api_keys.get("gemini"),
            openai_api_key=self.api_keys.get("openai"),
            claude_api_key=self.api_keys.get("claude"),
            openai_base_url=config.OPENAI_BASE_URL,
        )
        self.registry.configure(
            providers,
            active_vision=self.active_provider_names.get("vision"),
            active_embedding=self.active_provider_names.get("embedding"),
            active_chat=self.active_provider_names.get("chat"),
        )

    # ---------------------------------------------------------------- introspection

    def status(self) -> Dict[str, Any]:
        status = self.scheduler.status()
        if status["lastError"] is None:
            status["lastError"] = self.last_error
        return status

    async def stats(self) -> Dict[str, Any]:
        index_info = await self._run_blocking(self.index.collection_info)
        index_ready = await self._run_blocking(self.index.ready)
        return {
            "scheduler": {
                **self.scheduler.status(),
                "droppedFrames": self.scheduler.dropped_frames,
                "captureIntervalSeconds": self.scheduler.settings.capture_interval_seconds,
                "enableFullScreenCaptures": self.scheduler.settings.enable_full_screen_captures,
                "fullScreenCaptureIntervalSeconds": self.scheduler.settings.full_screen_capture_interval_seconds,
            },
            "processor": self.processor.get_stats(),
            "providers": {
                "configured": self.registry.describe(),
                "active": self.registry.active_providers(),
            },
            "index": index_info,
            "indexReady": index_ready,
        }
