# core/processing/frame_processor.py
"""
Frame Processing Queue

Serializes the expensive per-frame work so capture is never blocked by analysis:

1. Build a context prompt from the window context
2. Analyze the image (active vision provider, or accessibility text when none)
3. Build the searchable text
4. Generate the embedding (any embedding-capable provider)
5. Persist the image keyed by frame id
6. Upsert the record into the vector index

At most one frame is processed at a time. A frame captured at or before the most
recently completed frame is superseded and never analyzed. A failing frame is
logged and dropped; the queue keeps going.
"""
import asyncio
import datetime
from collections import deque
from dataclasses import dataclass, asdict
from typing import Optional, List, Deque, Callable, Awaitable, Any, Dict

from utils.data_models import (
    EPOCH,
    Frame,
    FrameAnalysis,
    AccessibilityElement,
    AccessibilitySnapshot,
    WindowContext,
    IndexedRecord,
)
from utils.logger import setup_logger
from config import config

from ..understand.provider_registry import ProviderRegistry
from ..understand.errors import ProviderUnavailableError
from ..storage.image_store import ImageStore
from ..storage.qdrant_index import VectorIndexClient

logger = setup_logger(__name__)

SEARCHABLE_TEXT_DELIMITER = " | "
MAX_FALLBACK_TEXTS = 50


async def _to_thread(fn: Callable, *args) -> Any:
    return await asyncio.to_thread(fn, *args)


def build_context_prompt(context: WindowContext) -> str:
    prompt = ""
    if context.app_name:
        prompt += f"The active application is {context.app_name}."
    if context.window_title:
        prompt += f" The window title is '{context.window_title}'."
    return prompt.strip()


def build_searchable_text(
    analysis: FrameAnalysis,
    snapshot: Optional[AccessibilitySnapshot] = None
) -> str:
    """Concatenate analysis and accessibility fields into the text that gets embedded"""
    parts: List[str] = [analysis.summary]

    if analysis.active_application:
        parts.append(f"Application: {analysis.active_application}")
    if analysis.user_activity:
        parts.append(f"Activity: {analysis.user_activity}")

    parts.extend(analysis.visible_text)

    if snapshot is not None:
        if snapshot.focused_app:
            parts.append(f"Focused app: {snapshot.focused_app}")
        if snapshot.focused_window:
            parts.append(f"Window: {snapshot.focused_window}")

    return SEARCHABLE_TEXT_DELIMITER.join(parts)


def extract_accessibility_text(elements: List[AccessibilityElement]) -> List[str]:
    """Titles and values of the tree, depth first"""
    texts: List[str] = []

    def _walk(element: AccessibilityElement):
        if element.title:
            texts.append(element.title)
        if element.value:
            texts.append(element.value)
        for child in element.children or []:
            _walk(child)

    for element in elements:
        _walk(element)
    return texts


def build_fallback_analysis(frame: Frame) -> FrameAnalysis:
    """Analysis from window context and accessibility text, used when no vision provider is active"""
    app = frame.window_context.app_name
    snapshot = frame.accessibility_snapshot
    texts = extract_accessibility_text(snapshot.elements) if snapshot is not None else []
    return FrameAnalysis(
        summary=f"Screen capture from {app or 'unknown app'}",
        active_application=app,
        visible_text=texts[:MAX_FALLBACK_TEXTS],
    )


@dataclass
class ProcessingStats:
    """Counters for the processing queue"""
    frames_received: int = 0
    frames_analyzed: int = 0
    frames_fallback: int = 0
    frames_indexed: int = 0
    frames_superseded: int = 0
    frames_failed: int = 0
    images_saved: int = 0


class FrameProcessor:
    """
    Single-flight processor with a FIFO backlog.

    Args:
        registry: analysis provider registry
        index: vector index client
        image_store: persisted frame images
        channel: queue filled by the CaptureScheduler; run() consumes it
        provider_timeout: seconds allowed per provider call
        run_blocking: runs blocking index/file calls off the event loop
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        index: VectorIndexClient,
        image_store: ImageStore,
        channel: Optional[asyncio.Queue] = None,
        provider_timeout: float = None,
        run_blocking: Optional[Callable[..., Awaitable[Any]]] = None
    ):
        self.registry = registry
        self.index = index
        self.image_store = image_store
        self.channel = channel
        self.provider_timeout = (
            provider_timeout if provider_timeout is not None else config.PROVIDER_TIMEOUT_SECONDS
        )
        self._run_blocking = run_blocking or _to_thread

        self.last_processed_at: datetime.datetime = EPOCH
        self._in_flight = False
        self._backlog: Deque[Frame] = deque()
        self.stats = ProcessingStats()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def backlog_size(self) -> int:
        return len(self._backlog)

    def is_stale(self, frame: Frame) -> bool:
        return frame.captured_at <= self.last_processed_at

    # ---------------------------------------------------------------- queue

    async def submit(self, frame: Frame):
        """Queue or process one frame"""
        self.stats.frames_received += 1

        if self._in_flight:
            self._backlog.append(frame)
            logger.debug(f"Frame {frame.id} queued (backlog={len(self._backlog)})")
            return

        if self.is_stale(frame):
            self._supersede(frame)
            return

        self._in_flight = True
        try:
            await self._process_and_mark(frame)

            while True:
                self._pull_channel()
                if not self._backlog:
                    break
                next_frame = self._backlog.popleft()
                if self.is_stale(next_frame):
                    self._supersede(next_frame)
                    continue
                await self._process_and_mark(next_frame)
        finally:
            self._in_flight = False

    async def run(self):
        """Single consumer of the frame channel"""
        if self.channel is None:
            raise RuntimeError("FrameProcessor.run() requires a channel")

        logger.info("Frame processor started")
        try:
            while True:
                frame = await self.channel.get()
                await self.submit(frame)
        finally:
            logger.info("Frame processor stopped")

    def discard_backlog(self) -> int:
        """Drop queued frames (backlog and channel); they are not persisted"""
        dropped = len(self._backlog)
        self._backlog.clear()
        if self.channel is not None:
            while True:
                try:
                    self.channel.get_nowait()
                except asyncio.QueueEmpty:
                    break
                dropped += 1
        if dropped:
            logger.info(f"Discarded {dropped} queued frames")
        return dropped

    def get_stats(self) -> Dict[str, Any]:
        stats = asdict(self.stats)
        stats.update({
            "last_processed_at": (
                self.last_processed_at.timestamp() if self.last_processed_at > EPOCH else None
            ),
            "in_flight": self._in_flight,
            "backlog": len(self._backlog),
        })
        return stats

    def _pull_channel(self):
        if self.channel is None:
            return
        while True:
            try:
                frame = self.channel.get_nowait()
            except asyncio.QueueEmpty:
                return
            self.stats.frames_received += 1
            self._backlog.append(frame)

    def _supersede(self, frame: Frame):
        self.stats.frames_superseded += 1
        logger.debug(
            f"Frame {frame.id} superseded ({frame.captured_at.isoformat()} <= "
            f"{self.last_processed_at.isoformat()})"
        )

    async def _process_and_mark(self, frame: Frame):
        try:
            await self._process(frame)
        finally:
            self.last_processed_at = frame.captured_at

    # ---------------------------------------------------------------- per-frame work

    async def _call_provider(self, coro):
        return await asyncio.wait_for(coro, timeout=self.provider_timeout)

    async def _process(self, frame: Frame):
        logger.info(f"Processing frame {frame.id} from {frame.window_context.app_name or 'unknown app'}")

        try:
            if self.registry.has_vision_provider():
                prompt = build_context_prompt(frame.window_context)
                try:
                    analysis = await self._call_provider(
                        self.registry.analyze_image(frame.image_bytes, prompt)
                    )
                except Exception as e:
                    self.stats.frames_failed += 1
                    logger.error(f"Analysis failed for frame {frame.id}: {e!r}")
                    await self._save_image(frame)
                    return
                self.stats.frames_analyzed += 1
            else:
                # 没有视觉模型时用无障碍文本兜底
                analysis = build_fallback_analysis(frame)
                self.stats.frames_fallback += 1
                logger.debug(f"No vision provider, using accessibility text for frame {frame.id}")

            frame.analysis = analysis

            searchable_text = build_searchable_text(analysis, frame.accessibility_snapshot)

            if not self.registry.has_embedding_provider():
                logger.warning(f"No embedding provider, skipping index for frame {frame.id}")
                await self._save_image(frame)
                return

            try:
                vector = await self._call_provider(self.registry.generate_embedding(searchable_text))
            except ProviderUnavailableError:
                logger.warning(f"No embedding provider, skipping index for frame {frame.id}")
                await self._save_image(frame)
                return
            except Exception as e:
                self.stats.frames_failed += 1
                logger.error(f"Embedding failed for frame {frame.id}: {e!r}")
                await self._save_image(frame)
                return

            frame.embedding_vector = vector
            image_path = await self._save_image(frame)

            record = IndexedRecord.from_frame(frame, vector, searchable_text, image_path or "")
            await self._run_blocking(self.index.upsert_frame, record)
            self.stats.frames_indexed += 1

            logger.info(f"Frame {frame.id} indexed. Summary: {analysis.summary[:50]}...")

        except Exception as e:
            self.stats.frames_failed += 1
            logger.error(f"Failed to process frame {frame.id}: {e}", exc_info=True)

    async def _save_image(self, frame: Frame) -> Optional[str]:
        try:
            path = await self._run_blocking(self.image_store.save, frame.id, frame.image_bytes)
        except OSError as e:
            logger.error(f"Failed to save image for frame {frame.id}: {e}")
            return None
        self.stats.images_saved += 1
        return path
