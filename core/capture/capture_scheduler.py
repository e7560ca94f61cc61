# core/capture/capture_scheduler.py
"""
Capture Scheduler

Decides *when* a capture is produced and assembles the Frame:

1. Interval timer        -> CaptureTrigger.TIMER (focused window)
2. Foreground watcher    -> CaptureTrigger.APP_CHANGED (immediately on window switch)
3. Full-screen timer     -> CaptureTrigger.FULL_SCREEN (whole display, optional)
4. start() / capture_now -> CaptureTrigger.MANUAL

Assembled frames are handed to the processing queue through a bounded
asyncio.Queue; the scheduler never waits on analysis.
"""
import uuid
import asyncio
import datetime
from dataclasses import dataclass, field
from typing import Optional, Callable, Awaitable, Any, Dict, Set

from utils.logger import setup_logger
from utils.data_models import CaptureTrigger, Frame, WindowContext
from config import config

from .base_capturer import AbstractCapturer, CaptureUnavailableError
from .window_monitor import ForegroundWindowWatcher, WindowInfo

logger = setup_logger(__name__)

FULL_SCREEN_APP_NAME = "Full Screen"


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


async def _to_thread(fn: Callable, *args) -> Any:
    return await asyncio.to_thread(fn, *args)


@dataclass
class SchedulerSettings:
    """Hot-reconfigurable capture settings"""
    capture_interval_seconds: float = field(
        default_factory=lambda: config.CAPTURE_INTERVAL_SECONDS
    )
    enable_full_screen_captures: bool = field(
        default_factory=lambda: config.ENABLE_FULL_SCREEN_CAPTURES
    )
    full_screen_capture_interval_seconds: float = field(
        default_factory=lambda: config.FULL_SCREEN_CAPTURE_INTERVAL_SECONDS
    )
    window_poll_interval_seconds: float = field(
        default_factory=lambda: config.WINDOW_POLL_INTERVAL_SECONDS
    )


class CaptureScheduler:
    """
    Runs the three trigger sources and turns each firing into one Frame.

    States are Stopped and Running only. start() and stop() are idempotent;
    configure() applies new intervals to a running scheduler immediately.
    """

    def __init__(
        self,
        capturer: AbstractCapturer,
        channel: asyncio.Queue,
        watcher: Optional[ForegroundWindowWatcher] = None,
        extractor: Optional[Any] = None,
        settings: Optional[SchedulerSettings] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        run_blocking: Optional[Callable[..., Awaitable[Any]]] = None
    ):
        """
        Args:
            capturer: screen capturer returning JPEG bytes
            channel: bounded queue consumed by the FrameProcessor
            watcher: foreground window watcher (None = no window context)
            extractor: AccessibilityExtractor (None = no accessibility snapshots)
            settings: capture intervals (defaults from config)
            clock: returns the capture timestamp (tz-aware datetime)
            sleep: awaitable sleep used by the trigger loops
            run_blocking: runs a blocking host call off the event loop
        """
        self.capturer = capturer
        self.channel = channel
        self.watcher = watcher
        self.extractor = extractor
        self.settings = settings or SchedulerSettings()
        self._clock = clock or _utc_now
        self._sleep = sleep or asyncio.sleep
        self._run_blocking = run_blocking or _to_thread

        self._running = False
        self._timer_task: Optional[asyncio.Task] = None
        self._watch_task: Optional[asyncio.Task] = None
        self._full_screen_task: Optional[asyncio.Task] = None
        self._pending_captures: Set[asyncio.Task] = set()

        # 组装 + 入队 作为一个原子步骤
        self._capture_lock = asyncio.Lock()

        self.latest_frame: Optional[Frame] = None
        self.frame_count = 0
        self.dropped_frames = 0
        self.last_capture_time: Optional[datetime.datetime] = None
        self.last_error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._running

    # ---------------------------------------------------------------- lifecycle

    async def start(self) -> bool:
        """
        Start capturing. Performs one immediate capture before the timers run.

        Returns:
            False if the scheduler was already running
        """
        if self._running:
            logger.debug("Capture scheduler already running")
            return False
        self._running = True

        logger.info(
            f"Starting capture (interval={self.settings.capture_interval_seconds}s, "
            f"full_screen={self.settings.enable_full_screen_captures})"
        )

        if self.watcher is not None:
            try:
                await self._run_blocking(self.watcher.reset)
            except Exception as e:
                logger.warning(f"Foreground watcher reset failed: {e}")

        await self._capture(CaptureTrigger.MANUAL)

        # stop() may have been called while the first capture was running
        if not self._running:
            return True

        self._restart_timer()
        if self.watcher is not None:
            self._watch_task = asyncio.create_task(self._watch_foreground())
        if self.settings.enable_full_screen_captures:
            self._restart_full_screen_timer()
        return True

    async def stop(self) -> bool:
        """
        Stop all trigger sources. A capture already in progress finishes and is
        enqueued before this returns.

        Returns:
            False if the scheduler was not running
        """
        if not self._running:
            return False
        self._running = False

        tasks = [t for t in (self._timer_task, self._watch_task, self._full_screen_task) if t]
        self._timer_task = self._watch_task = self._full_screen_task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self._pending_captures:
            await asyncio.gather(*self._pending_captures, return_exceptions=True)

        logger.info(f"Capture stopped ({self.frame_count} frames captured)")
        return True

    def configure(
        self,
        capture_interval_seconds: Optional[float] = None,
        enable_full_screen_captures: Optional[bool] = None,
        full_screen_capture_interval_seconds: Optional[float] = None
    ):
        """
        Apply new settings. While running, a changed interval replaces its timer
        so the next fire is measured from now with the new interval.
        """
        for name, value in (
            ("capture_interval_seconds", capture_interval_seconds),
            ("full_screen_capture_interval_seconds", full_screen_capture_interval_seconds),
        ):
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")

        if capture_interval_seconds is not None:
            self.settings.capture_interval_seconds = float(capture_interval_seconds)
        if enable_full_screen_captures is not None:
            self.settings.enable_full_screen_captures = bool(enable_full_screen_captures)
        if full_screen_capture_interval_seconds is not None:
            self.settings.full_screen_capture_interval_seconds = float(full_screen_capture_interval_seconds)

        logger.info(
            f"Capture configured: interval={self.settings.capture_interval_seconds}s, "
            f"full_screen={self.settings.enable_full_screen_captures} "
            f"({self.settings.full_screen_capture_interval_seconds}s)"
        )

        if not self._running:
            return

        if capture_interval_seconds is not None:
            self._restart_timer()

        if not self.settings.enable_full_screen_captures:
            if self._full_screen_task is not None:
                self._full_screen_task.cancel()
                self._full_screen_task = None
        elif self._full_screen_task is None or full_screen_capture_interval_seconds is not None:
            self._restart_full_screen_timer()

    async def capture_now(self) -> Optional[Frame]:
        """Manual capture on demand"""
        return await self._capture(CaptureTrigger.MANUAL)

    def status(self) -> Dict[str, Any]:
        return {
            "isRunning": self._running,
            "frameCount": self.frame_count,
            "lastCaptureTime": self.last_capture_time.timestamp() if self.last_capture_time else None,
            "lastError": self.last_error,
        }

    # ---------------------------------------------------------------- trigger loops

    def _restart_timer(self):
        if self._timer_task is not None:
            self._timer_task.cancel()
        self._timer_task = asyncio.create_task(
            self._interval_loop(self.settings.capture_interval_seconds, CaptureTrigger.TIMER)
        )

    def _restart_full_screen_timer(self):
        if self._full_screen_task is not None:
            self._full_screen_task.cancel()
        self._full_screen_task = asyncio.create_task(
            self._interval_loop(
                self.settings.full_screen_capture_interval_seconds, CaptureTrigger.FULL_SCREEN
            )
        )

    async def _interval_loop(self, interval: float, trigger: CaptureTrigger):
        # 固定节拍：触发点按 started + n * interval 计算，截图耗时不累积
        started = self._clock()
        next_fire = interval
        while True:
            elapsed = (self._clock() - started).total_seconds()
            if next_fire < elapsed:
                # 截图耗时超过间隔，跳过错过的触发点
                missed = int((elapsed - next_fire) // interval) + 1
                next_fire += missed * interval
            await self._sleep(max(0.0, next_fire - elapsed))
            await self._fire(trigger)
            next_fire += interval

    async def _watch_foreground(self):
        while True:
            await self._sleep(self.settings.window_poll_interval_seconds)
            try:
                window = await self._run_blocking(self.watcher.poll)
            except Exception as e:
                logger.debug(f"Foreground poll failed: {e}")
                continue

            if window is not None:
                logger.info(f"Foreground changed: {window.app_name} - {window.title}")
                await self._fire(CaptureTrigger.APP_CHANGED, window)

    async def _fire(self, trigger: CaptureTrigger, window: Optional[WindowInfo] = None):
        """
        Run one capture as its own task. Cancelling the trigger loop (stop or
        reconfigure) does not cancel a capture that has already started, so its
        frame is still enqueued.
        """
        task = asyncio.create_task(self._capture(trigger, window))
        self._pending_captures.add(task)
        task.add_done_callback(self._pending_captures.discard)
        await asyncio.shield(task)

    # ---------------------------------------------------------------- frame assembly

    async def _capture(
        self,
        trigger: CaptureTrigger,
        window: Optional[WindowInfo] = None
    ) -> Optional[Frame]:
        async with self._capture_lock:
            try:
                frame = await self._assemble(trigger, window)
            except CaptureUnavailableError as e:
                self.last_error = str(e)
                logger.warning(f"{trigger.value} capture skipped: {e}")
                return None
            except Exception as e:
                self.last_error = f"Capture failed: {e}"
                logger.error(f"{trigger.value} capture failed: {e}", exc_info=True)
                return None

            self.latest_frame = frame
            self.frame_count += 1
            self.last_capture_time = frame.captured_at
            self.last_error = None

            try:
                self.channel.put_nowait(frame)
            except asyncio.QueueFull:
                self.dropped_frames += 1
                logger.warning(f"Frame channel full, dropping frame {frame.id}")

            logger.info(
                f"Captured frame {frame.id} ({trigger.value}, "
                f"app={frame.window_context.app_name or 'unknown'})"
            )
            return frame

    async def _assemble(self, trigger: CaptureTrigger, window: Optional[WindowInfo]) -> Frame:
        if window is None and self.watcher is not None:
            window = self.watcher.current

        captured_at = self._clock()

        if trigger == CaptureTrigger.FULL_SCREEN:
            image_bytes = await self._run_blocking(self.capturer.capture_screen)
            context = WindowContext(app_name=FULL_SCREEN_APP_NAME)
        else:
            # 没有窗口信息时退化为整屏截图
            bounds = window.bounds if window is not None else None
            image_bytes = await self._run_blocking(self.capturer.capture_region, bounds)
            context = window.to_context() if window is not None else WindowContext()

        snapshot = None
        if self.extractor is not None:
            try:
                snapshot = await self._run_blocking(self.extractor.capture_snapshot, window)
            except Exception as e:
                logger.warning(f"Accessibility snapshot failed: {e}")

        return Frame(
            id=str(uuid.uuid4()),
            captured_at=captured_at,
            image_bytes=image_bytes,
            source_trigger=trigger,
            window_context=context,
            accessibility_snapshot=snapshot,
        )
