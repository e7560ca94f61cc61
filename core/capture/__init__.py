from .base_capturer import AbstractCapturer, CaptureUnavailableError
from .screenshot_capturer import ScreenshotCapturer
from .window_monitor import (
    WindowInfo,
    WindowSource,
    XdotoolWindowSource,
    ForegroundWindowWatcher,
)
from .capture_scheduler import CaptureScheduler, SchedulerSettings, FULL_SCREEN_APP_NAME

__all__ = [
    "AbstractCapturer",
    "CaptureUnavailableError",
    "ScreenshotCapturer",
    "WindowInfo",
    "WindowSource",
    "XdotoolWindowSource",
    "ForegroundWindowWatcher",
    "CaptureScheduler",
    "SchedulerSettings",
    "FULL_SCREEN_APP_NAME",
]
