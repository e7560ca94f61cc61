# core/capture/window_monitor.py
"""
Foreground window tracking

Reads the currently focused window (title, process, WM_CLASS, geometry) through
xdotool/xprop and detects when the user switches to a different window.
"""
import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from utils.data_models import WindowBounds, WindowContext
from utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class WindowInfo:
    """Raw window information from the window manager"""
    window_id: int
    title: str
    app_name: str
    process_id: int
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0
    process_path: Optional[str] = None

    @property
    def bounds(self) -> Optional[WindowBounds]:
        if self.width <= 0 or self.height <= 0:
            return None
        return WindowBounds(x=self.x, y=self.y, width=self.width, height=self.height)

    def to_context(self) -> WindowContext:
        return WindowContext(
            app_name=self.app_name or None,
            process_id=self.process_id or None,
            bundle_id=self.process_path or None,
            window_title=self.title or None,
            window_bounds=self.bounds,
        )


class WindowSource(ABC):
    """Host capability that reports the focused window"""

    @abstractmethod
    def get_active_window(self) -> Optional[WindowInfo]:
        """Return the focused window, or None if unknown/unavailable"""
        pass


class XdotoolWindowSource(WindowSource):
    """Read the active window on X11 using xdotool/xprop"""

    def __init__(self):
        self.has_xdotool = shutil.which("xdotool") is not None
        self.has_xprop = shutil.which("xprop") is not None

        if not self.has_xdotool:
            logger.warning("xdotool not found; window-level context unavailable")
            logger.info("Install with: sudo apt install xdotool x11-utils")

    def _run(self, *args: str) -> Optional[str]:
        try:
            result = subprocess.run(list(args), capture_output=True, text=True, timeout=2)
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.debug(f"{args[0]} failed: {e}")
            return None
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def get_active_window(self) -> Optional[WindowInfo]:
        if not self.has_xdotool:
            return None

        wid_str = self._run("xdotool", "getactivewindow")
        if not wid_str:
            return None
        try:
            window_id = int(wid_str)
        except ValueError:
            return None

        geom = {}
        geom_out = self._run("xdotool", "getwindowgeometry", "--shell", str(window_id)) or ""
        for line in geom_out.split('\n'):
            if '=' in line:
                key, value = line.split('=', 1)
                geom[key] = value

        title = self._run("xdotool", "getwindowname", str(window_id)) or ""

        pid_str = self._run("xdotool", "getwindowpid", str(window_id))
        try:
            pid = int(pid_str) if pid_str else 0
        except ValueError:
            pid = 0

        try:
            return WindowInfo(
                window_id=window_id,
                title=title,
                app_name=self._get_window_class(window_id) or "Unknown",
                process_id=pid,
                x=int(geom.get('X', 0)),
                y=int(geom.get('Y', 0)),
                width=int(geom.get('WIDTH', 0)),
                height=int(geom.get('HEIGHT', 0)),
                process_path=self._get_process_path(pid),
            )
        except ValueError:
            return None

    def _get_window_class(self, window_id: int) -> Optional[str]:
        if not self.has_xprop:
            return None

        out = self._run("xprop", "-id", str(window_id), "WM_CLASS")
        if out and "WM_CLASS" in out:
            parts = out.split('"')
            if len(parts) >= 4:
                return parts[3]
            elif len(parts) >= 2:
                return parts[1]
        return None

    @staticmethod
    def _get_process_path(pid: int) -> Optional[str]:
        if pid <= 0:
            return None
        try:
            return os.readlink(f"/proc/{pid}/exe")
        except OSError:
            return None


class ForegroundWindowWatcher:
    """
    Tracks the focused window and reports real changes.

    poll() compares the current focused window with the previously observed one
    (by window id) and returns the new window only when it differs.
    """

    def __init__(self, source: WindowSource):
        self.source = source
        self.current: Optional[WindowInfo] = None
        self.previous: Optional[WindowInfo] = None

    def reset(self):
        self.current = self.source.get_active_window()
        self.previous = None
        logger.info(
            f"Foreground watcher started, current window: "
            f"{self.current.app_name if self.current else 'none'}"
        )

    def poll(self) -> Optional[WindowInfo]:
        window = self.source.get_active_window()
        if window is None:
            return None

        if self.current is not None and window.window_id == self.current.window_id:
            # 同一窗口：只刷新标题和位置
            self.current = window
            return None

        logger.debug(
            f"Window changed: "
            f"{self.current.app_name if self.current else 'none'} -> {window.app_name}"
        )
        self.previous = self.current
        self.current = window
        return window
