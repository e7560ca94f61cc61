# core/accessibility/atspi_backend.py
"""
AT-SPI accessibility backend (Linux)

pyatspi ships with the desktop (python3-pyatspi), not on PyPI. When it cannot be
imported the backend reports itself unavailable and snapshots are skipped.
"""
from typing import List, Optional

from utils.data_models import WindowBounds
from utils.logger import setup_logger

from .extractor import AccessibilityBackend, AccessibilityNode
from ..capture.window_monitor import WindowInfo

logger = setup_logger(__name__)

_HAS_ATSPI = False
try:
    import pyatspi
    _HAS_ATSPI = True
except ImportError:
    pyatspi = None
    logger.warning("pyatspi not available, accessibility snapshots disabled")


class AtspiNode(AccessibilityNode):
    def __init__(self, accessible):
        self._acc = accessible

    def role(self) -> str:
        return self._acc.getRoleName()

    def title(self) -> Optional[str]:
        return self._acc.name or None

    def structured_value(self) -> Optional[str]:
        try:
            value = self._acc.queryValue()
        except NotImplementedError:
            return None
        return str(value.currentValue)

    def text(self, max_length: int) -> Optional[str]:
        try:
            text_iface = self._acc.queryText()
        except NotImplementedError:
            return None
        end = min(text_iface.characterCount, max_length)
        return text_iface.getText(0, end) or None

    def frame(self) -> Optional[WindowBounds]:
        try:
            component = self._acc.queryComponent()
        except NotImplementedError:
            return None
        ext = component.getExtents(pyatspi.DESKTOP_COORDS)
        if ext.width <= 0 or ext.height <= 0:
            return None
        return WindowBounds(x=ext.x, y=ext.y, width=ext.width, height=ext.height)

    def children(self) -> List[AccessibilityNode]:
        nodes = []
        for i in range(self._acc.childCount):
            child = self._acc.getChildAtIndex(i)
            if child is not None:
                nodes.append(AtspiNode(child))
        return nodes


class AtspiBackend(AccessibilityBackend):
    """Locates the focused window's accessible via the AT-SPI desktop"""

    def is_available(self) -> bool:
        return _HAS_ATSPI

    def _find_app(self, window: Optional[WindowInfo]):
        desktop = pyatspi.Registry.getDesktop(0)
        for i in range(desktop.childCount):
            app = desktop.getChildAtIndex(i)
            if app is None:
                continue
            if window is not None and window.process_id:
                try:
                    if app.get_process_id() != window.process_id:
                        continue
                except Exception:
                    continue
                return app
            if self._active_frame(app) is not None:
                return app
        return None

    @staticmethod
    def _active_frame(app):
        for i in range(app.childCount):
            frame = app.getChildAtIndex(i)
            if frame is not None and frame.getState().contains(pyatspi.STATE_ACTIVE):
                return frame
        return None

    def focused_window(self, window: Optional[WindowInfo] = None) -> Optional[AccessibilityNode]:
        app = self._find_app(window)
        if app is None:
            return None

        frame = self._active_frame(app)
        if frame is None and app.childCount > 0:
            # Fallback to first window
            frame = app.getChildAtIndex(0)

        return AtspiNode(frame) if frame is not None else None

    def focused_app_name(self, window: Optional[WindowInfo] = None) -> Optional[str]:
        if window is not None and window.app_name:
            return window.app_name
        app = self._find_app(window)
        return app.name if app is not None else None
