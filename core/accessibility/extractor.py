# core/accessibility/extractor.py
"""
Accessibility tree extraction

Walks the UI accessibility tree of the focused window and produces a pruned,
depth-bounded AccessibilitySnapshot:

- nodes with a title or value, or with an interactive/text role, are kept
  together with their extracted children
- structural containers without content are dropped and their children are
  promoted into the parent's child list
- an unreadable subtree counts as "no children"; it never aborts the snapshot
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from utils.data_models import AccessibilityElement, AccessibilitySnapshot, WindowBounds
from utils.logger import setup_logger
from config import config

from ..capture.window_monitor import WindowInfo

logger = setup_logger(__name__)

# button / edit / text 类角色即使没有内容也保留
MEANINGFUL_ROLE_KEYWORDS = ("button", "edit", "text", "entry")


class AccessibilityNode(ABC):
    """
    One node of a host accessibility tree.

    Every accessor may raise; the extractor treats failures as missing data.
    """

    @abstractmethod
    def role(self) -> str:
        pass

    @abstractmethod
    def title(self) -> Optional[str]:
        pass

    def structured_value(self) -> Optional[str]:
        return None

    def text(self, max_length: int) -> Optional[str]:
        return None

    def frame(self) -> Optional[WindowBounds]:
        return None

    @abstractmethod
    def children(self) -> List["AccessibilityNode"]:
        pass


class AccessibilityBackend(ABC):
    """Permission-gated host accessibility API"""

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    def focused_window(self, window: Optional[WindowInfo] = None) -> Optional[AccessibilityNode]:
        """Root node of the focused window, or None if there is no focused element"""
        pass

    def focused_app_name(self, window: Optional[WindowInfo] = None) -> Optional[str]:
        return window.app_name if window else None


def is_meaningful(role: str, title: Optional[str], value: Optional[str]) -> bool:
    if title or value:
        return True
    role_lower = (role or "").lower()
    return any(keyword in role_lower for keyword in MEANINGFUL_ROLE_KEYWORDS)


class AccessibilityExtractor:
    """
    Produces an AccessibilitySnapshot for the current focused window.

    Args:
        backend: host accessibility backend (None = accessibility unavailable)
        max_depth: recursion bound below the window root
        max_text_length: truncation applied to text extracted from text content
    """

    def __init__(
        self,
        backend: Optional[AccessibilityBackend],
        max_depth: int = None,
        max_text_length: int = None
    ):
        self.backend = backend
        self.max_depth = max_depth if max_depth is not None else config.ACCESSIBILITY_MAX_DEPTH
        self.max_text_length = (
            max_text_length if max_text_length is not None else config.ACCESSIBILITY_MAX_TEXT_LENGTH
        )

    def capture_snapshot(self, window: Optional[WindowInfo] = None) -> Optional[AccessibilitySnapshot]:
        """
        Returns None (not an error) when accessibility access is unavailable or
        there is no focused element.
        """
        if self.backend is None or not self.backend.is_available():
            logger.debug("Accessibility unavailable, skipping snapshot")
            return None

        try:
            root = self.backend.focused_window(window)
        except Exception as e:
            logger.warning(f"Failed to locate focused window for accessibility: {e}")
            return None

        if root is None:
            return None

        window_title = self._safe_str(root.title)
        if not window_title and window is not None:
            window_title = window.title or None

        try:
            app_name = self.backend.focused_app_name(window)
        except Exception:
            app_name = window.app_name if window else None

        elements = self.extract_elements(root)
        logger.debug(f"Accessibility snapshot: app={app_name}, {len(elements)} top-level elements")

        return AccessibilitySnapshot(
            focused_app=app_name,
            focused_window=window_title,
            elements=elements
        )

    def extract_elements(self, node: AccessibilityNode, depth: int = 0) -> List[AccessibilityElement]:
        """Extract the children of ``node``, pruning and promoting as needed"""
        if depth >= self.max_depth:
            return []

        results: List[AccessibilityElement] = []
        for child in self._read_children(node):
            try:
                results.extend(self._extract_node(child, depth))
            except Exception as e:
                # Ignore inaccessible elements
                logger.debug(f"Skipping unreadable accessibility node: {e}")
        return results

    def _extract_node(self, node: AccessibilityNode, depth: int) -> List[AccessibilityElement]:
        role = self._safe_str(node.role) or "Unknown"
        title = self._safe_str(node.title)
        value = self._read_value(node)
        frame = self._safe_call(node.frame)

        children = self.extract_elements(node, depth + 1)

        if is_meaningful(role, title, value):
            return [AccessibilityElement(
                role=role,
                title=title,
                value=value,
                frame=frame,
                children=children or None
            )]

        # 无内容的容器：提升其子节点
        return children

    def _read_children(self, node: AccessibilityNode) -> List[AccessibilityNode]:
        try:
            return list(node.children() or [])
        except Exception as e:
            logger.debug(f"Failed to read accessibility children: {e}")
            return []

    def _read_value(self, node: AccessibilityNode) -> Optional[str]:
        value = self._safe_str(node.structured_value)
        if value:
            return value

        try:
            text = node.text(self.max_text_length)
        except Exception:
            return None
        if text is None or not str(text).strip():
            return None
        return str(text)[:self.max_text_length]

    @staticmethod
    def _safe_call(fn):
        try:
            return fn()
        except Exception:
            return None

    @classmethod
    def _safe_str(cls, fn) -> Optional[str]:
        value = cls._safe_call(fn)
        if value is None:
            return None
        value = str(value)
        return value if value else None
