# core/accessibility/__init__.py
from .extractor import (
    AccessibilityNode,
    AccessibilityBackend,
    AccessibilityExtractor,
    is_meaningful,
)
from .atspi_backend import AtspiBackend, AtspiNode

__all__ = [
    "AccessibilityNode",
    "AccessibilityBackend",
    "AccessibilityExtractor",
    "is_meaningful",
    "AtspiBackend",
    "AtspiNode",
]
