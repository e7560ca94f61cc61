from .logger import setup_logger, setup_generate_logger
from .data_models import (
    EPOCH,
    CaptureTrigger,
    WindowBounds,
    WindowContext,
    AccessibilityElement,
    AccessibilitySnapshot,
    FrameAnalysis,
    ProviderCapabilities,
    Frame,
    IndexedRecord,
    SearchResult,
)
from .image_utils import resize_image_if_needed, encode_jpeg

__all__ = [
    "setup_logger",
    "setup_generate_logger",
    # Data models
    "EPOCH",
    "CaptureTrigger",
    "WindowBounds",
    "WindowContext",
    "AccessibilityElement",
    "AccessibilitySnapshot",
    "FrameAnalysis",
    "ProviderCapabilities",
    "Frame",
    "IndexedRecord",
    "SearchResult",
    # Image utilities
    "resize_image_if_needed",
    "encode_jpeg",
]
