from .frame_processor import (
    FrameProcessor,
    ProcessingStats,
    build_context_prompt,
    build_searchable_text,
    build_fallback_analysis,
    extract_accessibility_text,
)

__all__ = [
    "FrameProcessor",
    "ProcessingStats",
    "build_context_prompt",
    "build_searchable_text",
    "build_fallback_analysis",
    "extract_accessibility_text",
]
