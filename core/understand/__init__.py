from .errors import (
    ProviderError,
    ProviderUnavailableError,
    UnsupportedCapabilityError,
    ProviderCallError,
)
from .base_provider import AnalysisProvider, build_analysis_prompt, parse_frame_analysis
from .gemini_provider import GeminiProvider
from .openai_provider import OpenAIProvider
from .claude_provider import ClaudeProvider
from .provider_registry import ProviderRegistry, build_providers_from_settings

__all__ = [
    "ProviderError",
    "ProviderUnavailableError",
    "UnsupportedCapabilityError",
    "ProviderCallError",
    "AnalysisProvider",
    "build_analysis_prompt",
    "parse_frame_analysis",
    "GeminiProvider",
    "OpenAIProvider",
    "ClaudeProvider",
    "ProviderRegistry",
    "build_providers_from_settings",
]
