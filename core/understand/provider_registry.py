# core/understand/provider_registry.py
"""
Analysis Provider Registry

Holds the configured providers (ordered) and routes calls by capability:

- analyze_image: strict. Only the active vision provider is used; a missing or
  non-vision active provider fails immediately without looking elsewhere.
- generate_embedding: lenient. The active embedding provider is tried first,
  then the first configured provider that supports embeddings.
- chat: the active chat provider.
"""
import asyncio
from typing import Dict, List, Optional, Iterable, Callable, Awaitable, Any

from utils.data_models import FrameAnalysis
from utils.logger import setup_logger

from .base_provider import AnalysisProvider
from .errors import ProviderUnavailableError, UnsupportedCapabilityError
from .gemini_provider import GeminiProvider
from .openai_provider import OpenAIProvider
from .claude_provider import ClaudeProvider

logger = setup_logger(__name__)

VISION = "vision"
EMBEDDING = "embedding"
CHAT = "chat"
CAPABILITIES = (VISION, EMBEDDING, CHAT)


async def _to_thread(fn: Callable, *args) -> Any:
    return await asyncio.to_thread(fn, *args)


def build_providers_from_settings(
    gemini_api_key: Optional[str] = None,
    openai_api_key: Optional[str] = None,
    claude_api_key: Optional[str] = None,
    openai_base_url: Optional[str] = None
) -> List[AnalysisProvider]:
    """Create providers for every API key present, in the order gemini, openai, claude"""
    providers: List[AnalysisProvider] = []
    if gemini_api_key:
        providers.append(GeminiProvider(gemini_api_key))
    if openai_api_key:
        providers.append(OpenAIProvider(openai_api_key, base_url=openai_base_url))
    if claude_api_key:
        providers.append(ClaudeProvider(claude_api_key))
    return providers


class ProviderRegistry:
    """
    Capability-aware routing over a set of analysis providers.

    Provider methods are blocking (HTTP via requests); they are awaited through
    ``run_blocking`` so the event loop keeps running.
    """

    def __init__(self, run_blocking: Optional[Callable[..., Awaitable[Any]]] = None):
        self._providers: Dict[str, AnalysisProvider] = {}
        self._active: Dict[str, Optional[str]] = {VISION: None, EMBEDDING: None, CHAT: None}
        self._run_blocking = run_blocking or _to_thread

    # ---------------------------------------------------------------- configuration

    def configure(
        self,
        providers: Iterable[AnalysisProvider],
        active_vision: Optional[str] = None,
        active_embedding: Optional[str] = None,
        active_chat: Optional[str] = None
    ):
        """
        Replace the provider set and reselect the active provider per capability.

        A requested provider is used when present and capable; otherwise the first
        configured provider (for embeddings, the first embedding-capable one).
        """
        new_providers: Dict[str, AnalysisProvider] = {}
        for provider in providers:
            new_providers[provider.key] = provider

        first = next(iter(new_providers), None)

        if active_vision in new_providers and new_providers[active_vision].supports_vision:
            vision = active_vision
        else:
            vision = first

        if active_embedding in new_providers and new_providers[active_embedding].supports_embeddings:
            embedding = active_embedding
        else:
            embedding = next(
                (key for key, p in new_providers.items() if p.supports_embeddings), None
            )

        chat = active_chat if active_chat in new_providers else first

        self._providers = new_providers
        self._active = {VISION: vision, EMBEDDING: embedding, CHAT: chat}

        logger.info(
            f"Provider registry configured with {len(new_providers)} providers "
            f"({', '.join(new_providers) or 'none'}). "
            f"Vision: {vision}, Embedding: {embedding}, Chat: {chat}"
        )

    def remove_provider(self, name: str) -> bool:
        """Remove a provider. Active selections are kept and may point at nothing."""
        if name not in self._providers:
            return False
        providers = dict(self._providers)
        del providers[name]
        self._providers = providers
        logger.info(f"Provider removed: {name}")
        return True

    def set_active(self, capability: str, name: str):
        """
        Select the active provider for a capability.

        No capability check is made here; analyze_image checks at call time.
        """
        if capability not in CAPABILITIES:
            raise ValueError(f"Unknown capability: {capability}")
        if name not in self._providers:
            raise ProviderUnavailableError(f"Provider {name} is not configured")
        self._active[capability] = name
        logger.info(f"Active {capability} provider set to {name}")

    def get_provider(self, name: str) -> Optional[AnalysisProvider]:
        return self._providers.get(name)

    # ---------------------------------------------------------------- routing

    async def analyze_image(self, image_bytes: bytes, context_prompt: str) -> FrameAnalysis:
        provider = self._providers.get(self._active[VISION])
        if provider is None:
            raise ProviderUnavailableError("No vision provider configured")
        if not provider.supports_vision:
            raise UnsupportedCapabilityError(f"Provider {provider.name} does not support vision")
        return await self._run_blocking(provider.analyze_image, image_bytes, context_prompt)

    async def generate_embedding(self, text: str) -> List[float]:
        provider = self._providers.get(self._active[EMBEDDING])
        if provider is None or not provider.supports_embeddings:
            # 回退到任意支持 embedding 的 provider
            provider = next(
                (p for p in self._providers.values() if p.supports_embeddings), None
            )
        if provider is None:
            raise ProviderUnavailableError("No embedding provider configured")
        return await self._run_blocking(provider.generate_embedding, text)

    async def chat(self, messages: List[Dict[str, str]]) -> str:
        provider = self._providers.get(self._active[CHAT])
        if provider is None:
            raise ProviderUnavailableError("No chat provider configured")
        return await self._run_blocking(provider.chat, messages)

    # ---------------------------------------------------------------- introspection

    def has_vision_provider(self) -> bool:
        provider = self._providers.get(self._active[VISION])
        return provider is not None and provider.supports_vision

    def has_embedding_provider(self) -> bool:
        return any(p.supports_embeddings for p in self._providers.values())

    def active_providers(self) -> Dict[str, Optional[str]]:
        result = {}
        for capability in CAPABILITIES:
            provider = self._providers.get(self._active[capability])
            result[capability] = provider.name if provider else None
        return result

    def describe(self) -> List[Dict[str, Any]]:
        return [p.capabilities.model_dump() for p in self._providers.values()]

    def __len__(self) -> int:
        return len(self._providers)
