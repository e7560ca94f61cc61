# core/understand/claude_provider.py
import base64
from typing import Dict, List, Optional

from config import config
from utils.data_models import FrameAnalysis

from .base_provider import AnalysisProvider, build_analysis_prompt, parse_frame_analysis


class ClaudeProvider(AnalysisProvider):
    """Anthropic Messages API. Vision and chat only; there is no embeddings endpoint."""

    key = "claude"
    name = "Claude"
    supports_vision = True
    supports_embeddings = False

    BASE_URL = "https://api.anthropic.com/v1"
    API_VERSION = "2023-06-01"

    def __init__(self, api_key: str, model: str = None, timeout: float = None):
        super().__init__(timeout=timeout)
        self.api_key = api_key
        self.model = model or config.CLAUDE_MODEL

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": self.API_VERSION,
        }

    @staticmethod
    def _first_text(data: dict) -> Optional[str]:
        try:
            return data["content"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return None

    def analyze_image(self, image_bytes: bytes, context_prompt: str) -> FrameAnalysis:
        payload = {
            "model": self.model,
            "max_tokens": 1024,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": "image/jpeg",
                                "data": base64.b64encode(image_bytes).decode("utf-8"),
                            },
                        },
                        {"type": "text", "text": build_analysis_prompt(context_prompt)},
                    ],
                }
            ],
        }

        data = self._post_json("VISION", f"{self.BASE_URL}/messages", payload, headers=self._headers())
        text = self._first_text(data)
        if not text:
            raise self._invalid_response("vision")
        return parse_frame_analysis(text)

    def chat(self, messages: List[Dict[str, str]]) -> str:
        # system 消息放到顶层 system 字段
        system = next((m.get("content") for m in messages if m.get("role") == "system"), None)
        payload = {
            "model": self.model,
            "max_tokens": 2048,
            "messages": [
                {"role": m.get("role", "user"), "content": m.get("content", "")}
                for m in messages if m.get("role") != "system"
            ],
        }
        if system:
            payload["system"] = system

        data = self._post_json("CHAT", f"{self.BASE_URL}/messages", payload, headers=self._headers())
        text = self._first_text(data)
        if not text:
            raise self._invalid_response("chat")
        return text
