# core/understand/openai_provider.py
import base64
from typing import Dict, List, Optional

from config import config
from utils.data_models import FrameAnalysis
from utils.logger import setup_logger

from .base_provider import AnalysisProvider, build_analysis_prompt, parse_frame_analysis

logger = setup_logger(__name__)


class OpenAIProvider(AnalysisProvider):
    """
    OpenAI 格式接口 (/chat/completions, /embeddings)

    base_url 可以指向任何 OpenAI 兼容服务（例如本地 vLLM）
    """

    key = "openai"
    name = "OpenAI"
    supports_vision = True
    supports_embeddings = True

    CHAT_ENDPOINT = "/chat/completions"
    EMBEDDING_ENDPOINT = "/embeddings"

    def __init__(
        self,
        api_key: str,
        base_url: str = None,
        vision_model: str = None,
        embedding_model: str = None,
        dimensions: Optional[int] = None,
        timeout: float = None
    ):
        super().__init__(timeout=timeout)
        self.api_key = api_key
        self.base_url = (base_url or config.OPENAI_BASE_URL).rstrip('/')
        self.vision_model = vision_model or config.OPENAI_VISION_MODEL
        self.embedding_model = embedding_model or config.OPENAI_EMBEDDING_MODEL
        self.dimensions = dimensions or config.VECTOR_SIZE

        logger.debug(f"OpenAIProvider initialized")
        logger.debug(f"  • Base URL: {self.base_url}")
        logger.debug(f"  • Vision model: {self.vision_model}")
        logger.debug(f"  • Embedding model: {self.embedding_model}")

    def _headers(self) -> Dict[str, str]:
        # 本地服务可能不需要 key
        if self.api_key and self.api_key.lower() != "none":
            return {"Authorization": f"Bearer {self.api_key}"}
        return {}

    @staticmethod
    def _message_content(data: dict) -> Optional[str]:
        # OpenAI格式: {"choices": [{"message": {"content": "..."}}]}
        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return None

    def analyze_image(self, image_bytes: bytes, context_prompt: str) -> FrameAnalysis:
        img_base64 = base64.b64encode(image_bytes).decode("utf-8")
        payload = {
            "model": self.vision_model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_analysis_prompt(context_prompt)},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/jpeg;base64,{img_base64}"},
                        },
                    ],
                }
            ],
            "response_format": {"type": "json_object"},
        }

        data = self._post_json(
            "VISION", f"{self.base_url}{self.CHAT_ENDPOINT}", payload, headers=self._headers()
        )
        text = self._message_content(data)
        if not text:
            raise self._invalid_response("vision")
        return parse_frame_analysis(text)

    def generate_embedding(self, text: str) -> List[float]:
        payload = {
            "model": self.embedding_model,
            "input": text,
            "dimensions": self.dimensions,
        }

        data = self._post_json(
            "EMBEDDING", f"{self.base_url}{self.EMBEDDING_ENDPOINT}", payload, headers=self._headers()
        )
        try:
            values = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError):
            values = None
        if not isinstance(values, list):
            raise self._invalid_response("embedding")
        return [float(v) for v in values]

    def chat(self, messages: List[Dict[str, str]]) -> str:
        payload = {
            "model": self.vision_model,
            "messages": [{"role": m.get("role", "user"), "content": m.get("content", "")} for m in messages],
        }

        data = self._post_json(
            "CHAT", f"{self.base_url}{self.CHAT_ENDPOINT}", payload, headers=self._headers()
        )
        text = self._message_content(data)
        if not text:
            raise self._invalid_response("chat")
        return text
