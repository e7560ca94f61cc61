# core/understand/gemini_provider.py
import base64
from typing import Dict, List

from config import config
from utils.data_models import FrameAnalysis
from utils.logger import setup_logger

from .base_provider import AnalysisProvider, build_analysis_prompt, parse_frame_analysis

logger = setup_logger(__name__)


class GeminiProvider(AnalysisProvider):
    """
    Google Gemini (generativelanguage v1beta)

    - vision: models/{model}:generateContent with inline JPEG data
    - embeddings: models/{model}:embedContent
    - chat: generateContent with user/model turns
    """

    key = "gemini"
    name = "Gemini"
    supports_vision = True
    supports_embeddings = True

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(
        self,
        api_key: str,
        vision_model: str = None,
        embedding_model: str = None,
        output_dimensionality: int = None,
        timeout: float = None
    ):
        super().__init__(timeout=timeout)
        self.api_key = api_key
        self.vision_model = vision_model or config.GEMINI_VISION_MODEL
        self.embedding_model = embedding_model or config.GEMINI_EMBEDDING_MODEL
        self.output_dimensionality = output_dimensionality or config.VECTOR_SIZE
        logger.debug(f"GeminiProvider initialized (vision={self.vision_model}, embedding={self.embedding_model})")

    def _url(self, model: str, method: str) -> str:
        return f"{self.BASE_URL}/models/{model}:{method}"

    def _params(self) -> Dict[str, str]:
        return {"key": self.api_key}

    @staticmethod
    def _first_text(data: dict):
        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return None

    def analyze_image(self, image_bytes: bytes, context_prompt: str) -> FrameAnalysis:
        payload = {
            "contents": [
                {
                    "parts": [
                        {"text": build_analysis_prompt(context_prompt)},
                        {
                            "inline_data": {
                                "mime_type": "image/jpeg",
                                "data": base64.b64encode(image_bytes).decode("utf-8"),
                            }
                        },
                    ]
                }
            ],
            "generationConfig": {"responseMimeType": "application/json"},
        }

        data = self._post_json(
            "VISION", self._url(self.vision_model, "generateContent"), payload, params=self._params()
        )
        text = self._first_text(data)
        if not text:
            raise self._invalid_response("vision")
        return parse_frame_analysis(text)

    def generate_embedding(self, text: str) -> List[float]:
        payload = {
            "model": f"models/{self.embedding_model}",
            "content": {"parts": [{"text": text}]},
            "outputDimensionality": self.output_dimensionality,
        }

        data = self._post_json(
            "EMBEDDING", self._url(self.embedding_model, "embedContent"), payload, params=self._params()
        )
        values = (data.get("embedding") or {}).get("values") if isinstance(data, dict) else None
        if not isinstance(values, list):
            raise self._invalid_response("embedding")
        return [float(v) for v in values]

    def chat(self, messages: List[Dict[str, str]]) -> str:
        contents = []
        system_parts = []
        for message in messages:
            role = message.get("role", "user")
            if role == "system":
                system_parts.append({"text": message.get("content", "")})
                continue
            contents.append({
                "role": "model" if role == "assistant" else "user",
                "parts": [{"text": message.get("content", "")}],
            })

        payload = {"contents": contents}
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}

        data = self._post_json(
            "CHAT", self._url(self.vision_model, "generateContent"), payload, params=self._params()
        )
        text = self._first_text(data)
        if not text:
            raise self._invalid_response("chat")
        return text
