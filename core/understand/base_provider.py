# core/understand/base_provider.py
from abc import ABC
from typing import Dict, Any, List, Optional
import json
import time

import requests

from utils.data_models import FrameAnalysis, ProviderCapabilities
from utils.logger import setup_logger, setup_generate_logger
from config import config

from .errors import ProviderCallError, UnsupportedCapabilityError

# provider 基类：每个 provider 声明自己支持的能力（vision / embeddings / chat）
# 具体的 HTTP 格式由子类实现，registry 只看能力描述

logger = setup_logger(__name__)

# provider 调用信息日志（只写入文件）
generate_logger = setup_generate_logger()


def build_analysis_prompt(context_prompt: str) -> str:
    """
    (辅助函数) 构造截图分析的 prompt
    """
    return (
        "Analyze this screenshot and extract data in a semantically meaningful way.\n\n"
        f"{context_prompt}\n\n"
        "IMPORTANT: Extract structured data where possible:\n"
        "- For messaging apps (Slack, Discord, Teams, etc.): Extract messages with sender name, "
        "timestamp, and message content\n"
        "- For email clients: Extract sender, subject, date, and preview text\n"
        "- For documents/editors: Extract document title and key content\n"
        "- For terminals/code: Extract commands, output, or code snippets\n"
        "- For calendars: Extract event names, times, and participants\n"
        "- For browsers: Extract page title, URL if visible, and main content\n\n"
        "Structure the visibleText array to preserve semantic relationships "
        '(e.g., "John Doe (2:30 PM): Hello there" for messages).\n\n'
        "Respond with ONLY a JSON object (no markdown, no explanation) matching this schema:\n"
        "{\n"
        '  "summary": "Brief description of what\'s shown",\n'
        '  "activeApplication": "Name of the main application visible",\n'
        '  "userActivity": "What the user appears to be doing",\n'
        '  "visibleText": ["Array of significant text, structured semantically where applicable"],\n'
        '  "uiElements": ["Array of notable UI elements"],\n'
        '  "metadata": {"key": "value pairs for additional context"}\n'
        "}\n"
    )


def _strip_code_fence(text: str) -> str:
    # 尝试提取JSON内容（可能被包裹在markdown代码块中）
    if "```json" in text:
        start = text.find("```json") + 7
        end = text.find("```", start)
        return text[start:end if end != -1 else None].strip()
    if "```" in text:
        start = text.find("```") + 3
        end = text.find("```", start)
        return text[start:end if end != -1 else None].strip()
    return text.strip()


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item if isinstance(item, str) else json.dumps(item, ensure_ascii=False) for item in value]


def parse_frame_analysis(response_text: str) -> FrameAnalysis:
    """
    解析 provider 返回的 JSON 分析结果

    解析失败不是错误：退化为 summary=原始文本，其余字段为空
    """
    try:
        parsed = json.loads(_strip_code_fence(response_text))
    except (ValueError, TypeError) as e:
        logger.warning(f"Analysis response is not JSON, using raw text as summary: {e}")
        logger.debug(f"Raw response: {response_text[:500]}")
        return FrameAnalysis.degraded(response_text)

    if not isinstance(parsed, dict):
        logger.warning("Analysis response is not a JSON object, using raw text as summary")
        return FrameAnalysis.degraded(response_text)

    metadata = parsed.get("metadata")
    if isinstance(metadata, dict):
        metadata = {str(k): v if isinstance(v, str) else json.dumps(v, ensure_ascii=False)
                    for k, v in metadata.items()}
    else:
        metadata = {}

    return FrameAnalysis(
        summary=_optional_str(parsed.get("summary")) or response_text,
        active_application=_optional_str(parsed.get("activeApplication")),
        user_activity=_optional_str(parsed.get("userActivity")),
        visible_text=_str_list(parsed.get("visibleText")),
        ui_elements=_str_list(parsed.get("uiElements")),
        metadata=metadata,
    )


class AnalysisProvider(ABC):
    """
    抽象 provider 基类

    子类设置能力标志并实现对应方法；未实现的能力抛出 UnsupportedCapabilityError。
    所有方法都是阻塞调用（requests），由 registry 放到线程中执行。
    """

    key = "base"
    name = "Base"
    supports_vision = False
    supports_embeddings = False

    def __init__(self, timeout: float = None):
        self.timeout = timeout if timeout is not None else config.PROVIDER_TIMEOUT_SECONDS

    @property
    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            name=self.name,
            supports_vision=self.supports_vision,
            supports_embeddings=self.supports_embeddings,
        )

    def analyze_image(self, image_bytes: bytes, context_prompt: str) -> FrameAnalysis:
        raise UnsupportedCapabilityError(f"Provider {self.name} does not support vision")

    def generate_embedding(self, text: str) -> List[float]:
        raise UnsupportedCapabilityError(f"Provider {self.name} does not support embeddings")

    def chat(self, messages: List[Dict[str, str]]) -> str:
        raise UnsupportedCapabilityError(f"Provider {self.name} does not support chat")

    def _post_json(
        self,
        kind: str,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """
        POST a JSON payload and return the decoded JSON body.

        Raises:
            ProviderCallError: transport failure, timeout, non-2xx status or non-JSON body
        """
        request_headers = {"Content-Type": "application/json"}
        if headers:
            request_headers.update(headers)

        start_time = time.time()
        try:
            response = requests.post(
                url,
                headers=request_headers,
                params=params,
                json=payload,
                timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            self._log_call(kind, time.time() - start_time, "TIMEOUT")
            raise ProviderCallError(f"{self.name} {kind.lower()} request timed out", code="TIMEOUT") from e
        except requests.exceptions.RequestException as e:
            self._log_call(kind, time.time() - start_time, "ERROR")
            raise ProviderCallError(f"{self.name} {kind.lower()} request failed: {e}") from e

        response_time = time.time() - start_time
        self._log_call(kind, response_time, str(response.status_code))

        if not response.ok:
            raise ProviderCallError(
                f"{self.name} API error: {response.text[:500]}",
                status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderCallError(
                f"{self.name} returned a non-JSON body", code="INVALID_RESPONSE"
            ) from e

        logger.debug(f"{self.name} {kind.lower()} call ok | time: {response_time:.2f}s")
        return data

    def _log_call(self, kind: str, response_time: float, status: str):
        generate_logger.info(
            f"{kind}_CALL | "
            f"Provider: {self.name} | "
            f"Response_Time: {response_time:.2f}s | "
            f"Status: {status}"
        )

    def _invalid_response(self, what: str) -> ProviderCallError:
        return ProviderCallError(f"Invalid {what} response from {self.name}", code="INVALID_RESPONSE")

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(vision={self.supports_vision}, "
            f"embeddings={self.supports_embeddings})"
        )
