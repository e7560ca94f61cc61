"""Analysis response parsing and provider HTTP payloads"""
import json

import pytest
import requests

from core.understand import (
    ClaudeProvider,
    GeminiProvider,
    OpenAIProvider,
    ProviderCallError,
    UnsupportedCapabilityError,
    parse_frame_analysis,
)


class FakeResponse:
    def __init__(self, body=None, status_code=200, text=None):
        self._body = body
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self.text = text if text is not None else json.dumps(body)

    def json(self):
        if self._body is None:
            raise ValueError("no JSON")
        return self._body


class RecordingPost:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def __call__(self, url, headers=None, params=None, json=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "params": params, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def fake_post(monkeypatch):
    def install(response=None, error=None):
        post = RecordingPost(response, error)
        monkeypatch.setattr(requests, "post", post)
        return post
    return install


ANALYSIS_JSON = {
    "summary": "User reading email",
    "activeApplication": "Mail",
    "userActivity": "Reading",
    "visibleText": ["Alice (9:00): Lunch?", {"sender": "Bob"}],
    "uiElements": ["Reply button"],
    "metadata": {"unread": 3, "folder": "Inbox"},
}


# ---------------------------------------------------------------- parsing


def test_parse_full_analysis():
    analysis = parse_frame_analysis(json.dumps(ANALYSIS_JSON))

    assert analysis.summary == "User reading email"
    assert analysis.active_application == "Mail"
    assert analysis.user_activity == "Reading"
    assert analysis.visible_text == ["Alice (9:00): Lunch?", '{"sender": "Bob"}']
    assert analysis.ui_elements == ["Reply button"]
    assert analysis.metadata == {"unread": "3", "folder": "Inbox"}


def test_parse_strips_markdown_fence():
    text = "```json\n" + json.dumps({"summary": "Terminal output"}) + "\n```"
    analysis = parse_frame_analysis(text)

    assert analysis.summary == "Terminal output"
    assert analysis.visible_text == []


def test_non_json_response_degrades_to_raw_summary():
    analysis = parse_frame_analysis("The user is editing a spreadsheet.")

    assert analysis.summary == "The user is editing a spreadsheet."
    assert analysis.active_application is None
    assert analysis.visible_text == []
    assert analysis.metadata == {}


def test_json_without_summary_uses_raw_text():
    text = json.dumps({"activeApplication": "Safari"})
    analysis = parse_frame_analysis(text)

    assert analysis.summary == text
    assert analysis.active_application == "Safari"


# ---------------------------------------------------------------- gemini


def test_gemini_vision_payload_and_parsing(fake_post):
    post = fake_post(FakeResponse({
        "candidates": [{"content": {"parts": [{"text": json.dumps(ANALYSIS_JSON)}]}}]
    }))
    provider = GeminiProvider("g-key", vision_model="gemini-test", timeout=7)

    analysis = provider.analyze_image(b"\xff\xd8jpeg", "The active application is Mail.")

    call = post.calls[0]
    assert call["url"].endswith("/models/gemini-test:generateContent")
    assert call["params"] == {"key": "g-key"}
    assert call["timeout"] == 7
    parts = call["json"]["contents"][0]["parts"]
    assert "The active application is Mail." in parts[0]["text"]
    assert parts[1]["inline_data"]["mime_type"] == "image/jpeg"
    assert analysis.summary == "User reading email"


def test_gemini_embedding_requests_output_dimensionality(fake_post):
    post = fake_post(FakeResponse({"embedding": {"values": [0.1, 0.2, 0.3]}}))
    provider = GeminiProvider("g-key", embedding_model="embed-test", output_dimensionality=3)

    vector = provider.generate_embedding("reading email")

    payload = post.calls[0]["json"]
    assert payload["outputDimensionality"] == 3
    assert payload["content"] == {"parts": [{"text": "reading email"}]}
    assert post.calls[0]["url"].endswith("/models/embed-test:embedContent")
    assert vector == [0.1, 0.2, 0.3]


def test_gemini_chat_maps_roles(fake_post):
    post = fake_post(FakeResponse({"candidates": [{"content": {"parts": [{"text": "Sure"}]}}]}))
    provider = GeminiProvider("g-key")

    reply = provider.chat([
        {"role": "system", "content": "Be brief"},
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello"},
    ])

    payload = post.calls[0]["json"]
    assert reply == "Sure"
    assert payload["systemInstruction"] == {"parts": [{"text": "Be brief"}]}
    assert [c["role"] for c in payload["contents"]] == ["user", "model"]


# ---------------------------------------------------------------- openai


def test_openai_sends_data_url_and_bearer_header(fake_post):
    post = fake_post(FakeResponse({"choices": [{"message": {"content": json.dumps(ANALYSIS_JSON)}}]}))
    provider = OpenAIProvider("o-key", base_url="http://localhost:8000/v1/")

    provider.analyze_image(b"jpeg", "")

    call = post.calls[0]
    assert call["url"] == "http://localhost:8000/v1/chat/completions"
    assert call["headers"]["Authorization"] == "Bearer o-key"
    image_part = call["json"]["messages"][0]["content"][1]
    assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")


def test_openai_local_server_without_key(fake_post):
    post = fake_post(FakeResponse({"data": [{"embedding": [1, 0]}]}))
    provider = OpenAIProvider("none", base_url="http://localhost:8000/v1", dimensions=2)

    assert provider.generate_embedding("x") == [1.0, 0.0]
    assert "Authorization" not in post.calls[0]["headers"]
    assert post.calls[0]["json"]["dimensions"] == 2


# ---------------------------------------------------------------- claude


def test_claude_lifts_system_message(fake_post):
    post = fake_post(FakeResponse({"content": [{"type": "text", "text": "Done"}]}))
    provider = ClaudeProvider("c-key", model="claude-test")

    reply = provider.chat([
        {"role": "system", "content": "You summarize screen history"},
        {"role": "user", "content": "What did I do today?"},
    ])

    call = post.calls[0]
    assert reply == "Done"
    assert call["headers"]["x-api-key"] == "c-key"
    assert call["headers"]["anthropic-version"] == "2023-06-01"
    assert call["json"]["system"] == "You summarize screen history"
    assert call["json"]["messages"] == [{"role": "user", "content": "What did I do today?"}]


def test_claude_has_no_embeddings():
    provider = ClaudeProvider("c-key")

    assert provider.capabilities.supports_embeddings is False
    with pytest.raises(UnsupportedCapabilityError):
        provider.generate_embedding("text")


# ---------------------------------------------------------------- failures


def test_http_error_carries_status_code(fake_post):
    fake_post(FakeResponse(status_code=429, text="rate limited"))
    provider = OpenAIProvider("o-key")

    with pytest.raises(ProviderCallError) as exc_info:
        provider.generate_embedding("x")

    assert exc_info.value.status_code == 429
    assert exc_info.value.code == "API_ERROR"
    assert "rate limited" in str(exc_info.value)


def test_timeout_is_reported_as_timeout(fake_post):
    fake_post(error=requests.exceptions.Timeout("read timed out"))
    provider = GeminiProvider("g-key")

    with pytest.raises(ProviderCallError) as exc_info:
        provider.analyze_image(b"jpeg", "")

    assert exc_info.value.code == "TIMEOUT"


def test_missing_candidates_is_invalid_response(fake_post):
    fake_post(FakeResponse({"candidates": []}))
    provider = GeminiProvider("g-key")

    with pytest.raises(ProviderCallError) as exc_info:
        provider.analyze_image(b"jpeg", "")

    assert exc_info.value.code == "INVALID_RESPONSE"
