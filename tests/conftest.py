"""Shared fakes for the pipeline tests"""
import asyncio
import datetime
import itertools
import re
import uuid
from typing import List, Optional, Dict

import pytest
from qdrant_client import QdrantClient

from core.accessibility import AccessibilityNode, AccessibilityBackend
from core.capture import AbstractCapturer, WindowInfo, WindowSource
from core.understand import AnalysisProvider, ProviderCallError
from core.storage import VectorIndexClient, ImageStore
from utils.data_models import (
    AccessibilitySnapshot,
    CaptureTrigger,
    Frame,
    FrameAnalysis,
    WindowBounds,
    WindowContext,
)

BASE_TIME = datetime.datetime(2025, 1, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)
TEST_VECTOR_SIZE = 64


async def run_inline(fn, *args):
    """run_blocking replacement that calls the function on the loop"""
    return fn(*args)


async def settle(rounds: int = 20):
    for _ in range(rounds):
        await asyncio.sleep(0)


# ---------------------------------------------------------------- clock


class FakeClock:
    """Simulated clock: sleep() waits until advance_to() passes its deadline"""

    def __init__(self, start: datetime.datetime = BASE_TIME):
        self.start = start
        self.t = 0.0
        self._seq = itertools.count()
        self._sleepers = []

    def now(self) -> datetime.datetime:
        return self.start + datetime.timedelta(seconds=self.t)

    async def sleep(self, delay: float):
        future = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.t + delay, next(self._seq), future))
        await future

    async def advance_to(self, target: float):
        await settle()
        while True:
            self._sleepers = [s for s in self._sleepers if not s[2].done()]
            due = [s for s in self._sleepers if s[0] <= target]
            if not due:
                break
            sleeper = min(due)
            self._sleepers.remove(sleeper)
            self.t = sleeper[0]
            sleeper[2].set_result(None)
            await settle()
        self.t = target
        await settle()


# ---------------------------------------------------------------- capture


class FakeCapturer(AbstractCapturer):
    def __init__(self, fail: bool = False):
        self.calls = []
        self.fail = fail

    def capture_screen(self) -> bytes:
        from core.capture import CaptureUnavailableError
        if self.fail:
            raise CaptureUnavailableError("No display")
        self.calls.append(("screen", None))
        return b"\xff\xd8fake-screen\xff\xd9"

    def capture_region(self, bounds) -> bytes:
        from core.capture import CaptureUnavailableError
        if self.fail:
            raise CaptureUnavailableError("No display")
        self.calls.append(("region", bounds))
        return b"\xff\xd8fake-window\xff\xd9"


class FakeWindowSource(WindowSource):
    def __init__(self, window: Optional[WindowInfo] = None):
        self.window = window

    def get_active_window(self) -> Optional[WindowInfo]:
        return self.window


def make_window(window_id: int, app_name: str, title: str) -> WindowInfo:
    return WindowInfo(
        window_id=window_id,
        title=title,
        app_name=app_name,
        process_id=1000 + window_id,
        x=10, y=20, width=800, height=600,
    )


# ---------------------------------------------------------------- accessibility


class FakeNode(AccessibilityNode):
    def __init__(
        self,
        role: str,
        title: Optional[str] = None,
        value: Optional[str] = None,
        text: Optional[str] = None,
        children: Optional[List["FakeNode"]] = None,
        fail_children: bool = False,
        fail_role: bool = False,
    ):
        self._role = role
        self._title = title
        self._value = value
        self._text = text
        self._children = children or []
        self.fail_children = fail_children
        self.fail_role = fail_role
        self.text_requests = []

    def role(self) -> str:
        if self.fail_role:
            raise RuntimeError("role unreadable")
        return self._role

    def title(self) -> Optional[str]:
        return self._title

    def structured_value(self) -> Optional[str]:
        return self._value

    def text(self, max_length: int) -> Optional[str]:
        self.text_requests.append(max_length)
        return self._text

    def children(self) -> List[AccessibilityNode]:
        if self.fail_children:
            raise RuntimeError("children unreadable")
        return list(self._children)


class FakeAccessibilityBackend(AccessibilityBackend):
    def __init__(self, root: Optional[FakeNode], available: bool = True, app_name: str = None):
        self.root = root
        self.available = available
        self.app_name = app_name

    def is_available(self) -> bool:
        return self.available

    def focused_window(self, window=None):
        return self.root

    def focused_app_name(self, window=None):
        return self.app_name or (window.app_name if window else None)


# ---------------------------------------------------------------- providers


_TOKEN_RE = re.compile(r"[a-z0-9]+")


class BagOfWordsEmbedder:
    """Binary bag-of-words vectors; every new token gets its own dimension"""

    def __init__(self, size: int = TEST_VECTOR_SIZE):
        self.size = size
        self.vocabulary: Dict[str, int] = {}

    def __call__(self, text: str) -> List[float]:
        vector = [0.0] * self.size
        for token in set(_TOKEN_RE.findall(text.lower())):
            if token not in self.vocabulary:
                self.vocabulary[token] = len(self.vocabulary) % self.size
            vector[self.vocabulary[token]] = 1.0
        return vector


class FakeProvider(AnalysisProvider):
    """Provider with configurable capabilities that records every call"""

    def __init__(
        self,
        key: str,
        vision: bool = True,
        embeddings: bool = True,
        analysis: Optional[FrameAnalysis] = None,
        embedder: Optional[BagOfWordsEmbedder] = None,
        fail_analyses: int = 0,
    ):
        super().__init__(timeout=5)
        self.key = key
        self.name = key.capitalize()
        self.supports_vision = vision
        self.supports_embeddings = embeddings
        self.analysis = analysis or FrameAnalysis(summary="Something on screen")
        self.embedder = embedder or BagOfWordsEmbedder()
        self.fail_analyses = fail_analyses
        self.analyze_calls = []
        self.embedding_calls = []
        self.chat_calls = []

    def analyze_image(self, image_bytes: bytes, context_prompt: str) -> FrameAnalysis:
        if not self.supports_vision:
            return super().analyze_image(image_bytes, context_prompt)
        self.analyze_calls.append(context_prompt)
        if self.fail_analyses > 0:
            self.fail_analyses -= 1
            raise ProviderCallError(f"{self.name} API error", status_code=500)
        return self.analysis.model_copy(deep=True)

    def generate_embedding(self, text: str) -> List[float]:
        if not self.supports_embeddings:
            return super().generate_embedding(text)
        self.embedding_calls.append(text)
        return self.embedder(text)

    def chat(self, messages) -> str:
        self.chat_calls.append(messages)
        return f"{self.name} reply"


# ---------------------------------------------------------------- frames / index


def make_frame(
    seconds: float = 0.0,
    app_name: Optional[str] = "Mail",
    window_title: Optional[str] = "Inbox",
    trigger: CaptureTrigger = CaptureTrigger.TIMER,
    snapshot: Optional[AccessibilitySnapshot] = None,
    start: datetime.datetime = BASE_TIME,
) -> Frame:
    return Frame(
        id=str(uuid.uuid4()),
        captured_at=start + datetime.timedelta(seconds=seconds),
        image_bytes=b"\xff\xd8frame\xff\xd9",
        source_trigger=trigger,
        window_context=WindowContext(
            app_name=app_name,
            window_title=window_title,
            window_bounds=WindowBounds(x=0, y=0, width=800, height=600),
        ),
        accessibility_snapshot=snapshot,
    )


@pytest.fixture
def index_client():
    client = VectorIndexClient(
        client=QdrantClient(":memory:"),
        collection_name="test_frames",
        vector_size=TEST_VECTOR_SIZE,
    )
    client.ensure_collection()
    return client


@pytest.fixture
def image_store(tmp_path):
    return ImageStore(storage_path=str(tmp_path / "frames"))
