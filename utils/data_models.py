# utils/data_models.py
import base64
import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


class CaptureTrigger(str, Enum):
    """Reason a capture was initiated"""
    TIMER = "timer"
    APP_CHANGED = "appChanged"
    FULL_SCREEN = "fullScreen"
    MANUAL = "manual"


class WindowBounds(BaseModel):
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0

    def as_bbox(self) -> tuple:
        """(left, top, right, bottom) as used by PIL.ImageGrab"""
        return (
            int(self.x),
            int(self.y),
            int(self.x + self.width),
            int(self.y + self.height),
        )

    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


class WindowContext(BaseModel):
    app_name: Optional[str] = None
    process_id: Optional[int] = None
    bundle_id: Optional[str] = None
    window_title: Optional[str] = None
    window_bounds: Optional[WindowBounds] = None


class AccessibilityElement(BaseModel):
    role: str
    title: Optional[str] = None
    value: Optional[str] = None
    frame: Optional[WindowBounds] = None
    children: Optional[List["AccessibilityElement"]] = None

    def to_wire(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "title": self.title,
            "value": self.value,
            "frame": self.frame.model_dump() if self.frame else None,
            "children": [c.to_wire() for c in self.children] if self.children else None,
        }


AccessibilityElement.model_rebuild()


class AccessibilitySnapshot(BaseModel):
    focused_app: Optional[str] = None
    focused_window: Optional[str] = None
    elements: List[AccessibilityElement] = Field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        return {
            "focusedApp": self.focused_app,
            "focusedWindow": self.focused_window,
            "elements": [e.to_wire() for e in self.elements],
        }


class FrameAnalysis(BaseModel):
    summary: str
    active_application: Optional[str] = None
    user_activity: Optional[str] = None
    visible_text: List[str] = Field(default_factory=list)
    ui_elements: List[str] = Field(default_factory=list)
    metadata: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def degraded(cls, raw_text: str) -> "FrameAnalysis":
        """Best-effort analysis used when the provider response is not the expected JSON"""
        return cls(summary=raw_text)


class ProviderCapabilities(BaseModel):
    name: str
    supports_vision: bool = False
    supports_embeddings: bool = False


class Frame(BaseModel):
    """One captured unit of screen image + window/accessibility context"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    captured_at: datetime.datetime = Field(default_factory=_utc_now)
    image_bytes: bytes
    source_trigger: CaptureTrigger
    window_context: WindowContext = Field(default_factory=WindowContext)
    accessibility_snapshot: Optional[AccessibilitySnapshot] = None
    analysis: Optional[FrameAnalysis] = None
    embedding_vector: Optional[List[float]] = None

    def to_wire(self) -> Dict[str, Any]:
        """JSON shape served by GET /frame/latest"""
        ctx = self.window_context
        return {
            "id": self.id,
            "timestamp": self.captured_at.timestamp(),
            "imageBase64": base64.b64encode(self.image_bytes).decode("utf-8"),
            "trigger": self.source_trigger.value,
            "appName": ctx.app_name,
            "appBundleId": ctx.bundle_id,
            "processId": ctx.process_id,
            "windowTitle": ctx.window_title,
            "windowBounds": ctx.window_bounds.model_dump() if ctx.window_bounds else None,
            "accessibilityData": (
                self.accessibility_snapshot.to_wire() if self.accessibility_snapshot else None
            ),
        }


class IndexedRecord(BaseModel):
    """Point written to the vector index: id + vector + flattened payload"""
    id: str
    vector: List[float]
    payload: Dict[str, Any]

    @classmethod
    def from_frame(
        cls,
        frame: Frame,
        vector: List[float],
        searchable_text: str = "",
        image_path: str = "",
    ) -> "IndexedRecord":
        analysis = frame.analysis or FrameAnalysis(summary="")
        ctx = frame.window_context
        snapshot = frame.accessibility_snapshot
        bounds = ctx.window_bounds or WindowBounds()

        # 空值统一存为 "" / 0，字段永不缺省
        payload = {
            "frame_id": frame.id,
            "timestamp": frame.captured_at.timestamp(),
            "summary": analysis.summary or "",
            "active_application": analysis.active_application or "",
            "user_activity": analysis.user_activity or "",
            "visible_text": list(analysis.visible_text),
            "ui_elements": list(analysis.ui_elements),
            "focused_app": (snapshot.focused_app if snapshot else None) or "",
            "focused_window": (snapshot.focused_window if snapshot else None) or "",
            "capture_trigger": frame.source_trigger.value,
            "app_name": ctx.app_name or "",
            "bundle_id": ctx.bundle_id or "",
            "process_id": ctx.process_id or 0,
            "window_title": ctx.window_title or "",
            "window_bounds_x": bounds.x,
            "window_bounds_y": bounds.y,
            "window_bounds_width": bounds.width,
            "window_bounds_height": bounds.height,
            "searchable_text": searchable_text or "",
            "image_path": image_path or "",
        }
        return cls(id=frame.id, vector=list(vector), payload=payload)


class SearchResult(BaseModel):
    id: str
    score: float
    timestamp: float
    summary: str = ""
    active_application: Optional[str] = None
    user_activity: Optional[str] = None
    capture_trigger: Optional[str] = None
    app_name: Optional[str] = None
    bundle_id: Optional[str] = None
    window_title: Optional[str] = None
    image_path: Optional[str] = None

    @classmethod
    def from_payload(cls, point_id: Any, score: float, payload: Optional[Dict[str, Any]]) -> "SearchResult":
        payload = payload or {}
        return cls(
            id=str(point_id),
            score=score,
            timestamp=float(payload.get("timestamp") or 0),
            summary=payload.get("summary") or "",
            active_application=payload.get("active_application") or None,
            user_activity=payload.get("user_activity") or None,
            capture_trigger=payload.get("capture_trigger") or None,
            app_name=payload.get("app_name") or None,
            bundle_id=payload.get("bundle_id") or None,
            window_title=payload.get("window_title") or None,
            image_path=payload.get("image_path") or None,
        )
