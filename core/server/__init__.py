from .capture_service import CaptureService
from .control_server import create_app, ConfigureRequest

__all__ = [
    "CaptureService",
    "create_app",
    "ConfigureRequest",
]
