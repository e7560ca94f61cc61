# core/capture/base_capturer.py
from abc import ABC, abstractmethod
from typing import Optional
from utils.data_models import WindowBounds


class CaptureUnavailableError(Exception):
    """屏幕捕捉不可用（无显示器 / 无权限）"""


class AbstractCapturer(ABC):
    """
    抽象捕捉器基类
    定义了所有捕捉器必须实现的接口，返回 JPEG 字节
    """

    @abstractmethod
    def capture_screen(self) -> bytes:
        """
        捕捉整个屏幕
        失败时抛出 CaptureUnavailableError
        """
        pass

    @abstractmethod
    def capture_region(self, bounds: Optional[WindowBounds]) -> bytes:
        """
        捕捉指定窗口区域；bounds 为空时退化为整个屏幕
        失败时抛出 CaptureUnavailableError
        """
        pass
