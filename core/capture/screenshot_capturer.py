# core/capture/screenshot_capturer.py
from typing import Optional
from PIL import ImageGrab, Image
from .base_capturer import AbstractCapturer, CaptureUnavailableError
from utils.data_models import WindowBounds
from utils.image_utils import resize_image_if_needed, encode_jpeg
from utils.logger import setup_logger
from config import config

logger = setup_logger(__name__)


class ScreenshotCapturer(AbstractCapturer):
    """
    使用 PIL 的 ImageGrab 来捕获屏幕截图
    支持按窗口区域截取，以及自动压缩以节省存储和 provider 开销
    """

    def __init__(self, max_width: int = None, quality: int = None):
        """
        Args:
            max_width: 图片最大宽度，0或None表示不压缩
            quality: JPEG 质量
        """
        self.max_width = max_width if max_width is not None else config.MAX_IMAGE_WIDTH
        self.quality = quality if quality is not None else config.IMAGE_QUALITY
        if self.max_width > 0:
            logger.info(f"ScreenshotCapturer initialized (max_width={self.max_width})")
        else:
            logger.info("ScreenshotCapturer initialized (no compression)")

    def _grab(self, bbox: Optional[tuple] = None) -> Image.Image:
        try:
            screenshot: Image.Image = ImageGrab.grab(bbox=bbox)
        except Exception as e:
            raise CaptureUnavailableError(f"Screen capture unavailable: {e}") from e

        if screenshot is None or screenshot.width == 0 or screenshot.height == 0:
            raise CaptureUnavailableError("Screen capture returned an empty image")
        return screenshot

    def _encode(self, image: Image.Image) -> bytes:
        image = resize_image_if_needed(image, self.max_width)
        return encode_jpeg(image, self.quality)

    def capture_screen(self) -> bytes:
        screenshot = self._grab()
        logger.debug(f"Captured full screen: {screenshot.size}")
        return self._encode(screenshot)

    def capture_region(self, bounds: Optional[WindowBounds]) -> bytes:
        if bounds is None or bounds.is_empty():
            return self.capture_screen()

        screenshot = self._grab(bounds.as_bbox())
        logger.debug(f"Captured window region {bounds.as_bbox()}: {screenshot.size}")
        return self._encode(screenshot)
