# utils/image_utils.py
from io import BytesIO

from PIL import Image
from config import config
from utils.logger import setup_logger

logger = setup_logger(__name__)


def resize_image_if_needed(image: Image.Image, max_width: int = None) -> Image.Image:
    """
    按比例压缩图片宽度到指定的最大宽度

    Args:
        image: PIL 图片对象
        max_width: 最大宽度。如果为 None 则使用 config.MAX_IMAGE_WIDTH。
                  如果为 0，则不压缩。

    Returns:
        压缩后（或原始）的图片对象
    """
    target_width = max_width if max_width is not None else config.MAX_IMAGE_WIDTH

    if target_width <= 0 or image.width <= target_width:
        return image

    ratio = target_width / image.width
    new_height = int(image.height * ratio)

    resized = image.resize((target_width, new_height), Image.Resampling.LANCZOS)
    logger.debug(f"Resized image: {image.size} -> {resized.size}")
    return resized


def encode_jpeg(image: Image.Image, quality: int = None) -> bytes:
    """Encode a PIL image as JPEG bytes (RGB, optimized)"""
    # JPEG不支持透明通道
    if image.mode in ('RGBA', 'LA', 'P'):
        image = image.convert('RGB')

    buffered = BytesIO()
    image.save(
        buffered,
        format="JPEG",
        quality=quality if quality is not None else config.IMAGE_QUALITY,
        optimize=True,
    )
    return buffered.getvalue()
