# core/storage/image_store.py
from pathlib import Path
from typing import Optional

from utils.logger import setup_logger
from config import config

logger = setup_logger(__name__)


class ImageStore:
    """
    帧图片的文件系统存储
    - 每帧一个 JPEG 文件，文件名为 frame id
    - 与向量索引无关：即使索引失败，图片仍然保留
    """

    def __init__(self, storage_path: str = None):
        self.storage_path = Path(storage_path or config.IMAGE_STORAGE_PATH)
        self.storage_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"ImageStore initialized at: {self.storage_path}")

    def path_for(self, frame_id: str) -> Path:
        return self.storage_path / f"{frame_id}.jpg"

    def save(self, frame_id: str, image_bytes: bytes) -> str:
        """
        存储一帧图片

        Returns:
            图片文件路径
        """
        path = self.path_for(frame_id)
        with open(path, 'wb') as f:
            f.write(image_bytes)
        logger.debug(f"Saved image for frame {frame_id}: {path} ({len(image_bytes)} bytes)")
        return str(path)

    def load(self, frame_id: str) -> Optional[bytes]:
        path = self.path_for(frame_id)
        if not path.exists():
            return None
        with open(path, 'rb') as f:
            return f.read()

    def exists(self, frame_id: str) -> bool:
        return self.path_for(frame_id).exists()

    def count(self) -> int:
        return sum(1 for _ in self.storage_path.glob("*.jpg"))
