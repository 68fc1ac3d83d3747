"""
房间图片存储
ImageStore 为外部图片存储的抽象；LocalImageStore 写入本地上传目录
"""
import logging
import os
import re
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from hotel_occupancy.config import settings
from hotel_occupancy.exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class ImageStore(ABC):
    """图片存储接口"""

    @abstractmethod
    def upload(self, filename: str, content: bytes) -> str:
        """保存图片，返回访问地址"""

    @abstractmethod
    def delete(self, url: str) -> None:
        """删除图片；不存在时不报错"""


class LocalImageStore(ImageStore):
    """本地文件系统图片存储"""

    def __init__(self, upload_dir: Optional[str] = None, base_url: Optional[str] = None):
        self.upload_dir = Path(upload_dir or settings.IMAGE_UPLOAD_DIR)
        self.base_url = (base_url or settings.IMAGE_BASE_URL).rstrip("/")

    def _safe_name(self, filename: str) -> str:
        name = _UNSAFE_CHARS.sub("_", os.path.basename(filename)).strip("._") or "image"
        return f"{uuid.uuid4().hex[:12]}_{name}"

    def _path_for(self, url: str) -> Path:
        return self.upload_dir / os.path.basename(url)

    def upload(self, filename: str, content: bytes) -> str:
        name = self._safe_name(filename)
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
            (self.upload_dir / name).write_bytes(content)
        except OSError as e:
            raise UpstreamUnavailable(f"图片上传失败: {e}") from e
        logger.info(f"Stored room image {name}")
        return f"{self.base_url}/{name}"

    def delete(self, url: str) -> None:
        path = self._path_for(url)
        try:
            path.unlink()
            logger.info(f"Deleted room image {path.name}")
        except FileNotFoundError:
            logger.info(f"Image not found, skipping: {path.name}")
        except OSError as e:
            raise UpstreamUnavailable(f"图片删除失败: {e}") from e


def get_image_store() -> ImageStore:
    """依赖注入：获取图片存储"""
    return LocalImageStore()
