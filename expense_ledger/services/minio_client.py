# expense_ledger/services/minio_client.py
import base64
import binascii
import io
import logging
import re
import uuid
from typing import NamedTuple, Optional, Protocol, Tuple

from minio import Minio
from starlette.concurrency import run_in_threadpool

from expense_ledger.config import Settings, settings

logger = logging.getLogger(__name__)

_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)


class PhotoUpload(NamedTuple):
    """表单上传的图片文件"""
    content: bytes
    content_type: str


class PhotoStorage(Protocol):
    """账单附件存储，失败时返回 None"""

    async def store_photo(self, photo_base64: str) -> Optional[str]:
        ...

    async def store_photo_bytes(self, image_data: bytes, content_type: str) -> Optional[str]:
        ...


def decode_photo(photo_base64: str) -> Tuple[bytes, str]:
    """解析base64或data URL，返回 (二进制内容, content_type)"""
    content_type = "image/jpeg"
    payload = photo_base64
    match = _DATA_URL.match(photo_base64)
    if match:
        content_type = match.group("mime")
        payload = match.group("data")
    return base64.b64decode(payload, validate=True), content_type


class MinioClient:
    """MiniO附件存储"""

    def __init__(self, config: Settings = settings):
        self.client = Minio(
            config.minio_endpoint,
            access_key=config.minio_access_key,
            secret_key=config.minio_secret_key,
            secure=config.minio_secure
        )
        self.bucket_name = config.minio_bucket
        scheme = "https" if config.minio_secure else "http"
        self.public_url = (config.minio_public_url or f"{scheme}://{config.minio_endpoint}").rstrip("/")
        self._bucket_ready = False

    async def _ensure_bucket_exists(self):
        """确保存储桶存在"""
        if self._bucket_ready:
            return
        if not await run_in_threadpool(self.client.bucket_exists, self.bucket_name):
            await run_in_threadpool(self.client.make_bucket, self.bucket_name)
            logger.info(f"创建存储桶: {self.bucket_name}")
        self._bucket_ready = True

    async def upload_image(self, image_data: bytes, content_type: str) -> str:
        """上传图片到MiniO，返回对象名"""
        await self._ensure_bucket_exists()
        extension = content_type.split("/")[-1]
        object_name = f"bills/{uuid.uuid4()}.{extension}"

        # minio 客户端为同步阻塞调用，放到线程池执行
        await run_in_threadpool(
            self.client.put_object,
            self.bucket_name,
            object_name,
            io.BytesIO(image_data),
            length=len(image_data),
            content_type=content_type
        )

        logger.info(f"图片上传成功: {object_name}")
        return object_name

    def get_image_url(self, object_name: str) -> str:
        """获取图片访问URL"""
        return f"{self.public_url}/{self.bucket_name}/{object_name}"

    async def store_photo(self, photo_base64: str) -> Optional[str]:
        """保存base64编码的账单图片，任何失败都只记录日志并返回 None"""
        try:
            image_data, content_type = decode_photo(photo_base64)
        except (binascii.Error, ValueError) as e:
            logger.error(f"图片内容解析失败: {e}")
            return None
        return await self.store_photo_bytes(image_data, content_type)

    async def store_photo_bytes(self, image_data: bytes, content_type: str) -> Optional[str]:
        """保存表单上传的账单图片"""
        try:
            object_name = await self.upload_image(image_data, content_type or "image/jpeg")
        except Exception as e:
            logger.error(f"图片上传失败: {e}")
            return None
        return self.get_image_url(object_name)
