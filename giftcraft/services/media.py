"""
媒体生命周期管理

两部分职责：
- 预览句柄：内存中的临时预览 URL（LRU 缓存），项目切换/删除时撤销
- 持久 blob：图片 / 音频 / 视频二进制，按项目 ID 存入媒体库

项目 Store 只持有媒体 ID 引用，不拥有二进制内容。
"""

import asyncio
import json
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from giftcraft.core.exceptions import MediaStorageException
from giftcraft.core.logging import get_logger
from giftcraft.models.project import MediaRecord
from giftcraft.repositories.media_repository import MediaRepository, make_media_key

logger = get_logger(__name__)

MEDIA_TYPES = ("image", "audio", "video")
PREVIEW_URL_PREFIX = "blob:giftcraft/"
DEFAULT_PREVIEW_CACHE_SIZE = 100

# (project_id, media_id)
CacheKey = Tuple[str, str]


class PreviewUrlCache:
    """
    预览 URL 缓存（LRU）

    每个 URL 是一个临时句柄，持有对应 blob 的引用；撤销即释放。
    条目按 (project_id, media_id) 索引，按项目撤销时精确匹配项目 ID。
    """

    def __init__(self, max_entries: int = DEFAULT_PREVIEW_CACHE_SIZE):
        self.max_entries = max_entries
        self._urls: "OrderedDict[CacheKey, Tuple[str, bytes]]" = OrderedDict()
        self._pending: Dict[CacheKey, "asyncio.Future[Optional[str]]"] = {}

    def __len__(self) -> int:
        return len(self._urls)

    def set(self, project_id: str, media_id: str, blob: bytes) -> str:
        key = (project_id, media_id)
        self.revoke(project_id, media_id)
        url = f"{PREVIEW_URL_PREFIX}{uuid.uuid4()}"
        self._urls[key] = (url, blob)

        # 超出上限时淘汰最早的条目
        while len(self._urls) > self.max_entries:
            oldest_key, _ = self._urls.popitem(last=False)
            self._pending.pop(oldest_key, None)
            logger.debug("preview_url_evicted", project_id=oldest_key[0], media_id=oldest_key[1])

        return url

    def get(self, project_id: str, media_id: str) -> Optional[str]:
        entry = self._urls.get((project_id, media_id))
        return entry[0] if entry else None

    def resolve(self, url: str) -> Optional[bytes]:
        """根据预览 URL 取回 blob（已撤销返回 None）"""
        for entry_url, blob in self._urls.values():
            if entry_url == url:
                return blob
        return None

    def revoke(self, project_id: str, media_id: str) -> None:
        key = (project_id, media_id)
        self._urls.pop(key, None)
        self._pending.pop(key, None)

    def revoke_project(self, project_id: str) -> int:
        keys = [key for key in self._urls if key[0] == project_id]
        for key in keys:
            del self._urls[key]
        for key in [key for key in self._pending if key[0] == project_id]:
            del self._pending[key]
        return len(keys)

    def clear(self) -> None:
        self._urls.clear()
        self._pending.clear()

    async def get_or_create(
        self,
        project_id: str,
        media_id: str,
        loader: Callable[[], Awaitable[Optional[bytes]]],
    ) -> Optional[str]:
        """获取预览 URL；并发调用共享同一次加载"""
        key = (project_id, media_id)
        cached = self._urls.get(key)
        if cached:
            return cached[0]

        pending = self._pending.get(key)
        if pending is not None:
            return await pending

        future: "asyncio.Future[Optional[str]]" = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        try:
            blob = await loader()
            # 加载期间被撤销：丢弃结果，不再创建句柄
            if self._pending.get(key) is not future or blob is None:
                url = None
            else:
                url = self.set(project_id, media_id, blob)
            future.set_result(url)
            return url
        except Exception as e:
            future.set_exception(e)
            raise
        finally:
            if self._pending.get(key) is future:
                del self._pending[key]


class MediaLifecycleManager:
    """媒体生命周期管理器"""

    def __init__(self, repository: MediaRepository, preview_cache: Optional[PreviewUrlCache] = None):
        self.repository = repository
        self.previews = preview_cache or PreviewUrlCache()

    # ========== 预览句柄 ==========

    def set_preview_url(self, project_id: str, media_id: str, blob: bytes) -> str:
        """为 blob 创建预览 URL（覆盖旧句柄）"""
        return self.previews.set(project_id, media_id, blob)

    def get_cached_preview_url(self, project_id: str, media_id: str) -> Optional[str]:
        """获取已缓存的预览 URL"""
        return self.previews.get(project_id, media_id)

    async def get_or_create_preview_url(self, project_id: str, media_id: str) -> Optional[str]:
        """获取预览 URL；未缓存时从媒体库加载 blob"""
        return await self.previews.get_or_create(
            project_id, media_id, lambda: self.get_media_blob(project_id, media_id)
        )

    def revoke_preview_url(self, project_id: str, media_id: str) -> None:
        """撤销单个预览 URL"""
        self.previews.revoke(project_id, media_id)

    def revoke_project_preview_urls(self, project_id: str) -> None:
        """撤销项目下所有预览 URL"""
        revoked = self.previews.revoke_project(project_id)
        logger.debug("project_preview_urls_revoked", project_id=project_id, count=revoked)

    def clear_preview_cache(self) -> None:
        """撤销全部预览 URL"""
        self.previews.clear()

    # ========== 持久 blob ==========

    async def put_media(
        self,
        project_id: str,
        media_type: str,
        blob: bytes,
        metadata: Optional[Dict[str, Any]] = None,
        media_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        保存媒体 blob

        Returns:
            补全后的媒体元数据（id / type / filename / mime / size / createdAt）

        Raises:
            ValueError: 媒体类型无效
            MediaStorageException: 写入失败
        """
        if media_type not in MEDIA_TYPES:
            raise ValueError(f"Invalid media type: {media_type}")

        metadata = dict(metadata or {})
        media_id = media_id or metadata.get("id") or _generate_media_id()
        now = datetime.now(timezone.utc)
        full_metadata = {
            **metadata,
            "id": media_id,
            "type": media_type,
            "filename": metadata.get("filename") or "unknown",
            "mime": metadata.get("mime") or "application/octet-stream",
            "size": metadata.get("size") or len(blob),
            "createdAt": metadata.get("createdAt") or now.isoformat(),
        }

        record = MediaRecord(
            id=make_media_key(project_id, media_id),
            project_id=project_id,
            media_id=media_id,
            type=media_type,
            metadata_json=json.dumps(full_metadata),
            blob=blob,
            created_at=now,
        )
        try:
            await asyncio.to_thread(self.repository.upsert, record)
        except SQLAlchemyError as e:
            logger.error("media_put_failed", project_id=project_id, media_id=media_id, error=str(e))
            raise MediaStorageException(f"Failed to store media {media_id}") from e

        logger.info("media_stored", project_id=project_id, media_id=media_id, type=media_type, size=len(blob))
        return full_metadata

    async def get_media_blob(self, project_id: str, media_id: str) -> Optional[bytes]:
        """读取媒体 blob（不存在返回 None）"""
        record = await asyncio.to_thread(self.repository.get_by_id, make_media_key(project_id, media_id))
        return record.blob if record else None

    async def list_project_media(self, project_id: str, media_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """列出项目媒体元数据"""
        records = await asyncio.to_thread(self.repository.list_for_project, project_id, media_type)
        return [json.loads(r.metadata_json) for r in records]

    async def delete_media(self, project_id: str, media_id: str) -> None:
        """删除单个媒体（同时撤销预览）"""
        self.previews.revoke(project_id, media_id)
        await asyncio.to_thread(self.repository.delete, make_media_key(project_id, media_id))

    async def delete_all_media_for_project(self, project_id: str) -> None:
        """删除项目下所有媒体 blob"""
        deleted = await asyncio.to_thread(self.repository.delete_for_project, project_id)
        logger.info("project_media_deleted", project_id=project_id, count=deleted)

    async def delete_project_videos(self, project_id: str) -> None:
        """删除项目下所有视频 blob"""
        deleted = await asyncio.to_thread(self.repository.delete_for_project, project_id, "video")
        logger.info("project_videos_deleted", project_id=project_id, count=deleted)


def _generate_media_id() -> str:
    return f"media_{uuid.uuid4().hex[:12]}"
