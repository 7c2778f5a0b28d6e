"""
项目持久化网关

写入策略：
- save_project() 同步地把最新快照放入待写缓冲区（按项目 ID 覆盖），
  然后在工作线程中择机写入；调用方无需等待
- flush_pending_writes() 同步写出缓冲区中的全部快照（退出前 / 立即保存时调用）
- 写入由一把锁串行化，缓冲区总是保存最新快照，因此旧快照不会覆盖新快照
- 删除项目时同时丢弃该项目的待写快照，迟到的写入不会让已删除的项目复活
- 删除进行期间，该项目的新保存请求直接丢弃（删除结束后恢复正常）
"""

import asyncio
import base64
import binascii
import threading
from collections import Counter
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from giftcraft.core.exceptions import MediaStorageException
from giftcraft.core.logging import get_logger
from giftcraft.models.project import ProjectRecord
from giftcraft.repositories.project_repository import ProjectRepository
from giftcraft.schemas.project import (
    CURRENT_SCHEMA_VERSION,
    AudioFile,
    ImageData,
    Project,
)
from giftcraft.services.media import MediaLifecycleManager

logger = get_logger(__name__)

DEFAULT_LANGUAGE = "en"


class PersistenceGateway:
    """项目持久化网关"""

    def __init__(self, repository: ProjectRepository, media: Optional[MediaLifecycleManager] = None):
        self.repository = repository
        self.media = media
        self._pending: Dict[str, Project] = {}
        self._pending_lock = threading.Lock()
        self._write_lock = threading.Lock()
        # 正在删除的项目 ID（计数，支持同一项目的并发删除）
        self._deleting: Counter = Counter()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        """待写快照数量"""
        with self._pending_lock:
            return len(self._pending)

    # ========== 读取 ==========

    async def load_projects(self) -> List[Project]:
        """加载全部项目（逐个迁移）；读取失败返回空列表"""
        try:
            records = await asyncio.to_thread(self.repository.list_ordered)
        except Exception as e:
            logger.error("projects_load_failed", error=str(e))
            return []

        with self._pending_lock:
            pending = dict(self._pending)

        projects: List[Project] = []
        for record in records:
            # 尚未写出的快照比数据库中的更新
            if record.id in pending:
                projects.append(pending.pop(record.id))
                continue
            try:
                project = Project.model_validate_json(record.payload)
            except PydanticValidationError as e:
                logger.warning("stored_project_unreadable", project_id=record.id, error=str(e))
                continue
            projects.append(await self.migrate_if_needed(project))

        projects.extend(pending.values())
        logger.info("projects_loaded", count=len(projects))
        return projects

    # ========== 写入 ==========

    def save_project(self, project: Project) -> Optional[asyncio.Task]:
        """
        保存项目（最终持久化，不向调用方抛出异常）

        Returns:
            后台写入任务；没有运行中的事件循环时直接同步写入、或项目正在删除时，返回 None
        """
        with self._pending_lock:
            if self._deleting[project.id]:
                logger.info("save_skipped_project_deleting", project_id=project.id)
                return None
            self._pending[project.id] = project

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush_pending_writes()
            return None

        task = loop.create_task(asyncio.to_thread(self._write_pending, project.id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def flush_pending_writes(self) -> int:
        """同步写出缓冲区中的全部快照，返回写出数量"""
        with self._write_lock:
            with self._pending_lock:
                pending = list(self._pending.values())
                self._pending.clear()
            for project in pending:
                self._write(project)

        if pending:
            logger.info("pending_writes_flushed", count=len(pending))
        return len(pending)

    async def wait_idle(self) -> None:
        """等待所有后台写入任务结束"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def delete_project(self, project_id: str) -> None:
        """删除项目记录（同时丢弃待写快照）；失败只记录日志"""
        with self._pending_lock:
            self._deleting[project_id] += 1
        try:
            await asyncio.to_thread(self._delete_record, project_id)
        except SQLAlchemyError as e:
            logger.error("project_delete_failed", project_id=project_id, error=str(e))
            return
        finally:
            with self._pending_lock:
                self._deleting[project_id] -= 1
                if self._deleting[project_id] <= 0:
                    del self._deleting[project_id]
        logger.info("project_record_deleted", project_id=project_id)

    def is_deleting(self, project_id: str) -> bool:
        """项目的持久记录是否正在删除"""
        with self._pending_lock:
            return self._deleting[project_id] > 0

    def _write_pending(self, project_id: str) -> bool:
        with self._write_lock:
            with self._pending_lock:
                project = self._pending.pop(project_id, None)
            if project is None:
                # 已被 flush 写出或已删除
                return False
            self._write(project)
            return True

    def _write(self, project: Project) -> None:
        """写入单个项目；失败时把快照放回缓冲区等待下次写出"""
        record = ProjectRecord(
            id=project.id,
            name=project.name,
            template_id=project.template_id,
            schema_version=project.schema_version,
            payload=project.to_json(),
            created_at=project.created_at,
            updated_at=project.updated_at,
        )
        try:
            self.repository.upsert(record)
        except SQLAlchemyError as e:
            logger.error("project_save_failed", project_id=project.id, error=str(e))
            with self._pending_lock:
                self._pending.setdefault(project.id, project)
            return
        logger.debug("project_saved", project_id=project.id)

    def _delete_record(self, project_id: str) -> None:
        with self._write_lock:
            with self._pending_lock:
                self._pending.pop(project_id, None)
            self.repository.delete(project_id)

    # ========== 迁移 ==========

    async def migrate_if_needed(self, project: Project) -> Project:
        """
        把旧版本项目迁移到当前数据结构版本

        - 缺省语言补为 en
        - 图片/音频中内联的 base64 data URL 移入媒体库
        - 删除屏幕中引用了不存在图片的 ID
        """
        if project.schema_version >= CURRENT_SCHEMA_VERSION:
            return project

        from_version = project.schema_version
        images = [await self._migrate_image(project.id, image) for image in project.data.images]

        audio = project.data.audio
        audio_update: Dict[str, Any] = {
            "screens": {
                screen_id: await self._migrate_audio(project.id, audio_file)
                for screen_id, audio_file in audio.screens.items()
            }
        }
        if audio.global_ is not None:
            audio_update["global_"] = await self._migrate_audio(project.id, audio.global_)
        if audio.library is not None:
            audio_update["library"] = [await self._migrate_audio(project.id, a) for a in audio.library]

        valid_image_ids = {image.id for image in images}
        screens = {
            screen_id: (
                screen
                if all(image_id in valid_image_ids for image_id in screen.images)
                else screen.model_copy(
                    update={"images": [image_id for image_id in screen.images if image_id in valid_image_ids]}
                )
            )
            for screen_id, screen in project.data.screens.items()
        }

        data = project.data.model_copy(
            update={"images": images, "audio": audio.model_copy(update=audio_update), "screens": screens}
        )
        migrated = project.model_copy(
            update={
                "data": data,
                "language": project.language or DEFAULT_LANGUAGE,
                "schema_version": CURRENT_SCHEMA_VERSION,
            }
        )
        logger.info(
            "project_migrated",
            project_id=project.id,
            from_version=from_version,
            to_version=CURRENT_SCHEMA_VERSION,
        )
        return migrated

    async def _migrate_image(self, project_id: str, image: ImageData) -> ImageData:
        moved = await self._move_inline_media(project_id, "image", image.model_dump(by_alias=True))
        return ImageData.model_validate(moved) if moved is not None else image

    async def _migrate_audio(self, project_id: str, audio_file: AudioFile) -> AudioFile:
        moved = await self._move_inline_media(project_id, "audio", audio_file.model_dump(by_alias=True))
        return AudioFile.model_validate(moved) if moved is not None else audio_file

    async def _move_inline_media(
        self, project_id: str, media_type: str, metadata: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """把内联 data URL 存入媒体库；返回去掉内联数据后的元数据，无需迁移/失败时返回 None"""
        legacy = metadata.get("data")
        if not isinstance(legacy, str) or not legacy.startswith("data:") or self.media is None:
            return None

        try:
            mime, blob = parse_data_url(legacy)
        except ValueError as e:
            logger.warning("legacy_media_unreadable", project_id=project_id, media_id=metadata.get("id"), error=str(e))
            return None

        cleaned = {key: value for key, value in metadata.items() if key != "data" and value is not None}
        cleaned["mime"] = cleaned.get("mime") or mime
        cleaned["size"] = cleaned.get("size") or len(blob)
        try:
            await self.media.put_media(project_id, media_type, blob, metadata=cleaned, media_id=metadata["id"])
        except MediaStorageException as e:
            logger.error("legacy_media_migration_failed", project_id=project_id, media_id=metadata["id"], error=str(e))
            return None
        return cleaned


def parse_data_url(data_url: str) -> Tuple[str, bytes]:
    """
    解析 base64 data URL

    Returns:
        (mime, bytes)

    Raises:
        ValueError: 格式无效
    """
    header, sep, payload = data_url.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("Invalid data URL")
    mime = header[len("data:"):].split(";")[0] or "application/octet-stream"
    try:
        return mime, base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e
