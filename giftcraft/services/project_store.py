"""
项目 Store（内存中唯一权威的项目状态）

- 持有全部项目集合与唯一的当前项目
- 每次修改都整体替换快照（项目对象本身不可变）
- 维护修订号 revision：当前项目身份变化时归零，每次 update_project 加 1，
  自动保存调度器监听 (current_id, revision) 的变化
- 切换当前项目时执行一致性修复，并撤销上一个项目的预览句柄

所有公开操作都是同步的原子 reducer（delete / import / load 除外），
并且不会向调用方抛出异常；导入失败通过 ImportResult 返回。
"""

import asyncio
import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Set, Tuple, Union

from giftcraft.core.logging import get_logger, set_current_project_id
from giftcraft.schemas.project import CURRENT_SCHEMA_VERSION, Project, ProjectData
from giftcraft.schemas.validation import ImportResult
from giftcraft.services.media import MediaLifecycleManager
from giftcraft.services.persistence import PersistenceGateway
from giftcraft.services.repair import repair_project
from giftcraft.services.validation import ValidationService

logger = get_logger(__name__)

ID_ALPHABET = string.ascii_lowercase + string.digits
ID_SUFFIX_LENGTH = 9


def generate_project_id() -> str:
    """项目 ID：毫秒时间戳 + 随机后缀，无需中心序列即可避免冲突"""
    suffix = "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_SUFFIX_LENGTH))
    return f"project_{int(time.time() * 1000)}_{suffix}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Replace:
    """用新项目整体替换"""

    project: Project


@dataclass(frozen=True)
class Transform:
    """基于当前项目计算新项目（要求存在当前项目）"""

    fn: Callable[[Project], Project]


ProjectUpdate = Union[Replace, Transform]


def as_update(update: Union[ProjectUpdate, Project, Callable[[Project], Project]]) -> ProjectUpdate:
    """把 Project / 可调用对象规范化为 Replace / Transform"""
    if isinstance(update, (Replace, Transform)):
        return update
    if isinstance(update, Project):
        return Replace(update)
    if callable(update):
        return Transform(update)
    raise TypeError(f"Unsupported project update: {type(update).__name__}")


@dataclass(frozen=True)
class StoreState:
    """Store 状态快照（每次提交整体替换）"""

    projects: Tuple[Project, ...] = ()
    current: Optional[Project] = None
    revision: int = 0

    @property
    def current_id(self) -> Optional[str]:
        return self.current.id if self.current is not None else None


StoreListener = Callable[[StoreState], None]

_KEEP = object()


@dataclass
class _LatestSnapshot:
    """
    最新快照持有者

    只供 Store 内部的延迟回调（call_soon、定时器、异步保存）读取，
    保证回调执行时看到的是执行时刻的值，而不是调度时刻捕获的值。
    """

    current: Optional[Project] = None
    projects: Tuple[Project, ...] = field(default_factory=tuple)

    def find(self, project_id: str) -> Optional[Project]:
        if self.current is not None and self.current.id == project_id:
            return self.current
        for project in self.projects:
            if project.id == project_id:
                return project
        return None


class ProjectStore:
    """项目 Store"""

    def __init__(
        self,
        persistence: PersistenceGateway,
        media: MediaLifecycleManager,
        validator: ValidationService,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = generate_project_id,
    ):
        self._persistence = persistence
        self._media = media
        self._validator = validator
        self._clock = clock
        self._id_factory = id_factory

        self._state = StoreState()
        self._live = _LatestSnapshot()
        self._listeners: List[StoreListener] = []

        self._load_generation = 0
        self._deleted_during_load: Set[str] = set()
        self._deleting: Set[str] = set()

    # ========== 读取 ==========

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def projects(self) -> Tuple[Project, ...]:
        return self._state.projects

    @property
    def current_project(self) -> Optional[Project]:
        return self._state.current

    @property
    def revision(self) -> int:
        return self._state.revision

    def get_project(self, project_id: str) -> Optional[Project]:
        for project in self._state.projects:
            if project.id == project_id:
                return project
        return None

    def latest_current_project(self) -> Optional[Project]:
        """当前项目的最新快照（供调度器在触发时读取）"""
        return self._live.current

    def is_deleting(self, project_id: str) -> bool:
        """项目是否正在删除（删除期间不再保存它）"""
        return project_id in self._deleting

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """订阅状态变化；返回取消订阅函数"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ========== 初始化 ==========

    async def load(self) -> Tuple[Project, ...]:
        """
        启动时加载全部项目

        被更晚的 load() 取代时丢弃结果；加载期间新建/导入的项目会保留，
        加载期间删除的项目不会被加载结果带回。
        """
        self._load_generation += 1
        generation = self._load_generation
        self._deleted_during_load = set()

        try:
            loaded = await self._persistence.load_projects()
        except Exception as e:
            logger.error("project_store_load_failed", error=str(e))
            loaded = []

        if generation != self._load_generation:
            logger.info("stale_project_load_discarded", generation=generation)
            return self._state.projects

        in_memory = {p.id: p for p in self._state.projects}
        loaded_ids = {p.id for p in loaded}
        merged = [
            in_memory.get(p.id, p) for p in loaded if p.id not in self._deleted_during_load
        ] + [p for p in self._state.projects if p.id not in loaded_ids]

        self._commit(projects=merged)
        logger.info("project_store_loaded", count=len(merged))
        return self._state.projects

    # ========== 修改 ==========

    def create_project(self, template_id: str, name: str) -> Project:
        """新建项目：立即持久化并设为当前项目"""
        now = self._clock()
        project = Project(
            id=self._id_factory(),
            name=name,
            template_id=template_id,
            schema_version=CURRENT_SCHEMA_VERSION,
            language="en",
            data=ProjectData(),
            created_at=now,
            updated_at=now,
        )

        previous_id = self._state.current_id
        if previous_id is not None:
            self._media.revoke_project_preview_urls(previous_id)

        self._commit(projects=self._state.projects + (project,), current=project)
        self._persist_now(project)
        logger.info("project_created", project_id=project.id, template_id=template_id)
        return project

    def update_project(
        self,
        update: Union[ProjectUpdate, Project, Callable[[Project], Project]],
        save_immediately: bool = False,
    ) -> Optional[Project]:
        """
        更新项目

        Args:
            update: Replace / Transform（也接受 Project 或 Project -> Project 函数）
            save_immediately: 提交后立即保存并 flush（不经过防抖）

        Returns:
            更新后的项目；Transform 在没有当前项目时忽略并返回 None
        """
        update = as_update(update)
        state = self._state

        if isinstance(update, Transform):
            if state.current is None:
                logger.warning("update_without_current_project")
                return None
            try:
                result = update.fn(state.current)
            except Exception:
                logger.exception("project_update_transform_failed", project_id=state.current_id)
                return None
        else:
            result = update.project

        if not isinstance(result, Project):
            logger.error(
                "project_update_transform_invalid_result",
                project_id=state.current_id,
                result_type=type(result).__name__,
            )
            return None

        updated = result.model_copy(update={"updated_at": self._clock()})
        current = updated if state.current_id == updated.id else state.current
        projects = [updated if p.id == updated.id else p for p in state.projects]

        self._commit(projects=projects, current=current, bump=True)
        logger.debug("project_updated", project_id=updated.id, revision=self._state.revision)

        if save_immediately:
            self._schedule_persist(updated.id)
        return updated

    async def delete_project(self, project_id: str) -> None:
        """
        删除项目

        顺序：撤销预览句柄 → 删除媒体 blob（失败只记录） → 删除持久记录 →
        从集合移除 → 若仍是当前项目则清除。重复调用安全。
        """
        self._deleted_during_load.add(project_id)
        # 删除期间自动保存 / 立即保存都会跳过该项目
        self._deleting.add(project_id)
        try:
            await self._delete_stored(project_id)
            self._remove_from_state(project_id)
        finally:
            self._deleting.discard(project_id)

    def set_current_project(self, project: Optional[Project]) -> Optional[Project]:
        """
        切换当前项目

        - 身份变化时修订号归零
        - 仅在身份变化时撤销上一个项目的预览句柄（重复选中同一项目不会撤销）
        - 激活前执行一致性修复
        """
        prev_id = self._state.current_id
        next_id = project.id if project is not None else None

        if prev_id is not None and prev_id != next_id:
            self._media.revoke_project_preview_urls(prev_id)

        if project is None:
            self._commit(current=None)
            set_current_project_id(None)
            return None

        repaired = repair_project(project)
        projects = self._state.projects
        if repaired is not project:
            projects = tuple(repaired if p.id == repaired.id else p for p in projects)
            logger.info("project_repaired_on_activation", project_id=repaired.id)

        self._commit(projects=projects, current=repaired)
        set_current_project_id(repaired.id)
        return repaired

    def export_project(self, project: Project) -> str:
        """导出为格式化 JSON（纯函数）"""
        return project.to_json()

    async def import_project(self, json_data) -> ImportResult:
        """导入项目；校验失败返回 success=False，不修改任何状态"""
        result = self._validator.validate_import(json_data)
        if not result.is_valid:
            return ImportResult(
                success=False,
                error=", ".join(e.message for e in result.errors) or "Invalid project data",
            )
        if result.project is None:
            return ImportResult(success=False, error="Invalid project data")

        project = result.project
        if project.schema_version < CURRENT_SCHEMA_VERSION:
            try:
                project = await self._persistence.migrate_if_needed(project)
            except Exception as e:
                logger.error("project_import_migration_failed", project_id=project.id, error=str(e))
                return ImportResult(success=False, error=f"Migration failed: {e}")

        now = self._clock()
        project = project.model_copy(
            update={"updated_at": now, "created_at": project.created_at or now}
        )

        state = self._state
        # 替换当前项目时，集合条目与当前项目使用同一个修复后的快照
        is_current = state.current_id == project.id
        if is_current:
            project = repair_project(project)
        if any(p.id == project.id for p in state.projects):
            projects = [project if p.id == project.id else p for p in state.projects]
        else:
            projects = list(state.projects) + [project]
        current = project if is_current else state.current

        self._commit(projects=projects, current=current)
        self._persist_now(project)
        logger.info("project_imported", project_id=project.id, schema_version=project.schema_version)
        return ImportResult(success=True, project=project)

    def save_current_project(self) -> Optional[Project]:
        """立即保存当前项目（不经过防抖）"""
        current = self._state.current
        if current is None:
            logger.debug("save_without_current_project")
            return None

        updated = current.model_copy(update={"updated_at": self._clock()})
        projects = [updated if p.id == updated.id else p for p in self._state.projects]
        self._commit(projects=projects, current=updated)
        self._persist_now(updated)
        return updated

    def sync_entry(self, project: Project) -> None:
        """把集合中同 ID 的条目替换为给定快照（不改变修订号）"""
        if not any(p.id == project.id for p in self._state.projects):
            return
        self._commit(projects=[project if p.id == project.id else p for p in self._state.projects])

    # ========== 内部 ==========

    async def _delete_stored(self, project_id: str) -> None:
        self._media.revoke_project_preview_urls(project_id)

        try:
            await self._media.delete_all_media_for_project(project_id)
        except Exception as e:
            logger.warning("project_media_delete_failed", project_id=project_id, error=str(e))
        try:
            await self._media.delete_project_videos(project_id)
        except Exception as e:
            logger.warning("project_videos_delete_failed", project_id=project_id, error=str(e))

        await self._persistence.delete_project(project_id)

    def _remove_from_state(self, project_id: str) -> None:
        # 以删除完成时的状态为准
        state = self._state
        remaining = [p for p in state.projects if p.id != project_id]
        was_current = state.current_id == project_id
        if len(remaining) == len(state.projects) and not was_current:
            return

        self._commit(projects=remaining, current=None if was_current else state.current)
        if was_current:
            set_current_project_id(None)
        logger.info("project_deleted", project_id=project_id, was_current=was_current)

    def _commit(
        self,
        projects: Union[Iterable[Project], object] = _KEEP,
        current: Union[Optional[Project], object] = _KEEP,
        bump: bool = False,
    ) -> None:
        prev = self._state
        next_projects = prev.projects if projects is _KEEP else tuple(projects)
        next_current = prev.current if current is _KEEP else current
        next_id = next_current.id if next_current is not None else None

        if prev.current_id != next_id:
            revision = 0
        else:
            revision = prev.revision + 1 if bump else prev.revision

        self._state = StoreState(projects=next_projects, current=next_current, revision=revision)
        self._live.current = next_current
        self._live.projects = next_projects

        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("store_listener_failed")

    def _schedule_persist(self, project_id: str) -> None:
        """在本次更新提交之后保存（读取执行时刻的最新快照）"""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._persist_latest(project_id)
            return
        loop.call_soon(self._persist_latest, project_id)

    def _persist_latest(self, project_id: str) -> None:
        if project_id in self._deleting:
            logger.debug("persist_skipped_project_deleting", project_id=project_id)
            return
        project = self._live.find(project_id)
        if project is None:
            logger.debug("persist_skipped_project_gone", project_id=project_id)
            return
        self._persist_now(project)

    def _persist_now(self, project: Project) -> None:
        self._persistence.save_project(project)
        self._persistence.flush_pending_writes()
