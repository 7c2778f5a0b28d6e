"""
自动保存调度器（尾沿防抖）

当前项目 ID 或修订号变化、且自动保存开启时：取消未触发的定时器并重新计时。
定时器触发时读取 Store 中当前项目的最新快照（而不是计时开始时的值），
同步集合中的条目后交给持久化网关保存。
关闭自动保存只阻止新的计时，已计时的保存仍会触发。
当前项目被清除（切换为无项目或被删除）时取消定时器；正在删除的项目不会被保存。
"""

import asyncio
from typing import Callable, List, Optional, Tuple

from giftcraft.core.logging import get_logger
from giftcraft.core.settings_provider import AppSettingsProvider
from giftcraft.services.persistence import PersistenceGateway
from giftcraft.services.project_store import ProjectStore, StoreState

logger = get_logger(__name__)

DEFAULT_AUTOSAVE_DELAY_MS = 3000


class AutosaveScheduler:
    """自动保存调度器"""

    def __init__(
        self,
        store: ProjectStore,
        persistence: PersistenceGateway,
        settings_provider: AppSettingsProvider,
        delay_ms: int = DEFAULT_AUTOSAVE_DELAY_MS,
    ):
        self._store = store
        self._persistence = persistence
        self._settings = settings_provider
        self.delay_ms = delay_ms

        self._timer: Optional[asyncio.TimerHandle] = None
        self._last_key: Tuple[Optional[str], int] = (store.state.current_id, store.state.revision)
        self._unsubscribers: List[Callable[[], None]] = []

    @property
    def is_armed(self) -> bool:
        """是否有尚未触发的定时器"""
        return self._timer is not None

    def start(self) -> None:
        """订阅 Store 与设置变化"""
        if self._unsubscribers:
            return
        self._last_key = (self._store.state.current_id, self._store.state.revision)
        self._unsubscribers = [
            self._store.subscribe(self._on_store_change),
            self._settings.subscribe(self._on_settings_change),
        ]
        logger.info("autosave_scheduler_started", delay_ms=self.delay_ms)

    def close(self) -> None:
        """
        关闭（进程退出时调用）

        已计时但未触发的保存立即交给网关，然后强制 flush，保证不丢失。
        """
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            project = self._store.latest_current_project()
            if project is not None and not self._store.is_deleting(project.id):
                self._store.sync_entry(project)
                self._persistence.save_project(project)

        self._persistence.flush_pending_writes()

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        logger.info("autosave_scheduler_closed")

    def _on_store_change(self, state: StoreState) -> None:
        key = (state.current_id, state.revision)
        if key == self._last_key:
            return
        previous_id = self._last_key[0]
        self._last_key = key

        # 切换项目时，上一个项目尚未触发的自动保存直接交给网关
        if self._timer is not None and previous_id is not None and previous_id != state.current_id:
            previous = self._store.get_project(previous_id)
            if previous is not None and not self._store.is_deleting(previous_id):
                self._persistence.save_project(previous)

        if state.current is None:
            self._cancel()
            return
        self._arm(state)

    def _on_settings_change(self, autosave_enabled: bool) -> None:
        if autosave_enabled:
            self._arm(self._store.state)

    def _arm(self, state: StoreState) -> None:
        if not self._settings.autosave_enabled or state.current is None:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("autosave_skipped_no_event_loop", project_id=state.current_id)
            return

        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self.delay_ms / 1000, self._fire)
        logger.debug("autosave_armed", project_id=state.current_id, revision=state.revision)

    def _cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.debug("autosave_cancelled")

    def _fire(self) -> None:
        self._timer = None
        project = self._store.latest_current_project()
        if project is None:
            return
        if self._store.is_deleting(project.id):
            logger.info("autosave_skipped_project_deleting", project_id=project.id)
            return

        self._store.sync_entry(project)
        self._persistence.save_project(project)
        logger.info("autosave_fired", project_id=project.id, revision=self._store.revision)
