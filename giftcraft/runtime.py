"""
编辑器运行时

显式构造并连接各组件（每个进程一个实例，通过依赖注入传给使用方）：

    runtime = EditorRuntime.from_settings(get_settings())
    await runtime.start()      # 建表、加载项目、启动自动保存
    ...
    await runtime.shutdown()   # 交出未触发的自动保存、flush、释放数据库连接
"""

from pathlib import Path
from typing import Optional

from sqlalchemy.engine import Engine

from giftcraft.core.config import Settings
from giftcraft.core.database import create_db_engine, create_session_factory, init_db
from giftcraft.core.logging import get_logger
from giftcraft.core.settings_provider import AppSettingsProvider
from giftcraft.repositories.media_repository import MediaRepository
from giftcraft.repositories.project_repository import ProjectRepository
from giftcraft.services.autosave import AutosaveScheduler
from giftcraft.services.media import MediaLifecycleManager, PreviewUrlCache
from giftcraft.services.persistence import PersistenceGateway
from giftcraft.services.project_store import ProjectStore
from giftcraft.services.validation import ValidationService

logger = get_logger(__name__)


class EditorRuntime:
    """组件容器"""

    def __init__(
        self,
        engine: Engine,
        settings_provider: AppSettingsProvider,
        autosave_delay_ms: int,
        preview_cache_size: int = 100,
    ):
        self.engine = engine
        session_factory = create_session_factory(engine)

        self.settings_provider = settings_provider
        self.media = MediaLifecycleManager(
            MediaRepository(session_factory), PreviewUrlCache(max_entries=preview_cache_size)
        )
        self.persistence = PersistenceGateway(ProjectRepository(session_factory), media=self.media)
        self.validator = ValidationService()
        self.store = ProjectStore(self.persistence, self.media, self.validator)
        self.autosave = AutosaveScheduler(
            self.store, self.persistence, self.settings_provider, delay_ms=autosave_delay_ms
        )
        self._started = False

    @classmethod
    def from_settings(cls, settings: Settings, settings_path: Optional[Path] = None) -> "EditorRuntime":
        return cls(
            engine=create_db_engine(settings.DATABASE_URL),
            settings_provider=AppSettingsProvider(settings_path or Path(settings.APP_SETTINGS_PATH)),
            autosave_delay_ms=settings.AUTOSAVE_DELAY_MS,
            preview_cache_size=settings.PREVIEW_CACHE_MAX_ENTRIES,
        )

    async def start(self) -> None:
        if self._started:
            return
        init_db(self.engine)
        self.autosave.start()
        await self.store.load()
        self._started = True
        logger.info("editor_runtime_started", projects=len(self.store.projects))

    async def shutdown(self) -> None:
        if not self._started:
            return
        self.autosave.close()
        await self.persistence.wait_idle()
        self.persistence.flush_pending_writes()
        self.media.clear_preview_cache()
        self.engine.dispose()
        self._started = False
        logger.info("editor_runtime_stopped")
