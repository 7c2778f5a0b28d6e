"""
应用配置管理
支持：
- 环境变量
- .env 文件
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATABASE_URL = "sqlite:///./giftcraft.db"


class Settings(BaseSettings):
    """应用配置"""

    # ===== 基础环境 =====
    ENVIRONMENT: str = Field(default="development", description="运行环境")
    LOG_LEVEL: str = Field(default="INFO", description="日志级别")

    # ===== APP =====
    PROJECT_NAME: str = Field(default="Giftcraft Editor Backend", description="项目名称")

    # ===== 存储 =====
    DATABASE_URL: str = Field(default=DEFAULT_DATABASE_URL, description="项目/媒体存储数据库 URL")
    APP_SETTINGS_PATH: str = Field(
        default="./giftcraft_settings.json", description="用户偏好设置（自动保存、主题）文件路径"
    )

    # ===== 自动保存 =====
    AUTOSAVE_DELAY_MS: int = Field(default=3000, ge=0, description="自动保存防抖延迟（毫秒）")

    # ===== 媒体 =====
    PREVIEW_CACHE_MAX_ENTRIES: int = Field(default=100, ge=1, description="预览 URL 缓存上限（LRU）")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


# 全局配置实例（懒加载）
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """获取配置实例（懒加载）"""
    global _settings

    if _settings is None:
        settings = Settings()

        # ===== 环境约束 =====
        if settings.ENVIRONMENT in ("production", "staging"):
            if settings.DATABASE_URL == DEFAULT_DATABASE_URL:
                raise RuntimeError(
                    f"[CONFIG ERROR] ENVIRONMENT={settings.ENVIRONMENT} "
                    f"必须显式配置 DATABASE_URL，禁止使用工作目录下的默认 SQLite 文件"
                )
        _settings = settings

    return _settings


def reset_settings() -> None:
    """清除缓存的配置实例（测试使用）"""
    global _settings
    _settings = None
