"""
Repository 层模块

提供数据访问抽象，解耦网关层与数据库实现
"""

from giftcraft.repositories.base import BaseRepository, SQLAlchemyRepository, storage_retry
from giftcraft.repositories.media_repository import MediaRepository, make_media_key
from giftcraft.repositories.project_repository import ProjectRepository

__all__ = [
    "BaseRepository",
    "SQLAlchemyRepository",
    "ProjectRepository",
    "MediaRepository",
    "make_media_key",
    "storage_retry",
]
