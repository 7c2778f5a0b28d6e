"""
数据库连接管理

项目记录与媒体 blob 都保存在同一个 SQLAlchemy 数据库中（默认 SQLite 文件）。

说明:
- 持久化网关与媒体管理器在工作线程中访问数据库（asyncio.to_thread），
  因此 SQLite 需要关闭 check_same_thread
- 内存数据库（测试）使用 StaticPool，保证所有线程共享同一个连接
"""

from typing import Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from giftcraft.core.logging import get_logger

logger = get_logger(__name__)

# ORM 基类
Base = declarative_base()


def create_db_engine(database_url: str) -> Engine:
    """创建数据库引擎"""
    kwargs: Dict = {"echo": False}

    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True  # 使用前检查连接是否有效

    engine = create_engine(database_url, **kwargs)
    logger.info("db_engine_created", dialect=engine.dialect.name)
    return engine


def init_db(engine: Engine) -> None:
    """创建所有表（幂等）"""
    # 导入模型以注册到 Base.metadata
    from giftcraft.models import project  # noqa: F401

    Base.metadata.create_all(bind=engine)


def create_session_factory(engine: Engine) -> sessionmaker:
    """创建会话工厂"""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
