"""
Repository 层基础模块

提供数据访问抽象，实现以下目标：
1. 解耦网关层与数据库实现
2. 便于单元测试（可替换）
3. 集中管理数据访问逻辑

说明：Repository 方法均为同步调用，网关层通过 asyncio.to_thread() 在工作线程中执行，
因此每个操作都使用独立的会话。
"""

from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

# 泛型类型
T = TypeVar("T")  # 模型类型
ID = TypeVar("ID")  # 主键类型

# 可重试的存储异常（如 SQLite "database is locked"）
RETRYABLE_EXCEPTIONS = (OperationalError,)

# 存储操作重试装饰器：最多重试3次，指数退避等待
storage_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
    retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
    reraise=True,
)


class BaseRepository(ABC, Generic[T, ID]):
    """
    Repository 基类

    提供通用的 CRUD 操作接口
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @abstractmethod
    def get_by_id(self, id: ID) -> Optional[T]:
        """根据 ID 获取单个实体"""
        pass

    @abstractmethod
    def upsert(self, entity: T) -> T:
        """创建或覆盖实体"""
        pass

    @abstractmethod
    def delete(self, id: ID) -> bool:
        """删除实体"""
        pass


class SQLAlchemyRepository(BaseRepository[T, ID]):
    """
    SQLAlchemy 实现的 Repository 基类

    子类只需指定 model_class 即可获得基础 CRUD 功能
    """

    model_class: type = None  # 子类必须指定

    def __init__(self, session_factory: sessionmaker):
        super().__init__(session_factory)
        if self.model_class is None:
            raise ValueError("model_class must be specified in subclass")

    @storage_retry
    def get_by_id(self, id: ID) -> Optional[T]:
        """根据主键获取实体"""
        with self.session_factory() as db:
            return db.get(self.model_class, id)

    @storage_retry
    def upsert(self, entity: T) -> T:
        """创建或覆盖实体（按主键合并）"""
        with self.session_factory() as db:
            merged = db.merge(entity)
            db.commit()
            return merged

    @storage_retry
    def delete(self, id: ID) -> bool:
        """删除实体"""
        with self.session_factory() as db:
            entity = db.get(self.model_class, id)
            if entity:
                db.delete(entity)
                db.commit()
                return True
            return False
