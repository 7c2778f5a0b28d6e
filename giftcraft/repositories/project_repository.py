"""
Project Repository
"""

from typing import List

from giftcraft.models.project import ProjectRecord
from giftcraft.repositories.base import SQLAlchemyRepository, storage_retry


class ProjectRepository(SQLAlchemyRepository[ProjectRecord, str]):
    """项目记录数据访问"""

    model_class = ProjectRecord

    @storage_retry
    def list_ordered(self) -> List[ProjectRecord]:
        """按创建时间升序获取所有项目记录"""
        with self.session_factory() as db:
            return (
                db.query(ProjectRecord)
                .order_by(ProjectRecord.created_at.asc(), ProjectRecord.id.asc())
                .all()
            )
