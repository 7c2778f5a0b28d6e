"""
Media Repository（图片 / 音频 / 视频 blob）
"""

from typing import List, Optional

from giftcraft.models.project import MediaRecord
from giftcraft.repositories.base import SQLAlchemyRepository, storage_retry


def make_media_key(project_id: str, media_id: str) -> str:
    """媒体复合键：<project_id>:<media_id>"""
    return f"{project_id}:{media_id}"


class MediaRepository(SQLAlchemyRepository[MediaRecord, str]):
    """媒体 blob 数据访问"""

    model_class = MediaRecord

    @storage_retry
    def list_for_project(self, project_id: str, media_type: Optional[str] = None) -> List[MediaRecord]:
        """列出项目下的媒体（可按类型过滤）"""
        with self.session_factory() as db:
            query = db.query(MediaRecord).filter(MediaRecord.project_id == project_id)
            if media_type:
                query = query.filter(MediaRecord.type == media_type)
            return query.order_by(MediaRecord.created_at.asc()).all()

    @storage_retry
    def delete_for_project(self, project_id: str, media_type: Optional[str] = None) -> int:
        """删除项目下的媒体（可按类型过滤），返回删除数量"""
        with self.session_factory() as db:
            query = db.query(MediaRecord).filter(MediaRecord.project_id == project_id)
            if media_type:
                query = query.filter(MediaRecord.type == media_type)
            deleted = query.delete(synchronize_session=False)
            db.commit()
            return deleted
