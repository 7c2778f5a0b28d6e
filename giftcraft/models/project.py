"""
Project / Media ORM 模型
"""

from sqlalchemy import Column, DateTime, Integer, LargeBinary, String, Text

from giftcraft.core.database import Base


class ProjectRecord(Base):
    """
    Project 持久化记录

    字段：
        id: 项目 ID（project_<毫秒时间戳>_<随机后缀>）
        name: 项目名称
        template_id: 模板 ID
        schema_version: 数据结构版本
        payload: 完整项目快照（JSON，camelCase）
        created_at: 创建时间
        updated_at: 更新时间
    """

    __tablename__ = "projects"

    id = Column(String(64), primary_key=True, comment="项目 ID")
    name = Column(String(255), nullable=False, default="", comment="项目名称")
    template_id = Column(String(255), nullable=False, default="", comment="模板 ID")
    schema_version = Column(Integer, nullable=False, default=0, comment="数据结构版本")
    payload = Column(Text, nullable=False, comment="项目快照 JSON")
    created_at = Column(DateTime(timezone=True), nullable=True, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), nullable=True, comment="更新时间")

    def __repr__(self):
        return f"<ProjectRecord(id={self.id}, schema_version={self.schema_version})>"


class MediaRecord(Base):
    """
    媒体 blob 记录（图片 / 音频 / 视频）

    字段：
        id: 复合键 "<project_id>:<media_id>"
        project_id: 所属项目 ID
        media_id: 媒体 ID
        type: image | audio | video
        metadata_json: 媒体元数据（JSON）
        blob: 二进制内容

    索引：
        idx_project_id: 按项目批量删除 / 列举
    """

    __tablename__ = "media"

    id = Column(String(160), primary_key=True, comment="<project_id>:<media_id>")
    project_id = Column(String(64), nullable=False, index=True, comment="所属项目 ID")
    media_id = Column(String(96), nullable=False, comment="媒体 ID")
    type = Column(String(16), nullable=False, index=True, comment="image | audio | video")
    metadata_json = Column(Text, nullable=False, default="{}", comment="媒体元数据")
    blob = Column(LargeBinary, nullable=False, comment="二进制内容")
    created_at = Column(DateTime(timezone=True), nullable=True, comment="创建时间")

    def __repr__(self):
        return f"<MediaRecord(id={self.id}, type={self.type})>"
