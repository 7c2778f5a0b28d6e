"""
Project Pydantic 模型

所有模型都是不可变快照（frozen），修改时通过 model_copy 整体替换。
Python 侧字段为 snake_case，导入/导出 JSON 使用 camelCase。
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# 当前数据结构版本：
#   0 - 无版本（早期导出文件）
#   1 - 图片/音频以 base64 内联在项目 JSON 中
#   2 - 媒体二进制移入媒体库，新增 videos 列表
CURRENT_SCHEMA_VERSION = 2


class SnapshotModel(BaseModel):
    """项目快照模型基类"""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class MediaMode(str, Enum):
    """屏幕媒体模式"""

    CLASSIC = "classic"
    VIDEO = "video"


class OverlayType(str, Enum):
    """开场遮罩类型"""

    HEART = "heart"
    BIRTHDAY = "birthday"
    SAVE_THE_DATE = "save_the_date"
    CUSTOM = "custom"


class ImageData(SnapshotModel):
    """图片引用（二进制由媒体库持有）"""

    id: str = Field(..., description="图片 ID")
    filename: str = Field("image", description="原始文件名")
    mime: Optional[str] = Field(None, description="MIME 类型")
    size: int = Field(0, ge=0, description="字节数")
    width: Optional[int] = Field(None, description="宽度（像素）")
    height: Optional[int] = Field(None, description="高度（像素）")
    created_at: Optional[str] = Field(None, description="创建时间")


class VideoData(SnapshotModel):
    """视频引用"""

    id: str = Field(..., description="视频 ID")
    filename: str = Field("video", description="原始文件名")
    mime: Optional[str] = Field(None, description="MIME 类型")
    size: int = Field(0, ge=0, description="字节数")
    width: Optional[int] = Field(None, description="宽度（像素）")
    height: Optional[int] = Field(None, description="高度（像素）")
    duration: Optional[float] = Field(None, description="时长（秒）")
    created_at: Optional[str] = Field(None, description="创建时间")


class AudioFile(SnapshotModel):
    """音频引用"""

    id: str = Field(..., description="音频 ID")
    filename: str = Field("audio", description="原始文件名")
    mime: Optional[str] = Field(None, description="MIME 类型")
    size: int = Field(0, ge=0, description="字节数")
    duration: Optional[float] = Field(None, description="时长（秒）")
    created_at: Optional[str] = Field(None, description="创建时间")


class AudioData(SnapshotModel):
    """项目音频：全局背景音乐 + 按屏幕的音乐"""

    # global 是 Python 关键字，字段名加下划线，序列化别名保持 "global"
    global_: Optional[AudioFile] = Field(None, alias="global")
    screens: Dict[str, AudioFile] = Field(default_factory=dict)
    library: Optional[List[AudioFile]] = None


class OverlayConfig(SnapshotModel):
    """开场遮罩配置"""

    type: OverlayType = OverlayType.HEART
    main_text: Optional[str] = None
    sub_text: Optional[str] = None
    button_text: Optional[str] = None


class Blessing(SnapshotModel):
    """祝福语"""

    sender: str
    text: str


class ScreenData(SnapshotModel):
    """
    单个屏幕的内容

    字段缺省含义：
        media_mode: 缺省为 classic
        video_id: 缺省表示没有视频
        images: 缺省为空列表
        audio_id / extend_music_to_next / gallery_layout: 缺省表示未设置，仅在 classic 模式下有意义
    """

    media_mode: MediaMode = MediaMode.CLASSIC
    video_id: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    audio_id: Optional[str] = None
    extend_music_to_next: Optional[bool] = None
    gallery_layout: Optional[str] = None
    title: Optional[str] = None
    text: Optional[str] = None


class ProjectData(SnapshotModel):
    """项目内容"""

    screens: Dict[str, ScreenData] = Field(default_factory=dict)
    images: List[ImageData] = Field(default_factory=list)
    videos: List[VideoData] = Field(default_factory=list)
    audio: AudioData = Field(default_factory=AudioData)
    overlay: OverlayConfig = Field(default_factory=OverlayConfig)

    recipient_name: Optional[str] = None
    sender_name: Optional[str] = None
    event_title: Optional[str] = None
    main_greeting: Optional[str] = None
    blessings: Optional[List[Blessing]] = None


class Project(SnapshotModel):
    """
    礼物项目

    字段：
        id: 项目 ID，创建后不可变
        name: 项目名称
        template_id: 模板 ID
        schema_version: 数据结构版本
        language: 语言代码（en, he, es, zh, ar, ru, pt, fr）
        data: 项目内容
        created_at: 创建时间
        updated_at: 更新时间
    """

    id: str = Field(..., description="项目 ID")
    name: str = Field(..., description="项目名称")
    template_id: str = Field(..., description="模板 ID")
    schema_version: int = Field(0, ge=0, description="数据结构版本")
    language: str = Field("en", description="语言代码")
    data: ProjectData = Field(default_factory=ProjectData, description="项目内容")
    created_at: Optional[datetime] = Field(None, description="创建时间")
    updated_at: Optional[datetime] = Field(None, description="更新时间")

    def to_export_dict(self) -> Dict[str, Any]:
        """导出为 JSON 兼容的 dict（camelCase，省略未设置字段）"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        """导出为格式化 JSON 字符串"""
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)


class CreateProjectRequest(BaseModel):
    """创建项目请求"""

    template_id: str = Field(..., alias="templateId", description="模板 ID")
    name: str = Field("", description="项目名称")

    model_config = ConfigDict(populate_by_name=True)


class ProjectPatchRequest(BaseModel):
    """部分更新当前项目（只覆盖提供的字段）"""

    name: Optional[str] = Field(None, description="项目名称")
    language: Optional[str] = Field(None, description="语言代码")
    template_id: Optional[str] = Field(None, alias="templateId", description="模板 ID")

    model_config = ConfigDict(populate_by_name=True)


class SetCurrentProjectRequest(BaseModel):
    """切换当前项目；project_id 为 null 表示清除"""

    project_id: Optional[str] = Field(None, alias="projectId", description="项目 ID")

    model_config = ConfigDict(populate_by_name=True)


class ProjectListResponse(BaseModel):
    """
    项目列表响应

    字段：
        total: 项目总数
        current_project_id: 当前项目 ID
        revision: 当前项目的修订号（会话内，不持久化）
        items: 项目列表
    """

    total: int = Field(..., description="项目总数")
    current_project_id: Optional[str] = Field(None, alias="currentProjectId", description="当前项目 ID")
    revision: int = Field(0, description="当前项目修订号")
    items: List[Dict[str, Any]] = Field(..., description="项目列表（导出格式）")

    model_config = ConfigDict(populate_by_name=True)
