"""
校验 / 导入结果模型
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from giftcraft.schemas.project import Project


class ValidationError(BaseModel):
    """
    单条校验错误

    字段：
        field: 出错字段路径（如 data.screens.intro.mediaMode）
        message: 错误信息
        section: 对应的编辑器分区（可选）
    """

    field: str = Field(..., description="字段路径")
    message: str = Field(..., description="错误信息")
    section: Optional[str] = Field(None, description="编辑器分区")


class ValidationResult(BaseModel):
    """导入数据校验结果"""

    is_valid: bool = Field(..., description="是否通过校验")
    errors: List[ValidationError] = Field(default_factory=list, description="错误列表")
    project: Optional[Project] = Field(None, description="校验通过后的项目")


class ImportResult(BaseModel):
    """项目导入结果（导入失败不抛异常，通过 success/error 返回）"""

    success: bool = Field(..., description="是否导入成功")
    error: Optional[str] = Field(None, description="失败原因")
    project: Optional[Project] = Field(None, description="导入的项目")
