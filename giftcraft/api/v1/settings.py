from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from giftcraft.api.deps import get_settings_provider
from giftcraft.core.settings_provider import AppSettingsProvider

router = APIRouter(prefix="/settings", tags=["Settings"])


class AppSettingsUpdate(BaseModel):
    """更新用户偏好（只覆盖提供的字段）"""

    autosave_enabled: Optional[bool] = Field(None, alias="autosaveEnabled", description="自动保存开关")
    theme: Optional[Literal["light", "dark"]] = Field(None, description="界面主题")

    model_config = ConfigDict(populate_by_name=True)


@router.get("", summary="获取用户偏好")
async def get_app_settings(provider: AppSettingsProvider = Depends(get_settings_provider)):
    return provider.to_dict()


@router.put("", summary="更新用户偏好")
async def update_app_settings(
    payload: AppSettingsUpdate, provider: AppSettingsProvider = Depends(get_settings_provider)
):
    if payload.autosave_enabled is not None:
        provider.set_autosave_enabled(payload.autosave_enabled)
    if payload.theme is not None:
        provider.set_theme(payload.theme)
    return provider.to_dict()
