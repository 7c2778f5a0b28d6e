"""
依赖注入：从应用状态中获取运行时组件

用法：
```python
@router.get("/items")
async def get_items(store: ProjectStore = Depends(get_store)):
    return store.projects
```
"""

from fastapi import Request

from giftcraft.core.settings_provider import AppSettingsProvider
from giftcraft.runtime import EditorRuntime
from giftcraft.services.project_store import ProjectStore


def get_runtime(request: Request) -> EditorRuntime:
    """获取当前应用的运行时实例"""
    return request.app.state.runtime


def get_store(request: Request) -> ProjectStore:
    """获取项目 Store"""
    return get_runtime(request).store


def get_settings_provider(request: Request) -> AppSettingsProvider:
    """获取用户偏好设置"""
    return get_runtime(request).settings_provider
