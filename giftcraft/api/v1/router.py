"""
API v1 Router
"""

from fastapi import APIRouter

from giftcraft.api.v1 import projects, settings

router = APIRouter()

# 包含各个模块的路由
router.include_router(projects.router)
router.include_router(settings.router)
