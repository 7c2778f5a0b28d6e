"""
FastAPI 应用入口（本地编辑器后端）

生命周期：
- 启动：构造 EditorRuntime，加载项目，启动自动保存
- 退出：交出未触发的自动保存并 flush，保证编辑不丢失
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from giftcraft.api.v1.router import router as api_v1_router
from giftcraft.core.config import get_settings
from giftcraft.core.exceptions import ProjectNotFoundException
from giftcraft.core.logging import get_logger, setup_logging
from giftcraft.runtime import EditorRuntime

logger = get_logger(__name__)


def create_app(runtime: Optional[EditorRuntime] = None) -> FastAPI:
    """创建应用；测试可注入自定义运行时"""
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.runtime = runtime or EditorRuntime.from_settings(settings)
        await app.state.runtime.start()
        try:
            yield
        finally:
            await app.state.runtime.shutdown()

    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

    @app.exception_handler(ProjectNotFoundException)
    async def project_not_found_handler(request: Request, exc: ProjectNotFoundException):
        logger.info("project_not_found", path=request.url.path, detail=str(exc))
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    app.include_router(api_v1_router, prefix="/api/v1")
    return app


def main() -> None:
    import uvicorn

    setup_logging()
    uvicorn.run(create_app(), host="127.0.0.1", port=8000)


if __name__ == "__main__":
    main()
