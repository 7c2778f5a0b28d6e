"""
结构化日志配置模块

功能:
- 使用 structlog 实现结构化日志
- JSON 格式输出（生产环境）
- 彩色控制台输出（开发环境）
- 自动添加 timestamp、level、logger name
- 当前项目 ID 追踪支持
- 截断内联媒体数据（旧版 base64 data URL），避免日志被二进制内容撑爆
"""

import sys
from contextvars import ContextVar
from typing import Optional

import structlog
from structlog.types import EventDict, Processor

import logging
from giftcraft.core.config import get_settings

# 当前项目 ID 上下文变量
project_id_var: ContextVar[Optional[str]] = ContextVar("project_id", default=None)

# 超过该长度的 data URL 只保留前缀
MAX_INLINE_MEDIA_CHARS = 64


def truncate_inline_media(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """截断日志字段中的内联 data URL"""
    for key, value in event_dict.items():
        if isinstance(value, str) and value.startswith("data:") and len(value) > MAX_INLINE_MEDIA_CHARS:
            event_dict[key] = f"{value[:MAX_INLINE_MEDIA_CHARS]}...<{len(value)} chars>"
    return event_dict


def add_project_id(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """添加当前项目 ID 到日志（调用方显式传入的 project_id 优先）"""
    project_id = project_id_var.get()
    if project_id and "project_id" not in event_dict:
        event_dict["project_id"] = project_id
    return event_dict


def setup_logging() -> None:
    """配置结构化日志"""
    settings = get_settings()
    is_development = settings.ENVIRONMENT == "development"

    # 共享的处理器
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_project_id,
        truncate_inline_media,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if is_development:
        # 开发环境：彩色控制台输出
        shared_processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        # 生产环境：JSON 格式
        shared_processors.append(structlog.processors.format_exc_info)
        shared_processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    # 降低第三方库的日志级别
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """获取 structlog logger"""
    return structlog.get_logger(name)


def set_current_project_id(project_id: Optional[str]) -> None:
    """设置当前激活项目的 ID（写入日志上下文）"""
    project_id_var.set(project_id)


def get_current_project_id() -> Optional[str]:
    """获取日志上下文中的当前项目 ID"""
    return project_id_var.get()
