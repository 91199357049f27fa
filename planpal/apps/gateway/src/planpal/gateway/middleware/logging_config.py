"""structlog 配置模块

dev 模式：console 可读输出；json 模式：结构化 JSON 输出。
structlog 与标准库 logging 共用一个 ProcessorFormatter，
第三方库（uvicorn、litellm、httpx）的日志也走同一渲染链。
Logfire APM：LOGFIRE_SEND_TO_LOGFIRE 环境变量控制，false 时只保留本地日志。
"""

import logging
import os

import structlog
from fastapi import FastAPI

# 调试级别噪声较大的第三方 logger
_NOISY_LOGGERS = ("LiteLLM", "litellm", "httpx", "httpcore", "aiosqlite")


def setup_logging(log_format: str | None = None, log_level: str | None = None) -> None:
    """初始化 structlog 配置

    Args:
        log_format: "json" 或 "dev"，None 时读取 PLANPAL_LOG_FORMAT（默认 dev）
        log_level: 日志级别，None 时读取 PLANPAL_LOG_LEVEL（默认 INFO）
    """
    log_format = log_format or os.environ.get("PLANPAL_LOG_FORMAT", "dev")
    log_level = log_level or os.environ.get("PLANPAL_LOG_LEVEL", "INFO")
    level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer(
            ensure_ascii=False
        )
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def setup_logfire(app: FastAPI) -> None:
    """Logfire 可选初始化

    LOGFIRE_SEND_TO_LOGFIRE="true" 时启用（需要 LOGFIRE_TOKEN），
    初始化失败只记录警告，不影响服务启动。
    """
    send_to_logfire = os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower()
    if send_to_logfire != "true":
        return
    try:
        import logfire

        logfire.configure(service_name="planpal-gateway")
        logfire.instrument_fastapi(app)
    except Exception as e:
        structlog.get_logger().warning(
            "logfire_init_failed",
            error=str(e),
            message="Logfire init failed, falling back to local logs only",
        )
