"""健康检查路由

GET /health: 存活检查，始终 200
GET /ready?profile=core|llm|full: 就绪检查
  - sqlite: 连接可用
  - chat_variant: 当前生效的聊天表（两种表都不存在时失败）
  - llm_backend: 仅 llm / full 时探测，static 模式下跳过
"""

from typing import Literal

import structlog
from fastapi import APIRouter, Query, Request
from planpal.core.exceptions import StoreError
from planpal.core.store import StoreGroup
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()

SKIPPED = "skipped"


@router.get("/health")
async def health():
    return {"status": "ok"}


async def _check_sqlite(store_group: StoreGroup) -> str:
    try:
        cursor = await store_group.conn.execute("SELECT 1")
        await cursor.fetchone()
    except Exception as e:
        return f"error: {e}"
    return "ok"


async def _check_chat_variant(store_group: StoreGroup) -> str:
    try:
        variant = await store_group.message_store.detect_variant()
    except StoreError as e:
        return f"error: {e.message}"
    return variant.value


async def _check_llm_backend(llm_client) -> str:
    if llm_client is None:
        return SKIPPED
    try:
        healthy = await llm_client.health_check()
    except Exception as e:
        log.warning("llm_health_check_error", error=str(e))
        healthy = False
    return "ok" if healthy else "unreachable"


@router.get("/ready")
async def ready(
    request: Request,
    profile: Literal["core", "llm", "full"] = Query(
        default="core", description="core 仅检查存储；llm/full 额外探测语言模型后端"
    ),
):
    store_group = request.app.state.store_group
    checks = {
        "sqlite": await _check_sqlite(store_group),
        "chat_variant": await _check_chat_variant(store_group),
        "llm_backend": SKIPPED,
    }
    if profile != "core":
        checks["llm_backend"] = await _check_llm_backend(
            getattr(request.app.state, "llm_client", None)
        )

    failed = [
        name
        for name, status in checks.items()
        if status.startswith("error") or status == "unreachable"
    ]
    if failed:
        log.warning("readiness_failed", failed=failed)

    return JSONResponse(
        status_code=503 if failed else 200,
        content={
            "status": "not_ready" if failed else "ready",
            "profile": profile,
            "checks": checks,
        },
    )
