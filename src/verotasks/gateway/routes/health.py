"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含 SQLite 连通性；profile=full 时探测通知通道。
"""

import structlog
from fastapi import APIRouter, Query, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    """Liveness 检查 -- 永远返回 200"""
    config = getattr(request.app.state, "gateway_config", None)
    return {
        "status": "ok",
        "service": "verotasks",
        "cooldown_s": config.signal_cooldown_s if config else None,
        "has_office_chat": bool(config and config.office_chat_id),
    }


@router.get("/ready")
async def ready(
    request: Request,
    profile: str | None = Query(
        default=None,
        description="检查配置文件：core（默认）仅核心检查；full 包含通知通道探测",
    ),
):
    """Readiness 检查 -- 验证核心依赖可用性

    检查项：
    1. sqlite: 数据库连通性
    2. notifier: profile=full 时调用通知通道健康检查，否则 skipped
    """
    effective_profile = profile or "core"

    checks = {}
    all_ok = True

    try:
        store_group = request.app.state.store_group
        cursor = await store_group.conn.execute("SELECT 1")
        await cursor.fetchone()
        checks["sqlite"] = "ok"
    except Exception as e:
        checks["sqlite"] = f"error: {str(e)}"
        all_ok = False

    if effective_profile == "full":
        notifier = getattr(request.app.state, "notifier", None)
        if notifier is not None and await notifier.health_check():
            checks["notifier"] = "ok"
        else:
            log.warning("notifier_unreachable")
            checks["notifier"] = "unreachable"
            all_ok = False
    else:
        checks["notifier"] = "skipped"

    status_code = 200 if all_ok else 503
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "ready" if all_ok else "not_ready",
            "profile": effective_profile,
            "checks": checks,
        },
    )
