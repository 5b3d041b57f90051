"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + 通知通道初始化 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from verotasks.core.config import get_db_path
from verotasks.core.store import StoreGroup, create_store_group
from verotasks.notifier import Notifier, create_notifier, load_notifier_config

from .config import GatewayConfig, load_gateway_config
from .errors import register_exception_handlers
from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import health, office, stream, tasks, telegram
from .services.awaiting import AwaitingSlots
from .services.dispatcher import NotificationDispatcher
from .services.idempotency import UpdateGuard
from .services.link_service import LinkService
from .services.sse_hub import SSEHub
from .services.task_service import TaskService
from .services.throttle import SenderThrottle
from .services.webhook_service import WebhookService

log = structlog.get_logger()


def build_app_state(
    app: FastAPI,
    store_group: StoreGroup,
    notifier: Notifier,
    config: GatewayConfig,
) -> None:
    """组装服务并挂到 app.state（lifespan 与测试共用）"""
    sse_hub = SSEHub()
    dispatcher = NotificationDispatcher(notifier, config)
    task_service = TaskService(
        store_group,
        sse_hub=sse_hub,
        dispatcher=dispatcher,
        cooldown_s=config.signal_cooldown_s,
    )
    link_service = LinkService(store_group, config)

    app.state.store_group = store_group
    app.state.sse_hub = sse_hub
    app.state.notifier = notifier
    app.state.gateway_config = config
    app.state.task_service = task_service
    app.state.link_service = link_service
    app.state.webhook_service = WebhookService(
        config=config,
        task_service=task_service,
        link_service=link_service,
        dispatcher=dispatcher,
        update_guard=UpdateGuard(store_group.kv_store),
        slots=AwaitingSlots(store_group.kv_store),
        throttle=SenderThrottle(store_group.kv_store),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB 和通知通道，关闭时清理连接"""
    store_group = await create_store_group(get_db_path())

    notifier_config = load_notifier_config()
    notifier = create_notifier(notifier_config)
    gateway_config = load_gateway_config()

    build_app_state(app, store_group, notifier, gateway_config)
    log.info(
        "gateway_initialized",
        notifier_mode=notifier_config.mode,
        cooldown_s=gateway_config.signal_cooldown_s,
        office_chat=bool(gateway_config.office_chat_id),
    )

    yield

    # 关闭：先关通知通道，再关数据库连接
    await notifier.aclose()
    if hasattr(app.state, "store_group") and app.state.store_group:
        await app.state.store_group.conn.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="VeroTasks Gateway",
        version="0.1.0",
        description="VeroTasks 办公室 / Master 任务协作 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    # 初始化日志
    setup_logging()
    setup_logfire(app)

    register_exception_handlers(app)

    # 注册路由
    app.include_router(telegram.router, tags=["telegram"])
    app.include_router(office.router, tags=["office"])
    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(stream.router, tags=["stream"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
