"""依赖注入模块 -- 通过 FastAPI Depends 注入服务实例

服务实例通过 app.state 管理，在 lifespan 中初始化/清理。
"""

from fastapi import Request

from verotasks.core.store import StoreGroup

from .config import GatewayConfig
from .services.link_service import LinkService
from .services.task_service import TaskService
from .services.webhook_service import WebhookService


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_sse_hub(request: Request):
    """从 app.state 获取 SSEHub 实例"""
    return request.app.state.sse_hub


def get_gateway_config(request: Request) -> GatewayConfig:
    return request.app.state.gateway_config


def get_notifier(request: Request):
    return request.app.state.notifier


def get_task_service(request: Request) -> TaskService:
    return request.app.state.task_service


def get_link_service(request: Request) -> LinkService:
    return request.app.state.link_service


def get_webhook_service(request: Request) -> WebhookService:
    return request.app.state.webhook_service
