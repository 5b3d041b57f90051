"""Telegram 路由

POST /telegram/webhook: 接收 Telegram update；只有 secret 不匹配返回 401，其余一律 200。
POST /telegram/set-webhook: 注册 {BASE_URL}/telegram/webhook（需 X-Office-Secret）。
POST /telegram/delete-webhook: 删除 webhook（需 X-Office-Secret）。
"""

import structlog
from fastapi import APIRouter, Depends, Header, Request
from starlette.responses import JSONResponse

from verotasks.core.exceptions import ServerMisconfiguredError
from verotasks.notifier import NotifierError

from ..deps import get_gateway_config, get_notifier, get_webhook_service
from ..errors import error_response, require_office_secret
from ..services.outcome import ack_status

log = structlog.get_logger()

router = APIRouter()


@router.post("/telegram/webhook")
async def telegram_webhook(
    request: Request,
    x_telegram_bot_api_secret_token: str | None = Header(default=None),
    service=Depends(get_webhook_service),
):
    """处理一个 Telegram update"""
    try:
        payload = await request.json()
    except ValueError:
        payload = None

    outcome = await service.handle(payload, secret=x_telegram_bot_api_secret_token)
    status_code = ack_status(outcome)
    return JSONResponse(
        status_code=status_code,
        content={
            "ok": status_code == 200,
            "outcome": outcome.kind.value,
            "reason": outcome.reason,
        },
    )


@router.post("/telegram/set-webhook", dependencies=[Depends(require_office_secret)])
async def set_webhook(
    config=Depends(get_gateway_config),
    notifier=Depends(get_notifier),
):
    if not config.base_url:
        raise ServerMisconfiguredError("BASE_URL is not configured")

    url = f"{config.base_url}/telegram/webhook"
    try:
        await notifier.set_webhook(url, config.webhook_secret.get_secret_value())
    except NotifierError as e:
        log.warning("set_webhook_failed", error=str(e))
        return error_response(502, "dispatch_failed")

    log.info("webhook_registered", url=url)
    return {"ok": True, "url": url}


@router.post("/telegram/delete-webhook", dependencies=[Depends(require_office_secret)])
async def delete_webhook(notifier=Depends(get_notifier)):
    try:
        await notifier.delete_webhook()
    except NotifierError as e:
        log.warning("delete_webhook_failed", error=str(e))
        return error_response(502, "dispatch_failed")

    log.info("webhook_deleted")
    return {"ok": True}
