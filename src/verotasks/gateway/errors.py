"""统一错误响应

领域异常映射为 {"ok": false, "error": <code>} 与对应 HTTP 状态码；
请求体校验失败统一返回 400 invalid_input。
"""

import hmac

import structlog
from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from verotasks.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ServerMisconfiguredError,
    UnauthorizedError,
    ValidationError,
    VeroTasksError,
)

log = structlog.get_logger()

# 先匹配者生效
_STATUS_BY_ERROR: list[tuple[type[VeroTasksError], int]] = [
    (ValidationError, 400),
    (UnauthorizedError, 401),
    (ForbiddenError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (ServerMisconfiguredError, 500),
]


def status_for(exc: VeroTasksError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


def error_response(status_code: int, code: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": code, **extra})


async def _handle_domain_error(request: Request, exc: VeroTasksError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        log.error("request_failed", code=exc.code, error=str(exc))
    else:
        log.info("request_rejected", code=exc.code, status_code=status_code)
    return error_response(status_code, exc.code)


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"loc": ".".join(str(p) for p in err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    log.info("request_invalid", errors=len(details))
    return error_response(400, "invalid_input", details=details)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(VeroTasksError, _handle_domain_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)


async def require_office_secret(
    request: Request,
    x_office_secret: str | None = Header(default=None),
) -> None:
    """校验办公室接口的 X-Office-Secret 请求头

    Raises:
        ServerMisconfiguredError: 未配置 OFFICE_API_SECRET
        UnauthorizedError: 请求头缺失或不匹配
    """
    expected = request.app.state.gateway_config.office_api_secret.get_secret_value().strip()
    if not expected:
        log.error("office_secret_not_configured")
        raise ServerMisconfiguredError("OFFICE_API_SECRET is not configured")

    provided = (x_office_secret or "").strip()
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise UnauthorizedError("Invalid office secret")
