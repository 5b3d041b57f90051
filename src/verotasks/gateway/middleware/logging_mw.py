"""LoggingMiddleware

为每个 HTTP 请求生成 request_id 并绑定到 structlog contextvars，
按路径前缀标注调用来源（telegram / office / api）。
健康检查探针只记 debug，避免刷屏。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

_QUIET_PATHS = frozenset({"/health", "/ready"})


def _channel_for(path: str) -> str:
    if path.startswith("/telegram/"):
        return "telegram"
    if path.startswith("/office/"):
        return "office"
    return "api"


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求级日志中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = str(ULID())
        path = request.url.path
        started = time.monotonic()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            channel=_channel_for(path),
            method=request.method,
            path=path,
        )

        log = structlog.get_logger()
        quiet = path in _QUIET_PATHS
        if not quiet:
            await log.ainfo("request_started")

        response = await call_next(request)

        duration_ms = int((time.monotonic() - started) * 1000)
        if response.status_code >= 500:
            await log.awarning(
                "request_completed", status_code=response.status_code, duration_ms=duration_ms
            )
        elif quiet:
            await log.adebug(
                "request_completed", status_code=response.status_code, duration_ms=duration_ms
            )
        else:
            await log.ainfo(
                "request_completed", status_code=response.status_code, duration_ms=duration_ms
            )

        response.headers["X-Request-ID"] = request_id
        return response
