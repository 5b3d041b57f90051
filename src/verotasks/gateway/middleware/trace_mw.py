"""TraceMiddleware

为任务相关请求绑定 trace_id，贯穿同一任务的日志。
trace_id 从路径中的 task_id 生成；webhook 请求在解析 update 后由服务层绑定。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ULID 长度
_TASK_ID_LENGTH = 26


class TraceMiddleware(BaseHTTPMiddleware):
    """任务级追踪中间件 -- 为任务操作绑定 trace_id"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # /api/tasks/{id}、/office/tasks/{id}/...、/api/stream/task/{id}
        parts = request.url.path.split("/")
        for i, part in enumerate(parts[:-1]):
            if part in ("tasks", "task") and len(parts[i + 1]) == _TASK_ID_LENGTH:
                structlog.contextvars.bind_contextvars(trace_id=f"trace-{parts[i + 1]}")
                break

        return await call_next(request)
