"""办公室面板路由（均需 X-Office-Secret）

POST /office/signal: 提交办公室信号，返回是否已通知 Master。
POST /office/link-token: 为 uid+email 签发一次性绑定 token。
POST /office/tasks/{task_id}/priority: 修改优先级。
POST /office/tasks/{task_id}/assign: 指派任务。
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from verotasks.core.config import LINK_TOKEN_TTL_MIN
from verotasks.core.models import (
    ActorRole,
    Assignee,
    AuditActor,
    OfficeSignalState,
    Priority,
    SignalActor,
)

from ..deps import get_link_service, get_task_service
from ..errors import require_office_secret

router = APIRouter(prefix="/office", dependencies=[Depends(require_office_secret)])


class SignalBy(BaseModel):
    model_config = ConfigDict(extra="forbid")

    uid: str = Field(default="office-web")
    email: str = Field(default="office-web")


class SignalRequest(BaseModel):
    """办公室信号请求体"""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    task_id: str = Field(alias="taskId", min_length=1, description="任务 ID")
    state: OfficeSignalState = Field(description="信号状态")
    comment: str = Field(default="", description="可选评论")
    by: SignalBy | None = Field(default=None, description="提交者")


class LinkTokenRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    uid: str = Field(min_length=1)
    email: str = Field(min_length=1)


class PriorityRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    priority: Priority
    by: SignalBy | None = Field(default=None)


class AssignRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    uid: str = Field(min_length=1)
    name: str = Field(default="")
    email: str = Field(default="")
    by: SignalBy | None = Field(default=None)


def _office_actor(by: SignalBy | None) -> AuditActor:
    by = by or SignalBy()
    return AuditActor(user_id=by.uid, name=by.email, role=ActorRole.OFFICE)


@router.post("/signal")
async def submit_signal(body: SignalRequest, service=Depends(get_task_service)):
    """提交信号

    - 200 {ok, notified, reason?}：除重复外信号均已写入
    - 404 任务不存在；409 任务已关闭
    """
    by = SignalActor(**body.by.model_dump()) if body.by else SignalActor()
    result = await service.submit_office_signal(body.task_id, body.state, body.comment, by)

    content = {"ok": True, "notified": result.notified}
    if not result.notified:
        content["reason"] = result.reason
    return content


@router.post("/link-token")
async def issue_link_token(body: LinkTokenRequest, service=Depends(get_link_service)):
    token = await service.issue_token(body.uid, body.email)
    return {
        "ok": True,
        "token": token.token,
        "ttlMinutes": LINK_TOKEN_TTL_MIN,
        "expiresAt": token.expires_at.isoformat(),
    }


@router.post("/tasks/{task_id}/priority")
async def set_priority(task_id: str, body: PriorityRequest, service=Depends(get_task_service)):
    task = await service.set_priority(task_id, body.priority, _office_actor(body.by))
    return {"ok": True, "task_id": task.task_id, "priority": task.priority.value}


@router.post("/tasks/{task_id}/assign")
async def assign_task(task_id: str, body: AssignRequest, service=Depends(get_task_service)):
    assignee = Assignee(uid=body.uid, name=body.name, email=body.email)
    task = await service.assign(task_id, assignee, _office_actor(body.by))
    return {"ok": True, "task_id": task.task_id, "assigned_to": task.assigned_to.model_dump()}
