"""TaskService -- 任务创建 / 信号 / 决策 / 查询业务逻辑

所有变更都走同一条路径：
1. 获取 task 级锁（进程内串行化）
2. 读取任务 → 业务校验 → 构造新文档与审计记录
3. 单事务写回（version 比较并交换，跨实例冲突时重试）
4. 广播审计记录，尽力刷新办公室卡片并发送通知
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog
from pydantic import BaseModel
from ulid import ULID

from verotasks.core.config import (
    COMMENT_MAX_LENGTH,
    DETAILS_MAX_LENGTH,
    TASK_LIST_DEFAULT_LIMIT,
    TASK_LIST_MAX_LIMIT,
)
from verotasks.core.exceptions import (
    ConflictError,
    ForbiddenError,
    RoleNotAllowedError,
    TaskClosedError,
    TaskNotFoundError,
    TaskVersionConflictError,
    ValidationError,
)
from verotasks.core.models import (
    TERMINAL_STATES,
    ActorRole,
    Assignee,
    AssignMeta,
    AuditAction,
    AuditActor,
    AuditEntry,
    ClosedBy,
    CreatedBy,
    CreateMeta,
    OfficeCard,
    OfficePostMeta,
    OfficeSignal,
    OfficeSignalMeta,
    OfficeSignalState,
    Priority,
    PriorityMeta,
    SignalActor,
    SignalNotifiedMeta,
    StatusChangeMeta,
    Task,
    TaskStatus,
    TextMeta,
    is_closed,
    role_can_target,
)
from verotasks.core.priority import build_title, pick_priority
from verotasks.core.signals import SignalDecision, decide_signal
from verotasks.core.state_machine import check_transition
from verotasks.core.store import StoreGroup, create_task_with_entries, save_task_with_entries

log = structlog.get_logger()

SYSTEM_ACTOR = AuditActor(user_id="system", name="system", role=ActorRole.SYSTEM)

# apply 函数返回值：(新文档, [(动作, meta)])；None 表示无需写入
Change = tuple[Task, list[tuple[AuditAction, BaseModel]]] | None


@dataclass
class _TaskLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


@dataclass(frozen=True)
class SignalResult:
    task: Task
    notified: bool
    reason: str


class TaskService:
    """任务业务服务"""

    _max_version_retries = 3

    def __init__(
        self,
        store_group: StoreGroup,
        sse_hub=None,
        dispatcher=None,
        cooldown_s: int = 90,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._stores = store_group
        self._sse_hub = sse_hub
        self._dispatcher = dispatcher
        self._cooldown_s = cooldown_s
        self._clock = clock
        self._task_locks: dict[str, _TaskLock] = {}

    # ============================================================
    # 创建
    # ============================================================

    async def create_task(self, created_by: CreatedBy, text: str) -> Task:
        """根据入站消息创建任务并发布办公室卡片

        `/p <优先级>` 前缀决定优先级，否则按关键词推断。
        """
        text = text.strip()
        if not text:
            raise ValidationError("Task text is empty")

        priority, body = pick_priority(text)
        now = self._clock()
        task_id = str(ULID())
        task = Task(
            task_id=task_id,
            created_at=now,
            updated_at=now,
            created_by=created_by,
            source_text=text,
            title=build_title(body),
            priority=priority,
        )
        entry = AuditEntry(
            entry_id=str(ULID()),
            task_id=task_id,
            task_seq=1,
            ts=now,
            action=AuditAction.CREATE,
            actor=AuditActor(
                user_id=created_by.user_id,
                name=created_by.name,
                role=ActorRole.REQUESTER,
            ),
            meta=CreateMeta(priority=priority, text_length=len(text)).model_dump(mode="json"),
            status_after=task.status,
        )

        await create_task_with_entries(
            self._stores.conn,
            self._stores.task_store,
            self._stores.audit_log,
            task,
            [entry],
        )
        await self._broadcast([entry])
        log.info("task_created", task_id=task_id, priority=priority.value)

        if self._dispatcher is not None:
            card = await self._dispatcher.post_office_card(task)
            if card is not None:
                task = await self.attach_office_card(task_id, card)
        return task

    async def attach_office_card(self, task_id: str, card: OfficeCard) -> Task:
        """记录办公室卡片位置"""

        def apply(task: Task, now: datetime) -> Change:
            if task.office_card == card:
                return None
            return task.model_copy(update={"office_card": card}), [
                (
                    AuditAction.OFFICE_POST,
                    OfficePostMeta(chat_id=card.chat_id, message_id=card.message_id or 0),
                )
            ]

        task, _ = await self._mutate(task_id, apply, SYSTEM_ACTOR)
        return task

    # ============================================================
    # 办公室操作
    # ============================================================

    async def set_priority(self, task_id: str, priority: Priority, actor: AuditActor) -> Task:
        def apply(task: Task, now: datetime) -> Change:
            if is_closed(task.status):
                raise TaskClosedError(task.task_id, task.status.value)
            if task.priority == priority:
                return None
            return task.model_copy(update={"priority": priority}), [
                (
                    AuditAction.PRIORITY,
                    PriorityMeta(from_priority=task.priority, to_priority=priority),
                )
            ]

        task, changed = await self._mutate(task_id, apply, actor)
        if changed:
            log.info("task_priority_set", task_id=task_id, priority=priority.value)
            await self._refresh_card(task)
        return task

    async def assign(self, task_id: str, assignee: Assignee, actor: AuditActor) -> Task:
        if not assignee.uid.strip():
            raise ValidationError("Assignee uid is required")

        def apply(task: Task, now: datetime) -> Change:
            if is_closed(task.status):
                raise TaskClosedError(task.task_id, task.status.value)
            if task.assigned_to == assignee:
                return None
            return task.model_copy(update={"assigned_to": assignee, "assigned_at": now}), [
                (AuditAction.ASSIGN, AssignMeta(uid=assignee.uid, name=assignee.name))
            ]

        task, changed = await self._mutate(task_id, apply, actor)
        if changed:
            log.info("task_assigned", task_id=task_id, uid=assignee.uid)
            await self._refresh_card(task)
        return task

    async def submit_office_signal(
        self,
        task_id: str,
        state: OfficeSignalState,
        comment: str = "",
        by: SignalActor | None = None,
    ) -> SignalResult:
        """提交办公室信号

        信号（重复除外）无论通知结果如何都会写入；notified_at 只在通知发送成功后
        以第二次原子写入记录。整个读-判-写-通知过程持有 task 级锁。

        Raises:
            ValidationError: 评论过长
            TaskNotFoundError: 任务不存在
            TaskClosedError: 任务已关闭
        """
        comment = comment.strip()
        if len(comment) > COMMENT_MAX_LENGTH:
            raise ValidationError(f"Comment exceeds {COMMENT_MAX_LENGTH} characters")
        by = by or SignalActor()
        actor = AuditActor(user_id=by.uid, name=by.email, role=ActorRole.OFFICE)
        decision: SignalDecision | None = None

        def apply(task: Task, now: datetime) -> Change:
            nonlocal decision
            if is_closed(task.status):
                raise TaskClosedError(task.task_id, task.status.value)
            decision = decide_signal(
                task.office_signal,
                state,
                comment,
                task.status,
                now,
                self._cooldown_s,
            )
            if not decision.persist:
                return None

            # 被抑制的信号沿用上一次成功通知的时间
            carried = task.office_signal.notified_at if task.office_signal else None
            signal = OfficeSignal(
                state=state,
                comment=comment,
                updated_at=now,
                updated_by=by,
                notified_at=None if decision.notify else carried,
            )
            return task.model_copy(update={"office_signal": signal}), [
                (
                    AuditAction.OFFICE_SIGNAL,
                    OfficeSignalMeta(
                        state=state,
                        has_comment=bool(comment),
                        notify=decision.notify,
                        reason=decision.reason.value,
                    ),
                )
            ]

        async with self._task_lock(task_id):
            task, changed = await self._apply_with_retry(task_id, apply, actor)

            if not changed:
                log.info("office_signal_skipped", task_id=task_id, reason=decision.reason.value)
                return SignalResult(task=task, notified=False, reason=decision.reason.value)

            log.info(
                "office_signal_saved",
                task_id=task_id,
                state=state.value,
                notify=decision.notify,
                reason=decision.reason.value,
            )

            notified = False
            reason = decision.reason.value
            if decision.notify:
                notified = (
                    self._dispatcher is not None
                    and await self._dispatcher.notify_master_signal(task)
                )
                if notified:
                    task = await self._mark_signal_notified(task_id, state, comment)
                else:
                    reason = "dispatch_failed"

        await self._refresh_card(task)
        return SignalResult(task=task, notified=notified, reason=reason)

    async def _mark_signal_notified(
        self,
        task_id: str,
        state: OfficeSignalState,
        comment: str,
    ) -> Task:
        """记录通知成功时间（调用方已持有 task 级锁）"""

        def apply(task: Task, now: datetime) -> Change:
            signal = task.office_signal
            if signal is None or signal.state != state or signal.comment != comment:
                return None
            notified = signal.model_copy(update={"notified_at": now})
            return task.model_copy(update={"office_signal": notified}), [
                (AuditAction.SIGNAL_NOTIFIED, SignalNotifiedMeta(state=state))
            ]

        task, _ = await self._apply_with_retry(task_id, apply, SYSTEM_ACTOR)
        return task

    async def request_details(self, task_id: str, actor: AuditActor) -> Task:
        """办公室请求"附带详情完成"：只做标记，状态不变"""
        if not role_can_target(actor.role, TaskStatus.DONE_WITH_DETAILS):
            raise RoleNotAllowedError(actor.role.value, TaskStatus.DONE_WITH_DETAILS.value)

        def apply(task: Task, now: datetime) -> Change:
            if is_closed(task.status):
                raise TaskClosedError(task.task_id, task.status.value)
            if task.details_requested_at is not None:
                return None
            return task.model_copy(update={"details_requested_at": now}), [
                (AuditAction.DETAILS_REQUESTED, TextMeta())
            ]

        task, changed = await self._mutate(task_id, apply, actor)
        if changed:
            log.info("task_details_requested", task_id=task_id)
            await self._refresh_card(task)
        return task

    async def finalize_with_details(self, task_id: str, details: str, actor: AuditActor) -> Task:
        """收到详情后完成任务（done_with_details）

        Raises:
            ValidationError: 详情为空或过长
            ConflictError: 任务未处于等待详情状态
            InvalidTransitionError / RoleNotAllowedError: 流转不合法
        """
        details = details.strip()
        if not details:
            raise ValidationError("Details are empty")
        if len(details) > DETAILS_MAX_LENGTH:
            raise ValidationError(f"Details exceed {DETAILS_MAX_LENGTH} characters")

        def apply(task: Task, now: datetime) -> Change:
            check_transition(actor.role, task.status, TaskStatus.DONE_WITH_DETAILS)
            if task.details_requested_at is None:
                raise ConflictError(
                    f"Task {task.task_id} is not waiting for details",
                    code="details_not_requested",
                )
            updated = task.model_copy(
                update={
                    "status": TaskStatus.DONE_WITH_DETAILS,
                    "details": details,
                    "details_requested_at": None,
                    "closed_at": now,
                    "closed_by": ClosedBy(user_id=actor.user_id, name=actor.name, via="office"),
                }
            )
            return updated, [
                (
                    AuditAction.DETAILS,
                    StatusChangeMeta(
                        from_status=task.status,
                        to_status=TaskStatus.DONE_WITH_DETAILS,
                        reason="details",
                    ),
                )
            ]

        task, _ = await self._mutate(task_id, apply, actor)
        log.info("task_finalized_with_details", task_id=task_id)

        await self._refresh_card(task)
        if self._dispatcher is not None:
            await self._dispatcher.notify_master_details(task)
            await self._dispatcher.notify_requester(task)
        return task

    # ============================================================
    # Master 操作
    # ============================================================

    async def apply_master_decision(
        self,
        task_id: str,
        to_status: TaskStatus,
        actor: AuditActor,
    ) -> Task:
        """Master 决策：流转状态并清除办公室信号

        Raises:
            RoleNotAllowedError: 非 Master 角色
            InvalidTransitionError: 流转表不允许
        """

        def apply(task: Task, now: datetime) -> Change:
            check_transition(actor.role, task.status, to_status)
            closing = to_status in TERMINAL_STATES
            updated = task.model_copy(
                update={
                    "status": to_status,
                    "office_signal": None,
                    "details_requested_at": None,
                    "closed_at": now if closing else None,
                    "closed_by": (
                        ClosedBy(user_id=actor.user_id, name=actor.name, via="master")
                        if closing
                        else None
                    ),
                }
            )
            return updated, [
                (
                    AuditAction.MASTER_STATUS,
                    StatusChangeMeta(from_status=task.status, to_status=to_status),
                )
            ]

        task, _ = await self._mutate(task_id, apply, actor)
        log.info("master_decision_applied", task_id=task_id, status=to_status.value)

        await self._refresh_card(task)
        if self._dispatcher is not None:
            await self._dispatcher.notify_office_decision(task)
            await self._dispatcher.notify_requester(task)
        return task

    async def save_master_comment(self, task_id: str, comment: str, actor: AuditActor) -> Task:
        if actor.role != ActorRole.MASTER:
            raise ForbiddenError("Only the master can reply to a task", code="role_not_allowed")
        comment = comment.strip()
        if not comment:
            raise ValidationError("Comment is empty")
        if len(comment) > COMMENT_MAX_LENGTH:
            raise ValidationError(f"Comment exceeds {COMMENT_MAX_LENGTH} characters")

        def apply(task: Task, now: datetime) -> Change:
            return task.model_copy(update={"master_comment": comment, "master_comment_at": now}), [
                (AuditAction.MASTER_COMMENT, TextMeta(length=len(comment)))
            ]

        task, _ = await self._mutate(task_id, apply, actor)
        log.info("master_comment_saved", task_id=task_id)

        await self._refresh_card(task)
        if self._dispatcher is not None:
            await self._dispatcher.notify_office_comment(task)
        return task

    # ============================================================
    # 查询
    # ============================================================

    async def get_task(self, task_id: str) -> Task | None:
        return await self._stores.task_store.get_task(task_id)

    async def get_audit(self, task_id: str) -> list[AuditEntry]:
        return await self._stores.audit_log.get_entries_for_task(task_id)

    async def list_tasks(
        self,
        bucket: str = "all",
        status: TaskStatus | None = None,
        limit: int = TASK_LIST_DEFAULT_LIMIT,
    ) -> list[Task]:
        """按桶（pending / closed / all）与可选状态筛选任务"""
        if bucket == "pending":
            statuses = {TaskStatus.OPEN, TaskStatus.PENDING}
        elif bucket == "closed":
            statuses = set(TERMINAL_STATES)
        elif bucket == "all":
            statuses = set(TaskStatus)
        else:
            raise ValidationError(f"Unknown bucket: {bucket}")

        if status is not None:
            statuses &= {status}
            if not statuses:
                return []

        limit = max(1, min(limit, TASK_LIST_MAX_LIMIT))
        return await self._stores.task_store.list_tasks(
            sorted(s.value for s in statuses),
            limit,
        )

    # ============================================================
    # 内部
    # ============================================================

    @asynccontextmanager
    async def _task_lock(self, task_id: str) -> AsyncIterator[None]:
        """持有 task 级别锁，序列化同一任务的变更

        最后一个持有者 / 等待者离开时移除锁，锁表只保留正在变更的任务。
        """
        entry = self._task_locks.get(task_id)
        if entry is None:
            entry = self._task_locks[task_id] = _TaskLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._task_locks[task_id]

    async def _mutate(
        self,
        task_id: str,
        apply: Callable[[Task, datetime], Change],
        actor: AuditActor,
    ) -> tuple[Task, bool]:
        async with self._task_lock(task_id):
            return await self._apply_with_retry(task_id, apply, actor)

    async def _apply_with_retry(
        self,
        task_id: str,
        apply: Callable[[Task, datetime], Change],
        actor: AuditActor,
    ) -> tuple[Task, bool]:
        """读取 → apply → 原子写回；version 冲突时重新读取重试

        Returns:
            (最新任务文档, 是否发生写入)
        """
        for attempt in range(1, self._max_version_retries + 1):
            task = await self._stores.task_store.get_task(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)

            now = self._clock()
            change = apply(task, now)
            if change is None:
                return task, False

            updated, records = change
            updated = updated.model_copy(update={"updated_at": now, "version": task.version + 1})
            seq = await self._stores.audit_log.get_next_task_seq(task_id)
            entries = [
                AuditEntry(
                    entry_id=str(ULID()),
                    task_id=task_id,
                    task_seq=seq + i,
                    ts=now,
                    action=action,
                    actor=actor,
                    meta=meta.model_dump(mode="json"),
                    status_after=updated.status,
                )
                for i, (action, meta) in enumerate(records)
            ]

            try:
                await save_task_with_entries(
                    self._stores.conn,
                    self._stores.task_store,
                    self._stores.audit_log,
                    updated,
                    task.version,
                    entries,
                )
            except TaskVersionConflictError:
                if attempt < self._max_version_retries:
                    log.warning("task_version_conflict_retry", task_id=task_id, attempt=attempt)
                    continue
                raise

            await self._broadcast(entries)
            return updated, True

        raise TaskVersionConflictError(task_id, -1)

    async def _broadcast(self, entries: list[AuditEntry]) -> None:
        if self._sse_hub is None:
            return
        for entry in entries:
            await self._sse_hub.broadcast(entry.task_id, entry)

    async def _refresh_card(self, task: Task) -> None:
        if self._dispatcher is not None:
            await self._dispatcher.refresh_card(task)
