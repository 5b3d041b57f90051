"""Store Protocol 接口定义

定义 TaskStore、AuditLog、UserStore、LinkTokenStore、KeyValueStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from datetime import datetime
from typing import Any, Protocol

from ..models.audit import AuditEntry
from ..models.task import Task
from ..models.user import ChatBinding, LinkToken, User


class TaskStore(Protocol):
    """Task 存储接口"""

    async def create_task(self, task: Task) -> None:
        """创建任务记录"""
        ...

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        ...

    async def list_tasks(
        self,
        statuses: list[str] | None = None,
        limit: int = 50,
    ) -> list[Task]:
        """查询任务列表，支持按状态集合筛选"""
        ...

    async def update_task(self, task: Task, expected_version: int) -> None:
        """整体写回任务文档（比较并交换 version）"""
        ...


class AuditLog(Protocol):
    """审计日志接口

    审计表 append-only：只允许插入，不允许更新或删除。
    """

    async def append(self, entry: AuditEntry) -> None:
        """追加审计记录"""
        ...

    async def get_entries_for_task(self, task_id: str) -> list[AuditEntry]:
        """查询指定任务的所有审计记录"""
        ...

    async def get_entries_after(
        self,
        task_id: str,
        after_entry_id: str,
    ) -> list[AuditEntry]:
        """查询指定记录之后的增量记录（用于 SSE 断线重连）"""
        ...

    async def get_next_task_seq(self, task_id: str) -> int:
        """获取指定任务的下一个 task_seq（MAX+1）"""
        ...


class UserStore(Protocol):
    """应用用户存储接口"""

    async def get_user(self, uid: str) -> User | None: ...

    async def find_by_telegram_user_id(self, telegram_user_id: str) -> User | None: ...

    async def upsert_user(self, user: User) -> None: ...

    async def bind_chat(self, uid: str, binding: ChatBinding) -> None: ...


class LinkTokenStore(Protocol):
    """一次性绑定 token 存储接口"""

    async def insert_token(self, token: LinkToken) -> None: ...

    async def get_token(self, token: str) -> LinkToken | None: ...

    async def delete_token(self, token: str) -> bool: ...

    async def purge_expired(self, now: datetime) -> int: ...


class KeyValueStore(Protocol):
    """带 TTL 的键值存储接口（每个方法自身原子）"""

    async def put_if_absent(
        self,
        namespace: str,
        key: str,
        value: dict[str, Any],
        now: float,
        ttl_s: float | None = None,
    ) -> bool: ...

    async def put(
        self,
        namespace: str,
        key: str,
        value: dict[str, Any],
        now: float,
        ttl_s: float | None = None,
    ) -> None: ...

    async def get(self, namespace: str, key: str, now: float) -> dict[str, Any] | None: ...

    async def pop(self, namespace: str, key: str, now: float) -> dict[str, Any] | None: ...

    async def purge_expired(self, now: float) -> int: ...
