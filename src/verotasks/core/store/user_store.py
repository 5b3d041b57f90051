"""UserStore / LinkTokenStore SQLite 实现

写入方法不自动提交事务，需由调用方管理事务。
"""

from datetime import datetime

import aiosqlite

from ..models.enums import UserRole, UserStatus
from ..models.user import ChatBinding, LinkToken, User

_SELECT_USER = (
    "SELECT uid, email, name, role, status, telegram_user_id, telegram_chat_id, "
    "linked_at FROM users"
)


class SqliteUserStore:
    """UserStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get_user(self, uid: str) -> User | None:
        cursor = await self._conn.execute(f"{_SELECT_USER} WHERE uid = ?", (uid,))
        row = await cursor.fetchone()
        return self._row_to_user(row) if row else None

    async def find_by_telegram_user_id(self, telegram_user_id: str) -> User | None:
        """按 Telegram 用户 ID 查找已绑定用户"""
        cursor = await self._conn.execute(
            f"{_SELECT_USER} WHERE telegram_user_id = ? LIMIT 1",
            (telegram_user_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_user(row) if row else None

    async def upsert_user(self, user: User) -> None:
        """写入用户文档（含绑定信息）"""
        binding = user.binding
        await self._conn.execute(
            """
            INSERT INTO users (uid, email, name, role, status,
                               telegram_user_id, telegram_chat_id, linked_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(uid) DO UPDATE SET
                email = excluded.email,
                name = excluded.name,
                role = excluded.role,
                status = excluded.status,
                telegram_user_id = excluded.telegram_user_id,
                telegram_chat_id = excluded.telegram_chat_id,
                linked_at = excluded.linked_at
            """,
            (
                user.uid,
                user.email,
                user.name,
                user.role.value,
                user.status.value,
                binding.telegram_user_id if binding else None,
                binding.telegram_chat_id if binding else None,
                binding.linked_at.isoformat() if binding else None,
            ),
        )

    async def bind_chat(self, uid: str, binding: ChatBinding) -> None:
        """把 Telegram 身份绑定到用户

        同一 Telegram 用户此前绑定的其他账号会被解绑。
        """
        await self._conn.execute(
            """
            UPDATE users
            SET telegram_user_id = NULL, telegram_chat_id = NULL, linked_at = NULL
            WHERE telegram_user_id = ? AND uid != ?
            """,
            (binding.telegram_user_id, uid),
        )
        await self._conn.execute(
            """
            UPDATE users
            SET telegram_user_id = ?, telegram_chat_id = ?, linked_at = ?
            WHERE uid = ?
            """,
            (
                binding.telegram_user_id,
                binding.telegram_chat_id,
                binding.linked_at.isoformat(),
                uid,
            ),
        )

    @staticmethod
    def _row_to_user(row: aiosqlite.Row) -> User:
        binding = None
        # 用户 ID 与 chat ID 同时存在才算已绑定
        if row[5] and row[6]:
            binding = ChatBinding(
                telegram_user_id=row[5],
                telegram_chat_id=row[6],
                linked_at=datetime.fromisoformat(row[7]),
            )
        return User(
            uid=row[0],
            email=row[1],
            name=row[2],
            role=UserRole(row[3]),
            status=UserStatus(row[4]),
            binding=binding,
        )


class SqliteLinkTokenStore:
    """LinkTokenStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def insert_token(self, token: LinkToken) -> None:
        """插入 token

        Raises:
            aiosqlite.IntegrityError: token 已存在
        """
        await self._conn.execute(
            """
            INSERT INTO link_tokens (token, uid, email, created_at, expires_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                token.token,
                token.uid,
                token.email,
                token.created_at.isoformat(),
                token.expires_at.isoformat(),
            ),
        )

    async def get_token(self, token: str) -> LinkToken | None:
        cursor = await self._conn.execute(
            "SELECT token, uid, email, created_at, expires_at "
            "FROM link_tokens WHERE token = ?",
            (token,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return LinkToken(
            token=row[0],
            uid=row[1],
            email=row[2],
            created_at=datetime.fromisoformat(row[3]),
            expires_at=datetime.fromisoformat(row[4]),
        )

    async def delete_token(self, token: str) -> bool:
        """删除 token，返回是否确实删除了一行（用于一次性消费判定）"""
        cursor = await self._conn.execute(
            "DELETE FROM link_tokens WHERE token = ?",
            (token,),
        )
        return cursor.rowcount == 1

    async def purge_expired(self, now: datetime) -> int:
        """清理过期 token，返回删除行数"""
        cursor = await self._conn.execute(
            "SELECT token, expires_at FROM link_tokens"
        )
        rows = await cursor.fetchall()
        expired = [row[0] for row in rows if datetime.fromisoformat(row[1]) <= now]
        for token in expired:
            await self._conn.execute("DELETE FROM link_tokens WHERE token = ?", (token,))
        return len(expired)
