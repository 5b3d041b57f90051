"""全局 pytest 配置 -- 临时 SQLite 数据库 + 可控时钟 + 内存通知通道 + 测试 app fixture"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import aiosqlite
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr

from verotasks.core.models import User, UserRole, UserStatus
from verotasks.core.store import StoreGroup, create_store_group, write_transaction
from verotasks.gateway.config import GatewayConfig
from verotasks.gateway.main import build_app_state, create_app
from verotasks.notifier import EchoNotifier

MASTER_CHAT_ID = "9000"
OFFICE_CHAT_ID = "8000"
OFFICE_SECRET = "office-secret"
WEBHOOK_SECRET = "hook-secret"


class FakeClock:
    """可手动推进的时钟；调用返回 datetime，epoch() 返回秒"""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def epoch(self) -> float:
        return self.now.timestamp()

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "sqlite" / "test.db"


@pytest_asyncio.fixture
async def db_conn(tmp_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """提供已初始化的临时 SQLite 数据库连接"""
    from verotasks.core.store.sqlite_init import init_db

    conn = await aiosqlite.connect(str(tmp_path / "conn.db"))
    await init_db(conn)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    sg = await create_store_group(str(tmp_db_path))
    yield sg
    await sg.conn.close()


@pytest.fixture
def notifier() -> EchoNotifier:
    return EchoNotifier()


@pytest.fixture
def gateway_config() -> GatewayConfig:
    return GatewayConfig(
        webhook_secret=SecretStr(WEBHOOK_SECRET),
        office_api_secret=SecretStr(OFFICE_SECRET),
        master_chat_id=MASTER_CHAT_ID,
        office_chat_id=OFFICE_CHAT_ID,
        base_url="https://tasks.example.com",
        signal_cooldown_s=90,
    )


@pytest.fixture
def seed_user(store_group: StoreGroup):
    """写入一个应用用户"""

    async def _seed(
        uid: str = "u-office",
        email: str = "office@example.com",
        role: UserRole = UserRole.OFFICE,
        status: UserStatus = UserStatus.ACTIVE,
        name: str = "Office Ana",
    ) -> User:
        user = User(uid=uid, email=email, name=name, role=role, status=status)
        async with write_transaction(store_group.conn):
            await store_group.user_store.upsert_user(user)
        return user

    return _seed


@pytest_asyncio.fixture
async def app(store_group, notifier, gateway_config) -> FastAPI:
    """创建测试用 FastAPI app 实例

    不走 lifespan：直接用临时 StoreGroup、EchoNotifier 与测试配置组装 app.state。
    """
    application = create_app()
    build_app_state(application, store_group, notifier, gateway_config)
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
