"""CLI 入口模块 -- python -m verotasks.core <command>

支持的命令：
  purge-expired  清理过期的绑定 token、等待槽与 update 幂等记录
"""

import asyncio
import sys
import time
from datetime import UTC, datetime

from .config import get_db_path


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print("用法: python -m verotasks.core <command>")
        print("命令:")
        print("  purge-expired  清理过期的绑定 token、等待槽与 update 幂等记录")
        sys.exit(1)

    command = sys.argv[1]

    if command == "purge-expired":
        asyncio.run(purge_expired())
    else:
        print(f"未知命令: {command}")
        print("可用命令: purge-expired")
        sys.exit(1)


async def purge_records(store_group, now: datetime) -> tuple[int, int]:
    """清理过期记录

    Returns:
        (删除的 token 数, 删除的键值条目数)
    """
    from .store import write_transaction

    async with write_transaction(store_group.conn):
        tokens = await store_group.link_token_store.purge_expired(now)
    entries = await store_group.kv_store.purge_expired(now.timestamp())
    return tokens, entries


async def purge_expired() -> None:
    """执行过期记录清理"""
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)

    try:
        started = time.monotonic()
        tokens, entries = await purge_records(store_group, datetime.now(UTC))
        elapsed = time.monotonic() - started
        print(f"清理完成: token {tokens} 个，键值条目 {entries} 个，耗时 {elapsed:.2f}s")
    finally:
        await store_group.conn.close()


if __name__ == "__main__":
    main()
