"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、信号冷却窗口、绑定 token TTL、等待槽/更新记录 TTL、
文本长度限制等可配置常量。
"""

import os
from pathlib import Path

import structlog

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("VEROTASKS_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "VEROTASKS_DB_PATH",
        str(_get_base_dir() / "sqlite" / "verotasks.db"),
    )


def get_office_signal_cooldown_s() -> int:
    """获取办公室信号通知冷却窗口（秒），下限 10 秒"""
    raw = os.environ.get("VEROTASKS_OFFICE_SIGNAL_COOLDOWN_S", "90")
    try:
        value = int(raw)
    except ValueError:
        log.warning(
            "invalid_cooldown_config",
            env_var="VEROTASKS_OFFICE_SIGNAL_COOLDOWN_S",
            value=raw,
            fallback=90,
        )
        value = 90
    return max(10, value)


# 绑定 token 有效期（分钟）
LINK_TOKEN_TTL_MIN: int = int(os.environ.get("VEROTASKS_LINK_TOKEN_TTL_MIN", "10"))

# 绑定 token 长度与字母表（去掉易混淆字符 I/O/0/1）
LINK_TOKEN_LENGTH: int = 6
LINK_TOKEN_ALPHABET: str = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
LINK_TOKEN_MAX_ATTEMPTS: int = 10

# 等待槽有效期（秒），过期后视为不存在
AWAITING_SLOT_TTL_S: int = int(
    os.environ.get("VEROTASKS_AWAITING_SLOT_TTL_S", str(24 * 3600))
)

# Telegram update 幂等记录保留时长（秒）
UPDATE_RECORD_TTL_S: int = int(
    os.environ.get("VEROTASKS_UPDATE_RECORD_TTL_S", str(7 * 24 * 3600))
)

# 同一发送者两次建任务之间的最小间隔（秒）
SENDER_RATE_LIMIT_S: int = int(os.environ.get("VEROTASKS_SENDER_RATE_LIMIT_S", "3"))

# SSE 心跳间隔（秒）
SSE_HEARTBEAT_INTERVAL: int = int(
    os.environ.get("VEROTASKS_SSE_HEARTBEAT_INTERVAL", "15")
)

# 文本长度限制
COMMENT_MAX_LENGTH: int = 2000
DETAILS_MAX_LENGTH: int = 4000
TITLE_MAX_LENGTH: int = 80

# 任务列表查询上限
TASK_LIST_DEFAULT_LIMIT: int = 50
TASK_LIST_MAX_LIMIT: int = 200
