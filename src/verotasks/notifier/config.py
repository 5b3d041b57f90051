"""NotifierConfig -- 通知通道配置加载

从环境变量加载配置，不硬编码 bot token。
"""

import os
from typing import Literal

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()


class NotifierConfig(BaseModel):
    """Notifier 包配置 -- 从环境变量加载

    环境变量:
        TELEGRAM_BOT_TOKEN: Bot token
        TELEGRAM_API_URL: Bot API 地址（默认 https://api.telegram.org）
        VEROTASKS_NOTIFIER_MODE: 运行模式（telegram/echo）
        VEROTASKS_NOTIFIER_TIMEOUT_S: 调用超时（秒，默认 10）
    """

    api_base_url: str = Field(
        default="https://api.telegram.org",
        description="Telegram Bot API 基础 URL",
    )
    bot_token: SecretStr = Field(
        default=SecretStr(""),
        description="Bot token",
    )
    mode: Literal["telegram", "echo"] = Field(
        default="telegram",
        description="运行模式：telegram / echo",
    )
    timeout_s: int = Field(
        default=10,
        ge=1,
        description="出站调用超时（秒）",
    )


def load_notifier_config() -> NotifierConfig:
    """从环境变量加载 Notifier 配置

    未配置 bot token 时自动退化为 echo 模式。

    Returns:
        NotifierConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("TELEGRAM_API_URL"):
        kwargs["api_base_url"] = val

    if val := os.environ.get("TELEGRAM_BOT_TOKEN"):
        kwargs["bot_token"] = SecretStr(val)

    if val := os.environ.get("VEROTASKS_NOTIFIER_MODE"):
        kwargs["mode"] = val
    elif "bot_token" not in kwargs:
        kwargs["mode"] = "echo"

    if val := os.environ.get("VEROTASKS_NOTIFIER_TIMEOUT_S"):
        try:
            timeout_s = int(val)
        except ValueError:
            timeout_s = 0
        if timeout_s >= 1:
            kwargs["timeout_s"] = timeout_s
        else:
            log.warning(
                "invalid_timeout_config",
                env_var="VEROTASKS_NOTIFIER_TIMEOUT_S",
                value=val,
                fallback=10,
            )
            # 使用默认值，不阻塞启动

    return NotifierConfig(**kwargs)
