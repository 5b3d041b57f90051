"""GatewayConfig -- 入站接口配置加载

webhook secret、办公室 API secret 与固定 chat ID 均来自环境变量。
"""

import os

import structlog
from pydantic import BaseModel, Field, SecretStr

from verotasks.core.config import get_office_signal_cooldown_s

log = structlog.get_logger()


class GatewayConfig(BaseModel):
    """Gateway 配置 -- 从环境变量加载

    环境变量:
        TELEGRAM_WEBHOOK_SECRET: webhook 请求头 X-Telegram-Bot-Api-Secret-Token 的期望值
        OFFICE_API_SECRET: 办公室接口请求头 X-Office-Secret 的期望值
        MASTER_CHAT_ID: Master 所在 chat
        OFFICE_CHAT_ID: 办公室群 chat（为空时任务卡片发回创建者所在 chat）
        BASE_URL: 对外访问地址，用于注册 webhook
        VEROTASKS_OFFICE_SIGNAL_COOLDOWN_S: 信号通知冷却窗口（秒）
    """

    webhook_secret: SecretStr = Field(default=SecretStr(""))
    office_api_secret: SecretStr = Field(default=SecretStr(""))
    master_chat_id: str = Field(default="", description="Master chat ID")
    office_chat_id: str = Field(default="", description="办公室群 chat ID")
    base_url: str = Field(default="", description="对外访问地址")
    signal_cooldown_s: int = Field(default=90, ge=10, description="信号通知冷却窗口（秒）")

    def is_privileged_chat(self, chat_id: str) -> bool:
        """Master chat 与办公室群 chat 免绑定校验"""
        return bool(chat_id) and chat_id in {self.master_chat_id, self.office_chat_id}


def load_gateway_config() -> GatewayConfig:
    """从环境变量加载 Gateway 配置

    Returns:
        GatewayConfig 实例
    """
    kwargs: dict = {
        "signal_cooldown_s": get_office_signal_cooldown_s(),
    }

    if val := os.environ.get("TELEGRAM_WEBHOOK_SECRET"):
        kwargs["webhook_secret"] = SecretStr(val)

    if val := os.environ.get("OFFICE_API_SECRET"):
        kwargs["office_api_secret"] = SecretStr(val)

    if val := os.environ.get("MASTER_CHAT_ID"):
        kwargs["master_chat_id"] = val.strip()

    if val := os.environ.get("OFFICE_CHAT_ID"):
        kwargs["office_chat_id"] = val.strip()

    if val := os.environ.get("BASE_URL"):
        kwargs["base_url"] = val.rstrip("/")

    config = GatewayConfig(**kwargs)

    if not config.webhook_secret.get_secret_value():
        log.warning("webhook_secret_not_configured")
    if not config.master_chat_id:
        log.warning("master_chat_not_configured")

    return config
