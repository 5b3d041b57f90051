"""VeroTasks Notifier -- 出站聊天通知抽象层

notifier 包的公开接口导出。
"""

# 核心组件
from .client import TelegramClient

# 配置
from .config import NotifierConfig, load_notifier_config
from .echo import EchoNotifier

# 异常
from .exceptions import DispatchRejectedError, DispatchUnreachableError, NotifierError

# 数据模型
from .models import InlineButton, InlineKeyboard, SentMessage
from .protocols import Notifier


def create_notifier(config: NotifierConfig) -> Notifier:
    """按配置创建通知通道"""
    if config.mode == "echo":
        return EchoNotifier()
    return TelegramClient(
        bot_token=config.bot_token.get_secret_value(),
        api_base_url=config.api_base_url,
        timeout_s=config.timeout_s,
    )


__all__ = [
    "InlineButton",
    "InlineKeyboard",
    "SentMessage",
    "Notifier",
    "TelegramClient",
    "EchoNotifier",
    "create_notifier",
    "NotifierConfig",
    "load_notifier_config",
    "NotifierError",
    "DispatchUnreachableError",
    "DispatchRejectedError",
]
