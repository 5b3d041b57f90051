"""Notifier 异常体系"""


class NotifierError(Exception):
    """Notifier 包基础异常"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class DispatchUnreachableError(NotifierError):
    """Bot API 不可达（连接失败、超时、DNS 解析失败等）"""

    def __init__(self, api_url: str, original_error: Exception) -> None:
        super().__init__(
            f"Telegram API 不可达: {api_url} -- {original_error}",
            recoverable=True,
        )
        self.api_url = api_url
        self.original_error = original_error


class DispatchRejectedError(NotifierError):
    """Bot API 拒绝请求（ok=false）

    chat 不存在、bot 被踢出等属于不可恢复错误；限流（429）与 5xx 可恢复。
    """

    def __init__(self, method: str, error_code: int, description: str) -> None:
        super().__init__(
            f"Telegram {method} 被拒绝: {error_code} {description}",
            recoverable=error_code == 429 or error_code >= 500,
        )
        self.method = method
        self.error_code = error_code
        self.description = description
