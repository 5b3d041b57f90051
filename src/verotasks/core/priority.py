"""任务优先级推断

新任务默认 medium；文本开头的 `/p <优先级>` 前缀优先于关键词推断。
同时识别英文与葡萄牙语的常见写法。
"""

import re

from .config import TITLE_MAX_LENGTH
from .models.enums import Priority

_ALIASES: dict[str, Priority] = {
    "low": Priority.LOW,
    "baixa": Priority.LOW,
    "medium": Priority.MEDIUM,
    "normal": Priority.MEDIUM,
    "media": Priority.MEDIUM,
    "média": Priority.MEDIUM,
    "high": Priority.HIGH,
    "alta": Priority.HIGH,
    "urgent": Priority.URGENT,
    "urgente": Priority.URGENT,
    "critical": Priority.URGENT,
    "critica": Priority.URGENT,
    "crítica": Priority.URGENT,
}

_PREFIX_RE = re.compile(r"^/(?:p|priority|prioridade)\s+(\S+)\s*", re.IGNORECASE)

_URGENT_RE = re.compile(
    r"(urgent|critical|emergency|asap|outage|is down|urgente|cr[ií]tic[oa]|"
    r"emerg[eê]ncia|parou|travou|fora do ar)"
)
_HIGH_RE = re.compile(r"(high priority|important|today|right now|alta|importante|hoje|agora)")
_LOW_RE = re.compile(r"(no rush|whenever|low priority|sem pressa|quando der|baixa prioridade)")

_ALARM_EMOJIS = ("🔥", "🚨", "❗", "⚠")


def normalize_priority(value: str) -> Priority | None:
    """把外部输入的优先级写法归一化，未知写法返回 None"""
    return _ALIASES.get(value.strip().lower())


def parse_priority_prefix(text: str) -> tuple[Priority | None, str]:
    """解析 `/p <优先级>` 前缀

    Returns:
        (前缀给出的优先级或 None, 去掉前缀后的正文)
    """
    match = _PREFIX_RE.match(text.strip())
    if match is None:
        return None, text.strip()
    priority = normalize_priority(match.group(1))
    if priority is None:
        return None, text.strip()
    return priority, text.strip()[match.end():].strip()


def infer_priority(text: str) -> Priority:
    """根据关键词和表情推断优先级"""
    lowered = text.lower()

    if any(emoji in lowered for emoji in _ALARM_EMOJIS):
        if "urg" in lowered or "crit" in lowered or "crít" in lowered:
            return Priority.URGENT
        return Priority.HIGH

    if _URGENT_RE.search(lowered):
        return Priority.URGENT
    if _HIGH_RE.search(lowered):
        return Priority.HIGH
    if _LOW_RE.search(lowered):
        return Priority.LOW
    return Priority.MEDIUM


def pick_priority(text: str) -> tuple[Priority, str]:
    """前缀优先，否则推断

    Returns:
        (优先级, 去掉前缀后的正文)
    """
    prefixed, body = parse_priority_prefix(text)
    if prefixed is not None:
        return prefixed, body
    return infer_priority(body), body


def build_title(text: str) -> str:
    """任务标题：正文首行截断"""
    first_line = text.strip().splitlines()[0] if text.strip() else ""
    return first_line[:TITLE_MAX_LENGTH] or "Telegram request"
