"""
工具函数模块
"""

import math
import secrets
from datetime import datetime, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    """当前 UTC 时间（带时区）"""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    解析客户端上报的时间

    支持 ISO 8601 字符串（含 "Z" 后缀）、毫秒时间戳和 datetime，
    无时区信息的按 UTC 处理。无法解析时返回 None。
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            dt = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def days_inactive(last_used: Any, now: Optional[datetime] = None) -> float:
    """
    距上次使用的整天数

    从未使用或时间无法解析时返回 math.inf。
    """
    last = parse_timestamp(last_used)
    if last is None:
        return math.inf
    now = now or utc_now()
    return math.floor((now - last).total_seconds() / 86400)


def generate_token(length: int = 32) -> str:
    """
    生成随机 Token（用于 discovery_key / admin_token）

    Args:
        length: Token 长度

    Returns:
        URL 安全的随机字符串
    """
    return secrets.token_urlsafe(length)

