# -*- coding: utf-8 -*-
"""
时间工具模块
队列和备份文件统一使用 UTC 时间
"""

import time
from datetime import datetime, timezone
from typing import Optional


def get_now() -> datetime:
    """获取当前 UTC 时间（带时区信息）"""
    return datetime.now(timezone.utc)


def epoch_millis(dt: Optional[datetime] = None) -> int:
    """转换为毫秒时间戳，默认当前时间"""
    if dt is None:
        return int(time.time() * 1000)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def from_epoch_millis(value: int) -> datetime:
    """毫秒时间戳转换为 UTC 时间"""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def iso_utc(dt: Optional[datetime] = None) -> str:
    """
    格式化为毫秒精度的 ISO-8601 UTC 字符串

    例如: 2026-10-18T02:00:00.123Z
    """
    dt = dt or get_now()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def file_stamp(iso_text: str) -> str:
    """将 ISO 时间中的 ':' 和 '.' 替换为 '-'，用于文件名"""
    return iso_text.replace(":", "-").replace(".", "-")
