"""
系统事件处理器
"""

import logging

from core.events import event_bus, Events

logger = logging.getLogger(__name__)


async def on_sync_dead_letter(event):
    """
    同步项超过重试上限后通知运维
    失败项保留在 failed 目录中，需要人工处理
    """
    data = event.data or {}
    logger.warning(
        f"🚫 同步项进入失败区: {data.get('collection')}.{data.get('action')} "
        f"(id={data.get('id')}, 尝试 {data.get('attempts')} 次, 原因: {data.get('reason')})"
    )


def register_event_handlers():
    """注册所有事件处理器"""
    event_bus.subscribe(Events.SYNC_DEAD_LETTER, on_sync_dead_letter)
    logger.info("已注册系统事件处理器")
