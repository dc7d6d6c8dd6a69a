"""
同步处理器注册表
将 (集合, 动作) 形式的离线同步请求分派到对应的业务处理器
"""

import logging
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import UnsupportedSyncError

logger = logging.getLogger(__name__)

SYNC_ACTIONS = ("create", "update", "delete")


class SyncHandler:
    """
    集合同步处理器基类

    子类设置 collection 并覆盖需要支持的动作；
    未覆盖的动作会抛出 UnsupportedSyncError。
    """

    collection: str = ""

    async def create(self, db: AsyncSession, data: Dict[str, Any], student_id: int) -> Dict[str, Any]:
        raise UnsupportedSyncError(self.collection, "create")

    async def update(self, db: AsyncSession, data: Dict[str, Any], student_id: int) -> Dict[str, Any]:
        raise UnsupportedSyncError(self.collection, "update")

    async def delete(self, db: AsyncSession, data: Dict[str, Any], student_id: int) -> Dict[str, Any]:
        raise UnsupportedSyncError(self.collection, "delete")

    async def apply(self, db: AsyncSession, action: str, data: Dict[str, Any], student_id: int) -> Dict[str, Any]:
        """按动作分派"""
        if action not in SYNC_ACTIONS:
            raise UnsupportedSyncError(self.collection, action)
        method = getattr(self, action)
        return await method(db, data, student_id)


_handlers: Dict[str, SyncHandler] = {}


def register_sync_handler(handler: SyncHandler) -> SyncHandler:
    """注册同步处理器（同一集合重复注册时覆盖）"""
    if not handler.collection:
        raise ValueError("同步处理器必须指定 collection")
    _handlers[handler.collection] = handler
    logger.debug(f"注册同步处理器: {handler.collection}")
    return handler


def unregister_sync_handler(collection: str):
    _handlers.pop(collection, None)


def get_sync_handler(collection: str) -> SyncHandler:
    handler = _handlers.get(collection)
    if handler is None:
        raise UnsupportedSyncError(collection)
    return handler


def is_supported(collection: str) -> bool:
    return collection in _handlers


def supported_collections() -> List[str]:
    return sorted(_handlers)


async def apply_sync(
    db: AsyncSession,
    collection: str,
    action: str,
    data: Dict[str, Any],
    student_id: int
) -> Dict[str, Any]:
    """将一个同步请求应用到权威数据库"""
    handler = get_sync_handler(collection)
    logger.info(f"🔄 应用同步: {collection}.{action} (student={student_id})")
    return await handler.apply(db, action, data, student_id)
