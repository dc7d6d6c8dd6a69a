"""
离线同步队列
每个待同步项保存为队列目录下的一个 JSON 文件，失败项移入 failed 子目录
"""

import os
import json
import secrets
import logging
from pathlib import Path
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import aiofiles

from core.config import get_settings
from core.errors import UnsupportedSyncError
from core.sync_registry import SYNC_ACTIONS, is_supported
from schemas.sync import SyncItem, SyncQueueStatus
from utils.timezone import epoch_millis, iso_utc

logger = logging.getLogger(__name__)

ITEM_PREFIX = "sync-"
ITEM_SUFFIX = ".json"
DEAD_LETTER_DIR = "failed"


def item_filename(sync_id: str) -> str:
    return f"{ITEM_PREFIX}{sync_id}{ITEM_SUFFIX}"


def is_item_file(name: str) -> bool:
    return name.startswith(ITEM_PREFIX) and name.endswith(ITEM_SUFFIX)


class SyncQueueStore:
    """同步队列存储"""

    def __init__(self, queue_dir: Union[str, Path, None] = None):
        self.queue_dir = Path(queue_dir or get_settings().sync_queue_dir)
        self.dead_letter_dir = self.queue_dir / DEAD_LETTER_DIR
        self.queue_dir.mkdir(parents=True, exist_ok=True)

    # ==================== 写入 ====================

    async def enqueue(self, collection: str, action: str, payload: Dict[str, Any]) -> str:
        """
        将一个操作加入同步队列

        Args:
            collection: 目标集合名称
            action: create / update / delete
            payload: 执行操作所需的数据

        Returns:
            同步项ID（16位十六进制）

        写入失败时异常直接抛给调用方。
        """
        if action not in SYNC_ACTIONS:
            raise UnsupportedSyncError(collection, action)
        if not is_supported(collection):
            raise UnsupportedSyncError(collection)

        sync_id = secrets.token_hex(8)
        item = SyncItem(
            id=sync_id,
            collection=collection,
            action=action,
            payload=payload,
            timestamp=epoch_millis(),
            attempts=0,
            status="pending"
        )
        self.queue_dir.mkdir(parents=True, exist_ok=True)
        await self.save(self.queue_dir / item_filename(sync_id), item)

        logger.info(f"📋 已加入同步队列: {collection}.{action} ({sync_id})")
        return sync_id

    async def save(self, path: Path, item: SyncItem):
        """覆盖写入同步项文件"""
        content = json.dumps(item.to_file_dict(), ensure_ascii=False, indent=2)
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(content)

    # ==================== 读取 ====================

    async def load(self, path: Path) -> SyncItem:
        """读取同步项（文件损坏时抛出 ValueError）"""
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            content = await f.read()
        try:
            return SyncItem.model_validate(json.loads(content))
        except ValueError as e:
            raise ValueError(f"无效的同步项文件 {path.name}: {e}") from e

    async def list_pending(self) -> List[Path]:
        """
        列出待同步项文件
        按入队时间先进先出排序，无法读取的文件排在最后
        """
        if not self.queue_dir.exists():
            return []

        paths = [
            self.queue_dir / name
            for name in os.listdir(self.queue_dir)
            if is_item_file(name) and (self.queue_dir / name).is_file()
        ]

        keyed = []
        for path in paths:
            try:
                item = await self.load(path)
                keyed.append(((0, item.timestamp, item.id), path))
            except (OSError, ValueError):
                keyed.append(((1, 0, path.name), path))
        keyed.sort(key=lambda pair: pair[0])
        return [path for _, path in keyed]

    # ==================== 删除 / 移动 ====================

    def remove(self, path: Path):
        """同步成功后删除文件"""
        path.unlink()

    def move_to_dead_letter(self, path: Path) -> Path:
        """移入失败区，保留最后状态"""
        self.dead_letter_dir.mkdir(parents=True, exist_ok=True)
        target = self.dead_letter_dir / path.name
        os.replace(path, target)
        return target

    # ==================== 失败区 ====================

    async def list_dead_letter(self) -> List[Dict[str, Any]]:
        """列出失败区中的同步项"""
        if not self.dead_letter_dir.exists():
            return []

        items = []
        for name in sorted(os.listdir(self.dead_letter_dir)):
            if not is_item_file(name):
                continue
            path = self.dead_letter_dir / name
            try:
                items.append((await self.load(path)).to_file_dict())
            except (OSError, ValueError) as e:
                items.append({"file": name, "error": str(e)})
        return items

    async def requeue_dead_letter(self, sync_id: str) -> bool:
        """
        将失败项重新放回队列（重置尝试次数）

        Returns:
            是否找到并重新入队
        """
        source = self.dead_letter_dir / item_filename(sync_id)
        if not source.is_file():
            return False

        item = await self.load(source)
        item.attempts = 0
        item.last_attempt = None
        item.status = "pending"
        await self.save(self.queue_dir / source.name, item)
        source.unlink()
        logger.info(f"♻️ 失败项已重新入队: {item.collection}.{item.action} ({sync_id})")
        return True

    # ==================== 状态 ====================

    def status(self, online: bool = True, last_check: Optional[datetime] = None) -> Dict[str, Any]:
        """
        队列状态（不会抛出异常）
        文件系统出错时返回 pending=0, online=False 并附带错误信息
        """
        checked = iso_utc(last_check)
        try:
            pending = 0
            if self.queue_dir.exists():
                pending = sum(1 for name in os.listdir(self.queue_dir) if is_item_file(name))
            status = SyncQueueStatus(pending=pending, online=online, lastCheck=checked)
        except Exception as e:
            logger.warning(f"读取同步队列状态失败: {e}")
            status = SyncQueueStatus(pending=0, online=False, lastCheck=checked, error=str(e))
        return status.model_dump(exclude_none=True)


_sync_queue: Optional[SyncQueueStore] = None


def get_sync_queue() -> SyncQueueStore:
    """获取同步队列实例"""
    global _sync_queue
    if _sync_queue is None:
        _sync_queue = SyncQueueStore()
    return _sync_queue
