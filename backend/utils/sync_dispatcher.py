"""
同步调度器
逐个处理同步队列中的项目，投递到权威服务器并执行重试 / 失败策略

状态流转：
    pending(k) --成功--> 删除
    pending(k) --失败, k+1<上限--> pending(k+1)
    pending(k) --失败, k+1>=上限--> failed（终态）
    pending(k>=上限) --> failed（终态，不再投递）
"""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

import httpx

from core.config import get_settings
from core.connectivity import ConnectivityMonitor, get_connectivity_monitor
from core.events import event_bus, Event, Events
from core.security import create_service_token
from core.sync_registry import is_supported
from schemas.sync import SyncItem
from utils.sync_queue import SyncQueueStore, get_sync_queue
from utils.timezone import epoch_millis

logger = logging.getLogger(__name__)

DeadLetterCallback = Callable[[SyncItem, str], Awaitable[object]]


class SyncOutcome(str, Enum):
    """单个同步项的处理结果"""
    DELIVERED = "delivered"  # 投递成功，已从队列删除
    RETRY = "retry"  # 投递失败，等待下次处理
    DEAD_LETTER = "dead_letter"  # 超过重试上限，已移入失败区
    UNSUPPORTED = "unsupported"  # 集合没有同步处理器，文件保持不变
    INVALID = "invalid"  # 文件损坏，已移入失败区
    MISSING = "missing"  # 文件已被其他流程删除
    ERROR = "error"  # 处理过程中出现意外异常


@dataclass
class DrainReport:
    """一次队列处理的汇总"""
    skipped: bool = False
    reason: Optional[str] = None
    processed: int = 0
    outcomes: Dict[str, int] = field(default_factory=dict)

    def record(self, outcome: SyncOutcome):
        self.processed += 1
        self.outcomes[outcome.value] = self.outcomes.get(outcome.value, 0) + 1

    def to_dict(self) -> dict:
        return {
            "skipped": self.skipped,
            "reason": self.reason,
            "processed": self.processed,
            "outcomes": dict(self.outcomes)
        }


class SyncDispatcher:
    """同步调度器"""

    def __init__(
        self,
        store: SyncQueueStore,
        monitor: ConnectivityMonitor,
        api_base_url: Optional[str] = None,
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        settings = get_settings()
        self.store = store
        self.monitor = monitor
        self.api_base_url = (api_base_url or settings.api_base_url).rstrip("/")
        self.max_attempts = max_attempts or settings.sync_max_attempts
        self.timeout = timeout if timeout is not None else settings.sync_request_timeout
        self._transport = transport
        self._lock = asyncio.Lock()
        self._dead_letter_callbacks: List[DeadLetterCallback] = []

    def on_dead_letter(self, callback: DeadLetterCallback):
        """注册失败通知回调 callback(item, reason)"""
        self._dead_letter_callbacks.append(callback)

    async def drain(self) -> DrainReport:
        """
        处理一轮同步队列

        离线时不发起任何请求；已有一轮在执行时直接跳过。
        """
        if not self.monitor.online:
            return DrainReport(skipped=True, reason="offline")
        if self._lock.locked():
            logger.debug("同步队列正在处理中，跳过本轮")
            return DrainReport(skipped=True, reason="busy")

        report = DrainReport()
        async with self._lock:
            paths = await self.store.list_pending()
            if not paths:
                return report

            logger.info(f"🔄 处理同步队列: {len(paths)} 项")
            for path in paths:
                try:
                    outcome = await self.process_item(path)
                except Exception as e:
                    logger.error(f"❌ 处理同步项异常 {path.name}: {e}", exc_info=True)
                    outcome = SyncOutcome.ERROR
                report.record(outcome)

        logger.info(f"同步队列处理完成: {report.outcomes}")
        return report

    async def process_item(self, path: Path) -> SyncOutcome:
        """处理单个同步项，失败只影响本项"""
        try:
            item = await self.store.load(path)
        except FileNotFoundError:
            logger.debug(f"同步项已不存在: {path.name}")
            return SyncOutcome.MISSING
        except (OSError, ValueError) as e:
            logger.error(f"❌ 同步项文件损坏，移入失败区: {e}")
            self.store.move_to_dead_letter(path)
            await self._notify_dead_letter(None, path, "invalid")
            return SyncOutcome.INVALID

        if item.attempts >= self.max_attempts:
            logger.warning(f"❌ 同步项 {item.id} 已超过重试上限，移入失败区")
            self.store.move_to_dead_letter(path)
            await self._notify_dead_letter(item, path, "max_attempts")
            return SyncOutcome.DEAD_LETTER

        if not is_supported(item.collection):
            logger.error(f"❌ 集合 {item.collection} 不支持同步，保留同步项 {item.id}")
            return SyncOutcome.UNSUPPORTED

        item.attempts += 1
        item.last_attempt = epoch_millis()

        if await self.deliver(item):
            self.store.remove(path)
            logger.info(f"✅ 已同步: {item.collection}.{item.action} ({item.id})")
            event_bus.emit(Events.SYNC_DELIVERED, "sync", {"id": item.id, "collection": item.collection})
            return SyncOutcome.DELIVERED

        await self.store.save(path, item)
        logger.warning(f"⚠️ 同步失败，尝试 {item.attempts}/{self.max_attempts}: {item.collection}.{item.action} ({item.id})")

        if item.attempts >= self.max_attempts:
            self.store.move_to_dead_letter(path)
            await self._notify_dead_letter(item, path, "max_attempts")
            return SyncOutcome.DEAD_LETTER
        return SyncOutcome.RETRY

    async def deliver(self, item: SyncItem) -> bool:
        """投递到 POST {api}/api/sync/{collection}，2xx 视为成功"""
        url = f"{self.api_base_url}/api/sync/{item.collection}"
        body = {"action": item.action, "data": item.payload, "syncId": item.id}
        headers = {"Authorization": f"Bearer {create_service_token()}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.debug(f"同步请求失败 {item.id}: {e}")
            return False

        if not response.is_success:
            logger.debug(f"同步请求被拒绝 {item.id}: HTTP {response.status_code}")
        return response.is_success

    async def _notify_dead_letter(self, item: Optional[SyncItem], path: Path, reason: str):
        data = item.to_file_dict() if item else {"file": path.name}
        data["reason"] = reason
        await event_bus.publish(Event(name=Events.SYNC_DEAD_LETTER, source="sync", data=data))

        if item is None:
            return
        for callback in list(self._dead_letter_callbacks):
            try:
                await callback(item, reason)
            except Exception as e:
                logger.error(f"失败通知回调执行失败: {e}", exc_info=True)


_dispatcher: Optional[SyncDispatcher] = None


def get_sync_dispatcher() -> SyncDispatcher:
    """获取同步调度器实例（首次调用时注册为在线回调）"""
    global _dispatcher
    if _dispatcher is None:
        monitor = get_connectivity_monitor()
        _dispatcher = SyncDispatcher(get_sync_queue(), monitor)
        monitor.add_listener(_dispatcher.drain)
    return _dispatcher
