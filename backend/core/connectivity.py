"""
连接状态检测
定期探测权威服务器的健康检查端点，维护在线/离线状态
"""

import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

import httpx

from core.config import get_settings
from core.events import event_bus, Events
from utils.timezone import get_now

logger = logging.getLogger(__name__)

OnlineListener = Callable[[], Awaitable[object]]


class ConnectivityMonitor:
    """
    连接状态监视器

    在线状态由实例持有并注入到同步调度器，不使用进程级全局变量。
    启动时乐观地认为在线，不跨进程重启持久化。
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.health_check_timeout
        self._transport = transport
        self.online = True
        self.last_check: Optional[datetime] = None
        self._listeners: List[OnlineListener] = []

    @property
    def health_url(self) -> str:
        return f"{self.base_url}/api/health"

    def add_listener(self, listener: OnlineListener):
        """注册在线回调（每次探测成功后调用）"""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def set_online(self, value: bool):
        """手动设置在线状态"""
        self._update(value)

    async def probe(self) -> bool:
        """
        探测一次健康检查端点

        2xx 视为在线并触发回调；网络错误、超时或非 2xx 视为离线。
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.health_url)
            reachable = response.is_success
            if not reachable:
                logger.debug(f"健康检查返回 {response.status_code}")
        except httpx.HTTPError as e:
            logger.debug(f"健康检查失败: {e}")
            reachable = False

        self.last_check = get_now()
        self._update(reachable)

        if reachable:
            await self._notify_online()
        return reachable

    def _update(self, value: bool):
        if value == self.online:
            return
        self.online = value
        if value:
            logger.info("✅ 服务器连接已恢复，切换到在线模式")
        else:
            logger.warning("⚠️ 无法连接服务器，切换到离线模式")
        event_bus.emit(Events.CONNECTIVITY_CHANGED, "connectivity", {"online": value})

    async def _notify_online(self):
        for listener in list(self._listeners):
            try:
                await listener()
            except Exception as e:
                logger.error(f"在线回调执行失败: {e}", exc_info=True)


_monitor: Optional[ConnectivityMonitor] = None


def get_connectivity_monitor() -> ConnectivityMonitor:
    """获取连接状态监视器实例"""
    global _monitor
    if _monitor is None:
        _monitor = ConnectivityMonitor()
    return _monitor
