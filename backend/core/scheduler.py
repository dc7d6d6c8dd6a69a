"""
后台任务调度器
用于定期执行任务，如连接检测、同步队列处理和每日备份
"""

import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable, Optional
from utils.timezone import get_now

logger = logging.getLogger(__name__)

AsyncJob = Callable[[], Awaitable[object]]


class Scheduler:
    """简单任务调度器（基于 asyncio 任务，与 HTTP 服务共享事件循环）"""

    def __init__(self):
        self.tasks: dict[str, asyncio.Task] = {}
        self.running = False

    async def schedule_periodic(
        self,
        func: AsyncJob,
        interval_seconds: float,
        name: str = "periodic_task",
        max_retries: int = 3,
        initial_delay: float = 0
    ):
        """
        调度定期任务

        Args:
            func: 要执行的异步函数
            interval_seconds: 执行间隔（秒）
            name: 任务名称（同名任务会替换旧任务）
            max_retries: 连续失败时的最大快速重试次数
            initial_delay: 首次执行前的等待时间（秒）
        """
        async def periodic_task():
            failures = 0
            if initial_delay:
                await asyncio.sleep(initial_delay)
            while self.running:
                try:
                    logger.debug(f"执行定期任务: {name}")
                    await func()
                    failures = 0
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    failures += 1
                    logger.error(f"定期任务执行失败 {name}（连续第 {failures} 次）: {e}", exc_info=True)
                    if failures <= max_retries:
                        retry_delay = min(30, 2 ** failures)
                        logger.info(f"定期任务 {name} 将在 {retry_delay}s 后重试")
                        await asyncio.sleep(retry_delay)
                        continue
                    logger.warning(f"定期任务 {name} 连续失败 {failures} 次，等待下次正常周期")
                    failures = 0

                await asyncio.sleep(interval_seconds)

        self._add_task(name, periodic_task())
        logger.debug(f"已调度定期任务: {name}, 间隔: {interval_seconds}秒")

    async def schedule_daily(
        self,
        func: AsyncJob,
        hour: int = 0,
        minute: int = 0,
        name: str = "daily_task"
    ):
        """
        调度每日任务

        Args:
            func: 要执行的异步函数
            hour: 执行小时（0-23）
            minute: 执行分钟（0-59）
            name: 任务名称
        """
        async def daily_task():
            while self.running:
                try:
                    wait_seconds = seconds_until(hour, minute)
                    logger.debug(f"每日任务 {name} 将在 {wait_seconds:.0f} 秒后执行")
                    await asyncio.sleep(wait_seconds)

                    if not self.running:
                        break

                    logger.info(f"执行每日任务: {name}")
                    await func()
                    # 避免在同一分钟内重复执行
                    await asyncio.sleep(60)
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    logger.error(f"每日任务执行失败 {name}: {e}", exc_info=True)
                    await asyncio.sleep(3600)

        self._add_task(name, daily_task())
        logger.debug(f"已调度每日任务: {name}, 执行时间: {hour:02d}:{minute:02d}")

    def _add_task(self, name: str, coro):
        old = self.tasks.pop(name, None)
        if old is not None:
            old.cancel()
        self.tasks[name] = asyncio.create_task(coro, name=name)

    def start(self):
        """启动调度器"""
        self.running = True
        logger.debug("任务调度器已启动")

    async def stop(self, timeout: float = 10.0):
        """
        停止调度器并取消所有任务

        Args:
            timeout: 等待任务退出的超时时间（秒）
        """
        self.running = False
        if not self.tasks:
            logger.debug("任务调度器已停止（无活跃任务）")
            return

        tasks = list(self.tasks.values())
        for task in tasks:
            task.cancel()

        try:
            await asyncio.wait_for(
                asyncio.gather(*tasks, return_exceptions=True),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"调度器停止超时（{timeout}s），强制取消剩余任务")

        self.tasks.clear()
        logger.debug("任务调度器已停止")


def seconds_until(hour: int, minute: int) -> float:
    """计算距离下一次 hour:minute 的秒数"""
    now = get_now()
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


# 全局调度器实例
_scheduler: Optional[Scheduler] = None


def get_scheduler() -> Scheduler:
    """获取调度器实例"""
    global _scheduler
    if _scheduler is None:
        _scheduler = Scheduler()
    return _scheduler
