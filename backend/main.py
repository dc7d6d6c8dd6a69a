"""
Provas Online - 主入口
在线考试后端：离线同步队列、连接状态检测与定时备份
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from core.config import get_settings
from core.database import init_db, close_db
from core.events import event_bus, Events
from core.event_handlers import register_event_handlers
from core.middleware import RequestLoggingMiddleware
from core.errors import register_exception_handlers
from core.scheduler import get_scheduler
from core.connectivity import get_connectivity_monitor
from utils.sync_dispatcher import get_sync_dispatcher
from utils.backup import get_backup_engine
from routers import health, sync, backup
from modules.exam.exam_router import router as exam_router

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s"
)
logger = logging.getLogger(__name__)

# 减少第三方库的日志输出
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("aiosqlite").setLevel(logging.WARNING)

settings = get_settings()


async def schedule_jobs():
    """注册后台任务：连接探测、队列处理、每日备份"""
    current = get_settings()
    scheduler = get_scheduler()
    monitor = get_connectivity_monitor()
    dispatcher = get_sync_dispatcher()
    backup_engine = get_backup_engine()

    scheduler.start()
    await scheduler.schedule_periodic(
        monitor.probe,
        interval_seconds=current.connectivity_check_interval,
        name="connectivity_probe"
    )
    await scheduler.schedule_periodic(
        dispatcher.drain,
        interval_seconds=current.sync_drain_interval,
        name="sync_drain",
        initial_delay=current.sync_drain_interval
    )
    await scheduler.schedule_daily(
        backup_engine.backup_collections,
        hour=current.backup_hour,
        minute=current.backup_minute,
        name="daily_backup"
    )
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    current_settings = get_settings()
    logger.info(f"🚀 正在启动 {current_settings.app_name} v{current_settings.app_version}...")

    await init_db()
    register_event_handlers()

    scheduler = None
    if current_settings.scheduler_enabled:
        scheduler = await schedule_jobs()
        logger.info("✅ 后台任务已启动")
    else:
        logger.info("ℹ️ 后台任务已禁用")

    event_bus.emit(Events.SYSTEM_STARTUP, "main", {"version": current_settings.app_version})
    logger.info(f"✅ {current_settings.app_name} 启动完成")

    yield

    logger.info("正在关闭...")
    event_bus.emit(Events.SYSTEM_SHUTDOWN, "main")
    if scheduler is not None:
        await scheduler.stop()
    await close_db()
    logger.info("👋 已关闭")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan
)

app.add_middleware(RequestLoggingMiddleware, slow_request_threshold=2.0)
register_exception_handlers(app)

app.include_router(health.router)
app.include_router(sync.router)
app.include_router(backup.router)
app.include_router(exam_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)
