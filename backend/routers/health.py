"""
健康检查路由
连接状态监视器探测的就是 /api/health
"""

import time
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.connectivity import ConnectivityMonitor, get_connectivity_monitor
from core.database import get_db
from utils.sync_queue import SyncQueueStore, get_sync_queue
from utils.timezone import iso_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/health", tags=["健康检查"])

# 系统启动时间
_start_time = datetime.now(timezone.utc)


class ComponentHealth(BaseModel):
    """组件健康状态"""
    status: str
    message: Optional[str] = None
    latency_ms: Optional[float] = None


async def check_database(db: AsyncSession) -> ComponentHealth:
    """检查数据库连接"""
    start = time.time()
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"数据库健康检查失败: {e}")
        return ComponentHealth(status="unhealthy", message=f"数据库连接失败: {e}")

    latency = (time.time() - start) * 1000
    return ComponentHealth(status="healthy", message="数据库连接正常", latency_ms=round(latency, 2))


@router.get("", summary="健康检查")
async def health_check(
    db: AsyncSession = Depends(get_db),
    store: SyncQueueStore = Depends(get_sync_queue),
    monitor: ConnectivityMonitor = Depends(get_connectivity_monitor)
):
    """
    数据库不可用时返回 503，同步客户端据此判定离线
    syncQueue 为本地同步队列状态，不影响健康判定
    """
    settings = get_settings()
    database = await check_database(db)
    healthy = database.status == "healthy"

    content = {
        "status": "healthy" if healthy else "unhealthy",
        "version": settings.app_version,
        "timestamp": iso_utc(),
        "uptime_seconds": round((datetime.now(timezone.utc) - _start_time).total_seconds(), 2),
        "components": {
            "database": database.model_dump(),
            "syncQueue": store.status(online=monitor.online, last_check=monitor.last_check)
        }
    }
    return JSONResponse(status_code=200 if healthy else 503, content=content)


@router.get("/live", summary="存活检查")
async def liveness():
    return {"status": "alive"}
