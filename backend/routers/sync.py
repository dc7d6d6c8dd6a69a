"""
离线同步路由
接收同步调度器投递的操作，并提供队列状态与运维接口
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from core.connectivity import ConnectivityMonitor, get_connectivity_monitor
from core.database import get_db
from core.errors import BusinessException, ErrorCode, NotFoundException, success_response
from core.security import TokenData, ROLE_SYSTEM, get_current_user, require_admin, require_staff
from core.sync_registry import apply_sync
from schemas.sync import SyncRequest
from utils.sync_dispatcher import SyncDispatcher, get_sync_dispatcher
from utils.sync_queue import SyncQueueStore, get_sync_queue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["离线同步"])


def resolve_student_id(user: TokenData, data: dict) -> int:
    """
    确定操作所属学生

    内部 system 角色代为投递时取 payload 中的 student_id，其余情况为令牌用户本人。
    """
    if user.role != ROLE_SYSTEM:
        return user.user_id
    student_id = data.get("student_id")
    if student_id is None:
        raise BusinessException(ErrorCode.VALIDATION_ERROR, "同步数据缺少 student_id")
    return int(student_id)


@router.get("/status", summary="同步队列状态")
async def sync_status(
    store: SyncQueueStore = Depends(get_sync_queue),
    monitor: ConnectivityMonitor = Depends(get_connectivity_monitor),
    user: TokenData = Depends(get_current_user)
):
    status = store.status(online=monitor.online, last_check=monitor.last_check)
    status["user"] = user.username
    return success_response(data=status)


@router.post("/queue/drain", summary="立即处理同步队列")
async def drain_queue(
    dispatcher: SyncDispatcher = Depends(get_sync_dispatcher),
    user: TokenData = Depends(require_staff())
):
    report = await dispatcher.drain()
    return success_response(data=report.to_dict())


@router.get("/queue/failed", summary="失败的同步项")
async def list_failed(
    store: SyncQueueStore = Depends(get_sync_queue),
    user: TokenData = Depends(require_admin())
):
    items = await store.list_dead_letter()
    return success_response(data={"items": items, "total": len(items)})


@router.post("/queue/failed/{sync_id}/retry", summary="重新入队失败项")
async def retry_failed(
    sync_id: str,
    store: SyncQueueStore = Depends(get_sync_queue),
    user: TokenData = Depends(require_admin())
):
    if not await store.requeue_dead_letter(sync_id):
        raise NotFoundException("同步项", sync_id)
    logger.info(f"管理员 {user.username} 重新入队同步项 {sync_id}")
    return success_response(data={"id": sync_id}, message="已重新加入同步队列")


@router.post("/{collection}", summary="应用同步操作")
async def apply_sync_operation(
    collection: str,
    request: SyncRequest,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user)
):
    """将一个离线操作写入数据库，2xx 表示同步成功"""
    student_id = resolve_student_id(user, request.data)
    result = await apply_sync(db, collection, request.action, request.data, student_id)
    await db.commit()
    logger.info(f"✅ 同步完成: {collection}.{request.action} syncId={request.syncId}")
    return success_response(data=result, message="同步成功")
