"""
考试模块路由
交卷、成绩发布与查询
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db
from core.errors import success_response
from core.security import TokenData, ROLE_ADMIN, ROLE_STUDENT, require_roles, require_staff
from utils.sync_queue import SyncQueueStore, get_sync_queue

from .exam_schemas import ExamSubmit, ResultResponse
from .exam_services import ExamService
from .exam_sync import SUBMISSION_COLLECTION

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/exam", tags=["考试"])


@router.post("/{exam_id}/submit", summary="交卷")
async def submit_exam(
    exam_id: int,
    data: ExamSubmit,
    queue: bool = Query(False, description="直接加入离线同步队列"),
    db: AsyncSession = Depends(get_db),
    store: SyncQueueStore = Depends(get_sync_queue),
    user: TokenData = Depends(require_roles(ROLE_STUDENT))
):
    """
    学生交卷

    已交过卷时返回 409；数据库写入失败或 queue=true 时，答卷进入同步队列，待连接恢复后再投递。
    """
    if not queue:
        try:
            outcome = await ExamService.submit_answers(
                db,
                exam_id=exam_id,
                student_id=user.user_id,
                answers=data.answers,
                time_spent=data.time_spent,
                submitted_at=ExamService.parse_submitted_at(data.timestamp)
            )
            await db.commit()
            return success_response(data={"queued": False, **outcome}, message="交卷成功")
        except SQLAlchemyError as e:
            await db.rollback()
            logger.warning(f"⚠️ 交卷写入数据库失败，转入同步队列: {e}")

    payload = {
        "exam_id": exam_id,
        "student_id": user.user_id,
        "answers": data.answers,
        "time_spent": data.time_spent,
        "timestamp": data.timestamp
    }
    sync_id = await store.enqueue(SUBMISSION_COLLECTION, "create", payload)
    return success_response(data={"queued": True, "sync_id": sync_id}, message="答卷已保存，将在连接恢复后同步")


@router.post("/{exam_id}/release-scores", summary="发布成绩")
async def release_scores(
    exam_id: int,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(require_staff())
):
    count = await ExamService.release_scores(db, exam_id, user.user_id, is_admin=user.role == ROLE_ADMIN)
    await db.commit()
    return success_response(data={"released": count}, message="成绩已发布")


@router.get("/{exam_id}/result", summary="查看成绩")
async def get_result(
    exam_id: int,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(require_roles(ROLE_STUDENT))
):
    """成绩发布后学生可见"""
    result = await ExamService.get_student_result(db, exam_id, user.user_id)
    return success_response(data=ResultResponse.model_validate(result).model_dump(mode="json"))
