"""
答卷离线同步处理器
处理集合 respostas 的 create / update / delete
"""

from typing import Any, Dict

from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import BusinessException, ErrorCode
from core.sync_registry import SyncHandler, register_sync_handler

from .exam_services import ExamService

SUBMISSION_COLLECTION = "respostas"


def _require(data: Dict[str, Any], key: str) -> Any:
    if data.get(key) is None:
        raise BusinessException(ErrorCode.VALIDATION_ERROR, f"缺少字段: {key}")
    return data[key]


class SubmissionSyncHandler(SyncHandler):
    """
    答卷同步

    payload 字段: exam_id, answers, time_spent, timestamp（毫秒），
    update / delete 另需 id。
    """

    collection = SUBMISSION_COLLECTION

    async def create(self, db: AsyncSession, data: Dict[str, Any], student_id: int) -> Dict[str, Any]:
        return await ExamService.submit_answers(
            db,
            exam_id=int(_require(data, "exam_id")),
            student_id=student_id,
            answers=data.get("answers") or [],
            time_spent=int(data.get("time_spent") or 0),
            submitted_at=ExamService.parse_submitted_at(data.get("timestamp")),
            synced=True
        )

    async def update(self, db: AsyncSession, data: Dict[str, Any], student_id: int) -> Dict[str, Any]:
        submission = await ExamService.update_submission(
            db,
            submission_id=int(_require(data, "id")),
            student_id=student_id,
            answers=data.get("answers"),
            time_spent=data.get("time_spent")
        )
        return {"type": "update", "id": submission.id}

    async def delete(self, db: AsyncSession, data: Dict[str, Any], student_id: int) -> Dict[str, Any]:
        deleted = await ExamService.delete_submission(db, int(_require(data, "id")), student_id)
        return {"type": "delete", "deleted": deleted}


submission_sync_handler = register_sync_handler(SubmissionSyncHandler())
