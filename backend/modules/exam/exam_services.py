"""
考试模块业务逻辑
交卷、自动阅卷、成绩发布
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import AppException, ErrorCode, NotFoundException, PermissionException
from models import User
from utils.timezone import get_now, from_epoch_millis

from .exam_models import Exam, ExamSubmission, ExamResult

logger = logging.getLogger(__name__)


@dataclass
class GradeOutcome:
    """自动阅卷结果"""
    correct_count: int = 0
    total: int = 0
    score: float = 0.0
    percentage: float = 0.0
    details: List[Dict[str, Any]] = field(default_factory=list)


def _answer_at(answers: Any, index: int) -> Optional[str]:
    """取第 index 题的学生答案（列表按位置，字典按字符串下标）"""
    if isinstance(answers, list):
        value = answers[index] if index < len(answers) else None
    elif isinstance(answers, dict):
        value = answers.get(str(index), answers.get(index))
    else:
        value = None
    return value if isinstance(value, str) else None


class ExamService:
    """考试服务"""

    @staticmethod
    def grade_answers(questions: List[Dict[str, Any]], answers: Any) -> GradeOutcome:
        """
        按标准答案判分

        学生答案去空格后不区分大小写地与 chr(65 + correct_answer) 比较；
        满分 10 分，分数 = 答对数 / 总题数 * 10。
        """
        outcome = GradeOutcome(total=len(questions or []))

        for index, question in enumerate(questions or []):
            correct_letter = chr(65 + int(question.get("correct_answer", 0)))
            raw = _answer_at(answers, index)
            student_letter = raw.strip().upper() if raw else None
            correct = student_letter == correct_letter
            if correct:
                outcome.correct_count += 1

            outcome.details.append({
                "number": index + 1,
                "question": question.get("question"),
                "student_answer": student_letter,
                "correct_answer": correct_letter,
                "correct": correct,
                "explanation": question.get("explanation")
            })

        if outcome.total:
            ratio = outcome.correct_count / outcome.total
            outcome.score = ratio * 10
            outcome.percentage = round(ratio * 100, 1)
        return outcome

    @staticmethod
    async def get_exam(db: AsyncSession, exam_id: int) -> Exam:
        exam = await db.get(Exam, exam_id)
        if not exam:
            raise AppException(ErrorCode.EXAM_NOT_FOUND)
        return exam

    @staticmethod
    async def get_submission(db: AsyncSession, exam_id: int, student_id: int) -> Optional[ExamSubmission]:
        query = select(ExamSubmission).where(
            ExamSubmission.exam_id == exam_id,
            ExamSubmission.student_id == student_id
        )
        return (await db.execute(query)).scalars().first()

    @staticmethod
    async def get_result(db: AsyncSession, exam_id: int, student_id: int) -> Optional[ExamResult]:
        query = select(ExamResult).where(
            ExamResult.exam_id == exam_id,
            ExamResult.student_id == student_id
        ).order_by(ExamResult.id.desc())
        return (await db.execute(query)).scalars().first()

    @staticmethod
    async def submit_answers(
        db: AsyncSession,
        exam_id: int,
        student_id: int,
        answers: Any,
        time_spent: int = 0,
        submitted_at: Optional[datetime] = None,
        synced: bool = False
    ) -> Dict[str, Any]:
        """
        保存答卷并自动阅卷（成绩默认未发布）

        直接交卷时已有答卷会被拒绝（RESOURCE_CONFLICT）；
        离线同步（synced=True）时覆盖已有答卷并重新阅卷，返回 type=update。
        """
        now = get_now()
        submitted_at = submitted_at or now
        exam = await ExamService.get_exam(db, exam_id)

        existing = await ExamService.get_submission(db, exam_id, student_id)
        if existing:
            if not synced:
                raise AppException(ErrorCode.RESOURCE_CONFLICT, "你已经完成过此试卷")
            existing.answers = answers
            existing.time_spent = time_spent
            existing.submitted_at = submitted_at
            existing.synced_at = now
            await ExamService._save_result(db, exam, existing, now)
            logger.info(f"答卷已覆盖并重新阅卷: exam={exam_id}, student={student_id}")
            return {"type": "update", "id": existing.id}

        submission = ExamSubmission(
            exam_id=exam_id,
            student_id=student_id,
            answers=answers,
            time_spent=time_spent,
            submitted_at=submitted_at,
            status="submitted",
            score_released=False,
            synced_at=now if synced else None
        )
        db.add(submission)
        await db.flush()

        await ExamService._save_result(db, exam, submission, now if synced else None)
        return {"type": "create", "id": submission.id}

    @staticmethod
    async def _save_result(
        db: AsyncSession,
        exam: Exam,
        submission: ExamSubmission,
        synced_at: Optional[datetime]
    ) -> ExamResult:
        """按答卷当前答案阅卷，写入或刷新对应的成绩记录"""
        outcome = ExamService.grade_answers(exam.questions, submission.answers)

        result = (await db.execute(
            select(ExamResult).where(ExamResult.submission_id == submission.id)
        )).scalars().first()
        if result is None:
            result = await ExamService.get_result(db, exam.id, submission.student_id)
        if result is None:
            student = await db.get(User, submission.student_id)
            result = ExamResult(
                exam_id=exam.id,
                student_id=submission.student_id,
                student_name=(student.name or student.username) if student else None,
                score_released=False
            )
            db.add(result)

        result.submission_id = submission.id
        result.answers = submission.answers
        result.score = outcome.score
        result.correct_count = outcome.correct_count
        result.total = outcome.total
        result.percentage = outcome.percentage
        result.time_spent = submission.time_spent
        result.details = outcome.details
        if synced_at is not None:
            result.synced_at = synced_at
        await db.flush()

        logger.info(
            f"📊 阅卷完成: exam={exam.id}, student={submission.student_id}, "
            f"{outcome.correct_count}/{outcome.total}, score={outcome.score:.2f}"
        )
        return result

    @staticmethod
    async def update_submission(
        db: AsyncSession,
        submission_id: int,
        student_id: int,
        answers: Any = None,
        time_spent: Optional[int] = None
    ) -> ExamSubmission:
        """更新答卷（仅本人），答案变化时重新阅卷"""
        submission = await db.get(ExamSubmission, submission_id)
        if not submission:
            raise NotFoundException("答卷", submission_id)
        if submission.student_id != student_id:
            raise PermissionException("只能修改自己的答卷")

        now = get_now()
        if answers is not None:
            submission.answers = answers
        if time_spent is not None:
            submission.time_spent = time_spent
        submission.synced_at = now
        await db.flush()

        if answers is not None or time_spent is not None:
            exam = await ExamService.get_exam(db, submission.exam_id)
            await ExamService._save_result(db, exam, submission, now)
        return submission

    @staticmethod
    async def delete_submission(db: AsyncSession, submission_id: int, student_id: int) -> int:
        """删除本人答卷，返回删除条数"""
        result = await db.execute(
            delete(ExamSubmission).where(
                ExamSubmission.id == submission_id,
                ExamSubmission.student_id == student_id
            )
        )
        return result.rowcount or 0

    @staticmethod
    async def release_scores(db: AsyncSession, exam_id: int, user_id: int, is_admin: bool = False) -> int:
        """发布试卷成绩，返回发布的成绩条数"""
        exam = await ExamService.get_exam(db, exam_id)
        if not is_admin and exam.professor_id != user_id:
            raise PermissionException("只有出卷教师可以发布成绩")

        result = await db.execute(
            update(ExamResult).where(ExamResult.exam_id == exam_id).values(score_released=True)
        )
        await db.execute(
            update(ExamSubmission).where(ExamSubmission.exam_id == exam_id).values(score_released=True)
        )
        logger.info(f"成绩已发布: exam={exam_id}, count={result.rowcount}")
        return result.rowcount or 0

    @staticmethod
    async def get_student_result(db: AsyncSession, exam_id: int, student_id: int) -> ExamResult:
        """学生查看成绩（发布后可见）"""
        result = await ExamService.get_result(db, exam_id, student_id)
        if not result:
            raise NotFoundException("成绩")
        if not result.score_released:
            raise AppException(ErrorCode.EXAM_SCORE_NOT_RELEASED)
        return result

    @staticmethod
    def parse_submitted_at(timestamp: Optional[int]) -> Optional[datetime]:
        """客户端毫秒时间戳转为交卷时间"""
        if timestamp is None:
            return None
        return from_epoch_millis(timestamp)
