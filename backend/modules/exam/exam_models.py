"""
考试模块数据模型
试卷、答卷与成绩
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, Float, JSON

from core.database import Base
from utils.timezone import get_now


class Exam(Base):
    """
    试卷表

    questions 为选择题列表：
        [{"question": "...", "options": ["...", ...], "correct_answer": 0, "explanation": "..."}]
    correct_answer 为选项下标，0 对应字母 A。
    """
    __tablename__ = "provas"
    __table_args__ = {'extend_existing': True, 'comment': '试卷表'}

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID")
    professor_id = Column(Integer, nullable=False, index=True, comment="出卷教师ID")
    class_id = Column(Integer, nullable=True, index=True, comment="所属班级ID")

    title = Column(String(200), nullable=False, comment="试卷标题")
    content = Column(Text, nullable=True, comment="出题素材")
    questions = Column(JSON, nullable=False, default=list, comment="题目列表")
    question_count = Column(Integer, default=0, comment="题目数量")
    difficulty = Column(String(20), default="medium", comment="难度")
    duration = Column(Integer, default=60, comment="考试时长(分钟)")
    code = Column(String(12), nullable=True, unique=True, comment="考试码")
    status = Column(String(20), default="active", comment="状态: draft/active/closed")

    created_at = Column(DateTime(timezone=True), default=get_now, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), default=get_now, onupdate=get_now, comment="更新时间")

    def __repr__(self):
        return f"<Exam(id={self.id}, title={self.title})>"


class ExamSubmission(Base):
    """
    答卷表
    每个学生每份试卷只保留一份答卷，离线同步的重复提交覆盖原答卷
    集合之间只按 ID 关联、不建外键约束，按集合恢复备份时互不影响
    """
    __tablename__ = "respostas"
    __table_args__ = {'extend_existing': True, 'comment': '答卷表'}

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID")
    exam_id = Column(Integer, nullable=False, index=True, comment="试卷ID")
    student_id = Column(Integer, nullable=False, index=True, comment="学生ID")

    answers = Column(JSON, nullable=False, default=dict, comment="答案 {题号: 字母}")
    time_spent = Column(Integer, default=0, comment="用时(秒)")
    submitted_at = Column(DateTime(timezone=True), default=get_now, comment="交卷时间")
    status = Column(String(20), default="submitted", comment="状态")
    score_released = Column(Boolean, default=False, comment="成绩是否已发布")

    synced_at = Column(DateTime(timezone=True), nullable=True, comment="离线同步时间")
    created_at = Column(DateTime(timezone=True), default=get_now, comment="创建时间")

    def __repr__(self):
        return f"<ExamSubmission(id={self.id}, exam_id={self.exam_id}, student_id={self.student_id})>"


class ExamResult(Base):
    """成绩表"""
    __tablename__ = "resultados"
    __table_args__ = {'extend_existing': True, 'comment': '成绩表'}

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID")
    exam_id = Column(Integer, nullable=False, index=True, comment="试卷ID")
    student_id = Column(Integer, nullable=False, index=True, comment="学生ID")
    submission_id = Column(Integer, nullable=True, index=True, comment="答卷ID")
    student_name = Column(String(100), nullable=True, comment="学生姓名")

    answers = Column(JSON, nullable=True, comment="答案快照")
    score = Column(Float, default=0.0, comment="得分(满分10)")
    correct_count = Column(Integer, default=0, comment="答对题数")
    total = Column(Integer, default=0, comment="题目总数")
    percentage = Column(Float, default=0.0, comment="正确率")
    time_spent = Column(Integer, default=0, comment="用时(秒)")
    details = Column(JSON, nullable=True, comment="逐题判分详情")
    score_released = Column(Boolean, default=False, comment="成绩是否已发布")

    synced_at = Column(DateTime(timezone=True), nullable=True, comment="离线同步时间")
    created_at = Column(DateTime(timezone=True), default=get_now, comment="创建时间")

    def __repr__(self):
        return f"<ExamResult(exam_id={self.exam_id}, student_id={self.student_id}, score={self.score})>"
