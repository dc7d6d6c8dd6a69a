"""
考试模块数据验证
定义请求/响应的数据结构
"""

from datetime import datetime
from typing import Optional, List, Dict, Union
from pydantic import BaseModel, ConfigDict, Field


# 答案可以是按题目顺序的列表，也可以是 {题号下标: 字母} 的字典
Answers = Union[List[Optional[str]], Dict[str, Optional[str]]]


class ExamSubmit(BaseModel):
    """学生交卷"""
    answers: Answers = Field(default_factory=list, description="学生答案")
    time_spent: int = Field(0, ge=0, description="用时(秒)")
    timestamp: Optional[int] = Field(None, description="客户端交卷时间(毫秒)")


class GradeDetail(BaseModel):
    """逐题判分"""
    number: int
    question: Optional[str] = None
    student_answer: Optional[str] = None
    correct_answer: str
    correct: bool
    explanation: Optional[str] = None


class ResultResponse(BaseModel):
    """成绩响应"""
    id: int
    exam_id: int
    student_id: int
    student_name: Optional[str] = None
    score: float
    correct_count: int
    total: int
    percentage: float
    time_spent: int = 0
    details: Optional[List[GradeDetail]] = None
    score_released: bool = False
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
