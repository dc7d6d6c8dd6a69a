"""
数据备份 Schema
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class BackupFileInfo(BaseModel):
    """备份文件信息"""
    name: str
    size: str = Field(..., description="可读大小，如 1.25 MB")
    size_bytes: int
    modified: str
    created: str


class BackupResult(BaseModel):
    """一次完整备份的结果"""
    backup_file: str
    summary_file: str
    summary: Dict[str, int] = Field(default_factory=dict, description="各集合的记录数")


class CollectionRestoreResult(BaseModel):
    """单个集合的恢复结果"""
    collection: str
    success: bool
    restored: int = 0
    error: Optional[str] = None


class RestoreReport(BaseModel):
    """恢复报告，全部集合成功时 success 才为 True"""
    file: str
    success: bool
    collections: List[CollectionRestoreResult] = Field(default_factory=list)

    @property
    def failed(self) -> List[str]:
        return [c.collection for c in self.collections if not c.success]
