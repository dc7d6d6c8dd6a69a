"""
离线同步 Schema
"""

from typing import Any, Dict, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

SyncAction = Literal["create", "update", "delete"]


class SyncItem(BaseModel):
    """
    同步队列项
    每一项以 sync-<id>.json 的形式单独保存在队列目录中
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str
    collection: str
    action: SyncAction
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int = Field(..., description="入队时间（毫秒时间戳）")
    attempts: int = 0
    last_attempt: Optional[int] = Field(None, alias="lastAttempt", description="最近一次尝试时间（毫秒时间戳）")
    status: str = "pending"

    def to_file_dict(self) -> dict:
        """序列化为队列文件内容（未尝试过时不写 lastAttempt）"""
        return self.model_dump(by_alias=True, exclude_none=True)


class SyncRequest(BaseModel):
    """POST /api/sync/{collection} 请求体"""
    action: str
    data: Dict[str, Any] = Field(default_factory=dict)
    syncId: Optional[str] = None


class SyncQueueStatus(BaseModel):
    """队列状态"""
    pending: int
    online: bool
    lastCheck: str
    error: Optional[str] = None
