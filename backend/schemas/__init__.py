"""
数据验证模式目录
"""

from .sync import SyncItem, SyncRequest, SyncQueueStatus
from .backup import BackupFileInfo, BackupResult, CollectionRestoreResult, RestoreReport

__all__ = [
    # 离线同步
    "SyncItem", "SyncRequest", "SyncQueueStatus",
    # 备份
    "BackupFileInfo", "BackupResult", "CollectionRestoreResult", "RestoreReport",
]
