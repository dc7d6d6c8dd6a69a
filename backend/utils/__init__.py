"""
工具函数目录
按功能分类组织
"""

from .timezone import get_now, epoch_millis, from_epoch_millis, iso_utc, file_stamp

__all__ = [
    # 时间
    "get_now",
    "epoch_millis",
    "from_epoch_millis",
    "iso_utc",
    "file_stamp"
]
