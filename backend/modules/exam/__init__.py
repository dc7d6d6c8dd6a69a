"""
在线考试模块
"""

from . import exam_sync  # noqa: F401  注册答卷同步处理器
