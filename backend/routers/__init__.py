"""
路由目录
"""

from . import health, sync, backup

__all__ = ["health", "sync", "backup"]
