"""
数据模型目录
"""

from .account import User, Turma

__all__ = ["User", "Turma"]
