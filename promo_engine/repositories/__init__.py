"""
仓库包初始化文件 - 数据库访问层
"""

from .rule_repository import RuleRepository

__all__ = [
    "RuleRepository"
]
