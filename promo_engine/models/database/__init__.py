"""
数据库模型包初始化文件
"""

from .promotion_db import (
    PromotionalRuleDB,
    RuleProductDB,
    RuleCategoryDB,
    RuleBrandDB,
    RuleVendorDB,
    RuleRedemptionDB
)

__all__ = [
    "PromotionalRuleDB",
    "RuleProductDB",
    "RuleCategoryDB",
    "RuleBrandDB",
    "RuleVendorDB",
    "RuleRedemptionDB"
]
