"""
服务包初始化文件
"""

from .discount_calculator import calculate_discount_amount, format_discount_value
from .scope_matcher import ScopeMatcher, scope_matcher
from .discount_selector import select_best_discount
from .discount_resolver import DiscountResolver
from .coupon_service import CouponService
from .cart_service import CartService, aggregate_cart, select_automatic_rule

__all__ = [
    "calculate_discount_amount",
    "format_discount_value",
    "ScopeMatcher",
    "scope_matcher",
    "select_best_discount",
    "DiscountResolver",
    "CouponService",
    "CartService",
    "aggregate_cart",
    "select_automatic_rule"
]
