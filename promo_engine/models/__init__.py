"""
数据模型包初始化文件
"""

from .promotion import (
    DiscountType,
    RuleStatus,
    PercentageKind,
    FixedAmountKind,
    FreeShippingKind,
    RuleScopes,
    PromotionalRule,
    RedemptionRecord,
    ScopeFilter
)
from .coupon import (
    CouponRejectReason,
    CouponRejection,
    CouponValidation,
    AvailableCoupon,
    CouponRedemptionError
)
from .pricing import (
    Product,
    DiscountSelection,
    ProductDiscountResult,
    CartLineItem,
    CartItemSummary,
    CartSummary
)

__all__ = [
    "DiscountType",
    "RuleStatus",
    "PercentageKind",
    "FixedAmountKind",
    "FreeShippingKind",
    "RuleScopes",
    "PromotionalRule",
    "RedemptionRecord",
    "ScopeFilter",
    "CouponRejectReason",
    "CouponRejection",
    "CouponValidation",
    "AvailableCoupon",
    "CouponRedemptionError",
    "Product",
    "DiscountSelection",
    "ProductDiscountResult",
    "CartLineItem",
    "CartItemSummary",
    "CartSummary"
]
