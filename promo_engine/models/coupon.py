"""
优惠券验证相关数据模型
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field
from enum import Enum

from promo_engine.models.promotion import PromotionalRule


class CouponRejectReason(str, Enum):
    """优惠券验证失败原因"""
    NOT_FOUND = "not_found"  # 不存在或已停用
    EXPIRED = "expired"  # 不在有效期内
    BELOW_MINIMUM = "below_minimum"  # 未达最低消费
    ALREADY_USED = "already_used"  # 用户已达使用上限
    USED_UP = "used_up"  # 总次数已用完


class CouponRejection(BaseModel):
    """面向用户的拒绝原因"""

    reason: CouponRejectReason = Field(..., description="失败原因")
    message: str = Field(..., description="提示信息")
    required_amount: Optional[Decimal] = Field(None, description="所需最小订单金额")


class CouponValidation(BaseModel):
    """优惠券验证结果，通过时携带规则，失败时携带原因"""

    is_valid: bool = Field(..., description="是否有效")
    coupon: Optional[PromotionalRule] = Field(None, description="优惠券规则")
    rejection: Optional[CouponRejection] = Field(None, description="失败原因")

    @classmethod
    def ok(cls, coupon: PromotionalRule) -> "CouponValidation":
        return cls(is_valid=True, coupon=coupon)

    @classmethod
    def rejected(
        cls,
        reason: CouponRejectReason,
        message: str,
        required_amount: Optional[Decimal] = None
    ) -> "CouponValidation":
        return cls(
            is_valid=False,
            rejection=CouponRejection(
                reason=reason,
                message=message,
                required_amount=required_amount
            )
        )

    @property
    def reason(self) -> Optional[CouponRejectReason]:
        return self.rejection.reason if self.rejection else None


class AvailableCoupon(BaseModel):
    """用户可见的优惠券及其个人使用情况"""

    coupon: PromotionalRule
    user_usage_count: int = Field(default=0, ge=0, description="用户已使用次数")
    user_can_use: bool = Field(default=True, description="用户是否还能使用")
    remaining_uses: Optional[int] = Field(None, ge=0, description="用户剩余可用次数")


class CouponRedemptionError(Exception):
    """核销优惠券失败"""

    def __init__(self, rejection: CouponRejection):
        self.rejection = rejection
        super().__init__(rejection.message)
