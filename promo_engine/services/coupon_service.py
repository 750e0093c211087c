"""
优惠券业务服务层
验证用户输入的优惠券代码，并在订单完成时核销
"""

from typing import List, Optional
from decimal import Decimal
from datetime import datetime

import structlog

from promo_engine.core.config import settings
from promo_engine.models.coupon import (
    AvailableCoupon,
    CouponRedemptionError,
    CouponRejectReason,
    CouponValidation
)
from promo_engine.models.promotion import RedemptionRecord, RuleStatus
from promo_engine.repositories.rule_repository import RuleRepository
from promo_engine.services.discount_calculator import calculate_discount_amount, quantize_money

logger = structlog.get_logger()


class CouponService:
    """优惠券业务服务"""

    def __init__(self, rule_repo: RuleRepository):
        self.rule_repo = rule_repo

    async def validate_coupon(
        self,
        code: str,
        user_id: Optional[str],
        subtotal: Decimal,
        now: Optional[datetime] = None
    ) -> CouponValidation:
        """
        按顺序验证优惠券，遇到第一个失败即返回：
        存在且启用 -> 有效期 -> 最低消费 -> 用户使用次数 -> 总使用次数
        验证不修改使用次数，放弃的购物车不会占用限量券
        """
        # 优惠券验证不使用缓存，确保实时性
        if now is None:
            now = datetime.now()
        code = (code or "").strip()

        coupon = await self.rule_repo.fetch_rule_by_code(code) if code else None
        if not coupon or not coupon.is_active or coupon.status == RuleStatus.INACTIVE:
            return self._reject(code, CouponRejectReason.NOT_FOUND, "Coupon not found or no longer active")

        if coupon.status == RuleStatus.EXPIRED or not coupon.is_within_window(now):
            message = "Coupon is not yet active" if coupon.start_date > now else "Coupon has expired"
            return self._reject(code, CouponRejectReason.EXPIRED, message)

        if subtotal < coupon.minimum_order_amount:
            required = quantize_money(coupon.minimum_order_amount)
            return self._reject(
                code,
                CouponRejectReason.BELOW_MINIMUM,
                f"Minimum order amount of {settings.currency_symbol}{required} required",
                required_amount=required
            )

        if user_id and coupon.usage_limit_per_user:
            user_used_count = await self.rule_repo.count_user_redemptions(user_id, coupon.id)
            if user_used_count >= coupon.usage_limit_per_user:
                return self._reject(
                    code,
                    CouponRejectReason.ALREADY_USED,
                    "You have already used this coupon"
                )

        if coupon.status == RuleStatus.USED_UP or coupon.is_used_up:
            return self._reject(code, CouponRejectReason.USED_UP, "Coupon usage limit reached")

        return CouponValidation.ok(coupon)

    def _reject(
        self,
        code: str,
        reason: CouponRejectReason,
        message: str,
        required_amount: Optional[Decimal] = None
    ) -> CouponValidation:
        logger.info("优惠券验证未通过", code=code, reason=reason.value)
        return CouponValidation.rejected(reason, message, required_amount=required_amount)

    async def get_available_coupons(
        self,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[AvailableCoupon]:
        """获取当前可用的优惠券及用户个人使用情况"""
        coupons = await self.rule_repo.fetch_active_coupons(current_time=now)
        if not coupons:
            return []

        usage_counts = {}
        if user_id:
            usage_counts = await self.rule_repo.count_user_redemptions_batch(
                user_id, [coupon.id for coupon in coupons]
            )

        available = []
        for coupon in coupons:
            used = usage_counts.get(coupon.id, 0)
            limit = coupon.usage_limit_per_user
            available.append(AvailableCoupon(
                coupon=coupon,
                user_usage_count=used,
                user_can_use=not limit or used < limit,
                remaining_uses=max(limit - used, 0) if limit else None
            ))
        return available

    async def redeem_coupon(
        self,
        code: str,
        user_id: str,
        order_id: Optional[str],
        subtotal: Decimal,
        now: Optional[datetime] = None
    ) -> RedemptionRecord:
        """
        订单完成时核销优惠券
        需在调用方事务内执行；条件更新失败说明并发下已被用完
        """
        validation = await self.validate_coupon(code, user_id, subtotal, now=now)
        if not validation.is_valid:
            raise CouponRedemptionError(validation.rejection)

        coupon = validation.coupon
        discount_amount = calculate_discount_amount(coupon, subtotal)

        record = await self.rule_repo.record_redemption(
            rule_id=coupon.id,
            user_id=user_id,
            order_id=order_id,
            discount_amount=discount_amount
        )
        if record is None:
            logger.warning("优惠券并发核销失败", code=code, rule_id=coupon.id, order_id=order_id)
            rejection = CouponValidation.rejected(
                CouponRejectReason.USED_UP, "Coupon usage limit reached"
            ).rejection
            raise CouponRedemptionError(rejection)

        logger.info(
            "优惠券核销成功",
            code=code,
            rule_id=coupon.id,
            order_id=order_id,
            discount_amount=str(discount_amount)
        )
        return record
