"""
购物车定价汇总服务
计算顺序固定：商品折后小计 -> 全店自动折扣 -> 优惠券 -> 税 -> 总额
自动折扣与优惠券都基于商品折后小计计算，二者可叠加
"""

import asyncio
from decimal import Decimal
from datetime import datetime
from typing import Dict, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from promo_engine.core.config import settings
from promo_engine.models.coupon import CouponRejection
from promo_engine.models.pricing import (
    CartItemSummary,
    CartLineItem,
    CartSummary,
    ProductDiscountResult
)
from promo_engine.models.promotion import DiscountType, PromotionalRule
from promo_engine.repositories.rule_repository import RuleRepository
from promo_engine.services.common_cache import SimpleCache, rule_cache
from promo_engine.services.coupon_service import CouponService
from promo_engine.services.discount_calculator import (
    ZERO,
    calculate_discount_amount,
    quantize_money
)
from promo_engine.services.discount_resolver import DiscountResolver
from promo_engine.services.discount_selector import pick_best_rule

logger = structlog.get_logger()


def select_automatic_rule(
    rules: List[PromotionalRule],
    subtotal: Decimal,
    now: Optional[datetime] = None
) -> Optional[PromotionalRule]:
    """在满足最低消费的全店自动折扣中选出减免最多的一条"""
    qualifying = [
        rule for rule in rules
        if rule.is_global
        and not rule.is_coupon
        and not rule.has_scope_associations
        and rule.vendor_id is None
        and rule.is_eligible(now)
        and rule.minimum_order_amount <= subtotal
    ]
    _, best_rule = pick_best_rule(subtotal, qualifying)
    if best_rule is not None:
        return best_rule

    # 免运费规则不减金额，但仍要作为自动优惠生效
    free_shipping = [rule for rule in qualifying if rule.discount_type == DiscountType.FREE_SHIPPING]
    if free_shipping:
        return max(free_shipping, key=lambda r: (r.created_at, r.id))
    return None


def aggregate_cart(
    line_items: List[CartLineItem],
    product_results: Dict[str, ProductDiscountResult],
    automatic_rule: Optional[PromotionalRule],
    coupon_rule: Optional[PromotionalRule],
    tax_rate: Decimal,
    coupon_rejection: Optional[CouponRejection] = None
) -> CartSummary:
    """按固定顺序汇总购物车金额，总额不小于0"""
    items = []
    subtotal = ZERO
    product_discount_total = ZERO

    for line in line_items:
        product = line.product
        result = product_results.get(product.id) or ProductDiscountResult.no_discount(product)
        line_subtotal = result.final_price * line.quantity
        line_discount = (product.price - result.final_price) * line.quantity

        subtotal += line_subtotal
        product_discount_total += line_discount
        items.append(CartItemSummary(
            product_id=product.id,
            quantity=line.quantity,
            base_price=product.price,
            final_price=result.final_price,
            line_subtotal=line_subtotal,
            line_discount=line_discount,
            applied_rule_id=result.applied_rule_id
        ))

    automatic_discount_amount = calculate_discount_amount(automatic_rule, subtotal) if automatic_rule else ZERO
    coupon_discount_amount = calculate_discount_amount(coupon_rule, subtotal) if coupon_rule else ZERO

    discounted = subtotal - automatic_discount_amount - coupon_discount_amount
    tax = quantize_money(max(discounted, ZERO) * tax_rate)
    total = max(discounted + tax, ZERO)

    free_shipping = any(
        rule is not None and rule.discount_type == DiscountType.FREE_SHIPPING
        for rule in (automatic_rule, coupon_rule)
    )

    return CartSummary(
        items=items,
        subtotal=subtotal,
        product_discount_total=product_discount_total,
        automatic_discount_amount=automatic_discount_amount,
        coupon_discount_amount=coupon_discount_amount,
        tax_rate=tax_rate,
        tax=tax,
        total=total,
        automatic_rule_id=automatic_rule.id if automatic_rule else None,
        coupon_code=coupon_rule.code if coupon_rule else None,
        free_shipping=free_shipping,
        coupon_rejection=coupon_rejection
    )


class CartService:
    """购物车定价服务"""

    def __init__(
        self,
        rule_repo: RuleRepository,
        resolver: Optional[DiscountResolver] = None,
        coupon_service: Optional[CouponService] = None,
        cache: Optional[SimpleCache] = None,
        tax_rate: Optional[Decimal] = None
    ):
        self.rule_repo = rule_repo
        self.resolver = resolver or DiscountResolver(rule_repo)
        self.coupon_service = coupon_service or CouponService(rule_repo)
        self.cache = cache or rule_cache
        self.cache_key = "automatic:global"
        self.cache_ttl = settings.automatic_rules_cache_ttl
        self.tax_rate = tax_rate if tax_rate is not None else settings.tax_rate

    async def get_automatic_rules(self, use_cache: bool = True) -> List[PromotionalRule]:
        """获取全店自动折扣，查询失败时按无自动折扣处理"""
        if use_cache:
            cached_rules = await self.cache.get(self.cache_key)
            if cached_rules is not None:
                return [PromotionalRule(**rule_data) for rule_data in cached_rules]

        try:
            rules = await asyncio.wait_for(
                self.rule_repo.fetch_global_automatic_rules(),
                timeout=settings.rule_fetch_timeout
            )
        except asyncio.TimeoutError:
            logger.error("全店折扣查询超时，按无自动折扣处理")
            return []
        except (SQLAlchemyError, OSError) as e:
            logger.error("全店折扣查询失败，按无自动折扣处理", error=str(e))
            return []

        if use_cache:
            await self.cache.set(
                self.cache_key,
                [rule.model_dump(mode="json") for rule in rules],
                ttl=self.cache_ttl
            )
        return rules

    async def compute_cart_summary(
        self,
        line_items: List[CartLineItem],
        user_id: Optional[str] = None,
        coupon_code: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> CartSummary:
        """
        计算购物车汇总
        优惠券未通过验证时不计入折扣，并在结果中给出拒绝原因
        同一商品出现不同价格时抛出ValueError
        """
        if now is None:
            now = datetime.now()

        products = {}
        for line in line_items:
            seen = products.get(line.product.id)
            if seen is not None and seen.price != line.product.price:
                raise ValueError(f"商品 {line.product.id} 在购物车中出现了不同的价格")
            products[line.product.id] = line.product
        product_results = await self.resolver.resolve_discounts_for_products(
            list(products.values()), now=now
        )

        subtotal = sum(
            (product_results[line.product.id].final_price * line.quantity for line in line_items),
            ZERO
        )

        automatic_rules = await self.get_automatic_rules()
        automatic_rule = select_automatic_rule(automatic_rules, subtotal, now=now)

        coupon_rule = None
        coupon_rejection = None
        if coupon_code:
            validation = await self.coupon_service.validate_coupon(coupon_code, user_id, subtotal, now=now)
            if validation.is_valid:
                coupon_rule = validation.coupon
            else:
                coupon_rejection = validation.rejection

        return aggregate_cart(
            line_items,
            product_results,
            automatic_rule,
            coupon_rule,
            self.tax_rate,
            coupon_rejection=coupon_rejection
        )
