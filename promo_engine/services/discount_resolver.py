"""
商品折扣批量解析服务
一次查询取回整批商品相关的规则，再逐个商品选出最佳折扣
"""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from promo_engine.core.config import settings
from promo_engine.models.pricing import Product, ProductDiscountResult
from promo_engine.models.promotion import PromotionalRule, ScopeFilter
from promo_engine.repositories.rule_repository import RuleRepository
from promo_engine.services.discount_selector import select_best_discount
from promo_engine.services.scope_matcher import ScopeMatcher, scope_matcher

logger = structlog.get_logger()


def build_scope_filter(products: List[Product]) -> ScopeFilter:
    """汇总整批商品涉及的商品/分类/品牌/商家ID"""
    product_ids, category_ids, brand_ids, vendor_ids = set(), set(), set(), set()
    for product in products:
        product_ids.add(product.id)
        if product.category_id:
            category_ids.add(product.category_id)
        if product.brand_id:
            brand_ids.add(product.brand_id)
        if product.vendor_id:
            vendor_ids.add(product.vendor_id)

    return ScopeFilter(
        product_ids=sorted(product_ids),
        category_ids=sorted(category_ids),
        brand_ids=sorted(brand_ids),
        vendor_ids=sorted(vendor_ids)
    )


class DiscountResolver:
    """商品折扣批量解析"""

    def __init__(
        self,
        rule_repo: RuleRepository,
        matcher: Optional[ScopeMatcher] = None,
        fetch_timeout: Optional[float] = None
    ):
        self.rule_repo = rule_repo
        self.matcher = matcher or scope_matcher
        self.fetch_timeout = fetch_timeout if fetch_timeout is not None else settings.rule_fetch_timeout

    async def _fetch_rules(self, scope_filter: ScopeFilter, now: datetime) -> Optional[List[PromotionalRule]]:
        """查询规则，失败或超时返回None"""
        try:
            return await asyncio.wait_for(
                self.rule_repo.fetch_eligible_rules(scope_filter, current_time=now),
                timeout=self.fetch_timeout
            )
        except asyncio.TimeoutError:
            logger.error("规则查询超时，按无折扣处理", timeout=self.fetch_timeout)
        except (SQLAlchemyError, OSError, ValueError) as e:
            logger.error("规则查询失败，按无折扣处理", error=str(e))
        return None

    async def resolve_discounts_for_products(
        self,
        products: List[Product],
        now: Optional[datetime] = None
    ) -> Dict[str, ProductDiscountResult]:
        """
        解析整批商品的折扣
        规则查询失败时所有商品返回无折扣结果，不向调用方抛出
        """
        if not products:
            return {}
        if now is None:
            now = datetime.now()

        results = {product.id: ProductDiscountResult.no_discount(product) for product in products}

        rules = await self._fetch_rules(build_scope_filter(products), now)
        if not rules:
            return results

        candidates_by_product = self.matcher.match(products, rules, now=now)

        for product in products:
            candidates = candidates_by_product.get(product.id, [])
            if not candidates:
                continue

            selection = select_best_discount(product.price, candidates)
            results[product.id] = ProductDiscountResult(
                product_id=product.id,
                discounts=candidates,
                base_price=product.price,
                final_price=selection.final_price,
                discount_amount=selection.discount_amount,
                has_discount=selection.discount_amount > 0,
                applied_rule_id=selection.winning_rule.id if selection.winning_rule else None
            )

        logger.debug(
            "商品折扣解析完成",
            product_count=len(products),
            rule_count=len(rules),
            discounted=sum(1 for r in results.values() if r.has_discount)
        )
        return results
