"""
规则适用范围匹配
按商品/分类/品牌/商家建立索引，一次遍历完成整批商品的候选规则匹配
"""

from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Iterable

from promo_engine.models.pricing import Product
from promo_engine.models.promotion import PromotionalRule


class ScopeMatcher:
    """候选规则匹配器"""

    def match(
        self,
        products: Iterable[Product],
        rules: Iterable[PromotionalRule],
        now: Optional[datetime] = None
    ) -> Dict[str, List[PromotionalRule]]:
        """返回 {商品ID: 候选规则列表}，无候选时为空列表"""
        if now is None:
            now = datetime.now()

        unscoped_global: List[PromotionalRule] = []
        by_product = defaultdict(list)
        by_category = defaultdict(list)
        by_brand = defaultdict(list)
        by_vendor = defaultdict(list)

        for rule in rules:
            # 优惠券需要用户输入代码，不自动匹配
            if rule.is_coupon or not rule.is_eligible(now):
                continue

            if not rule.has_scope_associations:
                if rule.is_global:
                    unscoped_global.append(rule)
                continue

            for product_id in rule.scopes.product_ids:
                by_product[product_id].append(rule)
            for category_id in rule.scopes.category_ids:
                by_category[category_id].append(rule)
            for brand_id in rule.scopes.brand_ids:
                by_brand[brand_id].append(rule)
            for vendor_id in rule.scopes.vendor_ids:
                by_vendor[vendor_id].append(rule)

        matches: Dict[str, List[PromotionalRule]] = {}
        for product in products:
            reachable = list(unscoped_global)
            reachable.extend(by_product.get(product.id, []))
            if product.category_id:
                reachable.extend(by_category.get(product.category_id, []))
            if product.brand_id:
                reachable.extend(by_brand.get(product.brand_id, []))
            if product.vendor_id:
                reachable.extend(by_vendor.get(product.vendor_id, []))

            candidates = []
            seen = set()
            for rule in reachable:
                if rule.id in seen:
                    continue
                if rule.vendor_id is not None and rule.vendor_id != product.vendor_id:
                    continue
                seen.add(rule.id)
                candidates.append(rule)

            matches[product.id] = candidates

        return matches


scope_matcher = ScopeMatcher()
