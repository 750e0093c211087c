"""
最佳折扣选择
每个商品只应用一条规则，不叠加
"""

from decimal import Decimal
from typing import Iterable, Optional

from promo_engine.models.pricing import DiscountSelection
from promo_engine.models.promotion import PromotionalRule
from promo_engine.services.discount_calculator import calculate_discount_amount, ZERO


def _beats(
    amount: Decimal,
    rule: PromotionalRule,
    best_amount: Decimal,
    best_rule: Optional[PromotionalRule]
) -> bool:
    """金额大者胜；金额相同时创建时间晚者胜，再相同时ID大者胜"""
    if best_rule is None:
        return True
    if amount != best_amount:
        return amount > best_amount
    if rule.created_at != best_rule.created_at:
        return rule.created_at > best_rule.created_at
    return rule.id > best_rule.id


def pick_best_rule(
    base: Decimal,
    candidates: Iterable[PromotionalRule]
) -> tuple:
    """
    显式折叠选出最佳规则，返回 (折扣金额, 规则)
    金额为0的候选不参与比较；没有可用候选时返回 (0, None)
    """
    best_amount = ZERO
    best_rule = None

    for rule in candidates:
        amount = calculate_discount_amount(rule, base)
        if amount <= ZERO:
            continue
        if _beats(amount, rule, best_amount, best_rule):
            best_amount = amount
            best_rule = rule

    return best_amount, best_rule


def select_best_discount(
    base_price: Decimal,
    candidates: Iterable[PromotionalRule]
) -> DiscountSelection:
    """为单个商品选出唯一生效的折扣"""
    base_price = Decimal(base_price)
    discount_amount, winning_rule = pick_best_rule(base_price, candidates)

    return DiscountSelection(
        final_price=max(base_price - discount_amount, ZERO),
        discount_amount=discount_amount,
        winning_rule=winning_rule
    )
