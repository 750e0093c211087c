"""
折扣金额计算
纯函数，无I/O；数据异常（越界百分比、负值、超额固定金额）在此截断而不是抛出
"""

from decimal import Decimal, ROUND_HALF_UP

from promo_engine.models.promotion import (
    PromotionalRule,
    PercentageKind,
    FixedAmountKind,
    FreeShippingKind
)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def quantize_money(amount: Decimal) -> Decimal:
    """金额保留两位小数"""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def clamp(value: Decimal, lower: Decimal, upper: Decimal) -> Decimal:
    return max(lower, min(value, upper))


def calculate_discount_amount(rule: PromotionalRule, base: Decimal) -> Decimal:
    """
    计算规则作用于base金额的减免额
    保证 0 <= 结果 <= base
    """
    base = Decimal(base)
    if base <= ZERO:
        return ZERO

    kind = rule.kind
    if isinstance(kind, PercentageKind):
        raw = base * clamp(kind.value, ZERO, HUNDRED) / HUNDRED
        if kind.maximum_discount_amount is not None:
            raw = min(raw, max(kind.maximum_discount_amount, ZERO))
    elif isinstance(kind, FixedAmountKind):
        raw = max(kind.value, ZERO)
    elif isinstance(kind, FreeShippingKind):
        # 免运费只影响运费行，不减商品金额
        raw = ZERO
    else:
        raise TypeError(f"未知的折扣类型: {type(kind).__name__}")

    return clamp(quantize_money(raw), ZERO, base)


def format_discount_value(rule: PromotionalRule, currency_symbol: str = "$") -> str:
    """折扣值展示文本"""
    kind = rule.kind
    if isinstance(kind, PercentageKind):
        return f"{clamp(kind.value, ZERO, HUNDRED).normalize():f}%"
    if isinstance(kind, FixedAmountKind):
        return f"{currency_symbol}{quantize_money(max(kind.value, ZERO))}"
    return "Free Shipping"
