"""
定价相关数据模型
"""

from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field

from promo_engine.models.promotion import PromotionalRule
from promo_engine.models.coupon import CouponRejection


class Product(BaseModel):
    """参与定价的商品"""

    id: str = Field(..., description="商品ID")
    name: str = Field(default="", description="商品名称")
    price: Decimal = Field(..., ge=0, description="商品原价")
    category_id: Optional[str] = Field(None, description="分类ID")
    brand_id: Optional[str] = Field(None, description="品牌ID")
    vendor_id: Optional[str] = Field(None, description="商家ID")


class DiscountSelection(BaseModel):
    """单个商品的最佳折扣选择结果"""

    final_price: Decimal = Field(..., ge=0, description="折后价格")
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0, description="折扣金额")
    winning_rule: Optional[PromotionalRule] = Field(None, description="生效的规则")


class ProductDiscountResult(BaseModel):
    """批量解析后单个商品的折扣结果"""

    product_id: str = Field(..., description="商品ID")
    discounts: List[PromotionalRule] = Field(default_factory=list, description="候选规则")
    base_price: Decimal = Field(..., ge=0, description="商品原价")
    final_price: Decimal = Field(..., ge=0, description="折后价格")
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0, description="折扣金额")
    has_discount: bool = Field(default=False, description="是否有折扣")
    applied_rule_id: Optional[str] = Field(None, description="生效规则ID")

    @classmethod
    def no_discount(cls, product: Product) -> "ProductDiscountResult":
        """无折扣结果"""
        return cls(
            product_id=product.id,
            base_price=product.price,
            final_price=product.price
        )


class CartLineItem(BaseModel):
    """购物车项目"""

    product: Product = Field(..., description="商品")
    quantity: int = Field(default=1, ge=1, description="数量")


class CartItemSummary(BaseModel):
    """购物车项目定价明细"""

    product_id: str
    quantity: int
    base_price: Decimal
    final_price: Decimal
    line_subtotal: Decimal = Field(..., description="折后小计")
    line_discount: Decimal = Field(..., description="商品折扣小计")
    applied_rule_id: Optional[str] = None


class CartSummary(BaseModel):
    """购物车定价汇总"""

    items: List[CartItemSummary] = Field(default_factory=list, description="项目明细")
    subtotal: Decimal = Field(..., ge=0, description="商品折后小计")
    product_discount_total: Decimal = Field(default=Decimal("0"), ge=0, description="商品折扣合计")
    automatic_discount_amount: Decimal = Field(default=Decimal("0"), ge=0, description="全店自动折扣")
    coupon_discount_amount: Decimal = Field(default=Decimal("0"), ge=0, description="优惠券折扣")
    tax_rate: Decimal = Field(..., ge=0, description="税率")
    tax: Decimal = Field(default=Decimal("0"), ge=0, description="税额")
    total: Decimal = Field(..., ge=0, description="应付总额")
    automatic_rule_id: Optional[str] = Field(None, description="生效的自动折扣ID")
    coupon_code: Optional[str] = Field(None, description="生效的优惠券代码")
    free_shipping: bool = Field(default=False, description="是否免运费")
    coupon_rejection: Optional[CouponRejection] = Field(None, description="优惠券未通过验证的原因")

    @property
    def total_discount(self) -> Decimal:
        """总折扣金额"""
        return self.product_discount_total + self.automatic_discount_amount + self.coupon_discount_amount
