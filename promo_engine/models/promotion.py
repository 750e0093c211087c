"""
促销规则相关数据模型
自动折扣与优惠券共用同一规则结构，优惠券额外要求用户输入code
"""

from decimal import Decimal
from datetime import datetime
from typing import List, Optional, Union, Literal, Annotated
from pydantic import BaseModel, Field, field_validator
from enum import Enum


class DiscountType(str, Enum):
    """折扣类型枚举"""
    PERCENTAGE = "percentage"  # 百分比折扣
    FIXED_AMOUNT = "fixed_amount"  # 固定金额折扣
    FREE_SHIPPING = "free_shipping"  # 免运费，不影响商品价格


class RuleStatus(str, Enum):
    """规则状态枚举"""
    ACTIVE = "active"  # 有效
    INACTIVE = "inactive"  # 无效
    EXPIRED = "expired"  # 已过期
    USED_UP = "used_up"  # 已用完


class PercentageKind(BaseModel):
    """百分比折扣，value为0-100的百分点"""

    type: Literal["percentage"] = "percentage"
    value: Decimal = Field(..., description="百分点(0-100)，越界值在计算时截断")
    maximum_discount_amount: Optional[Decimal] = Field(None, description="最大折扣金额")


class FixedAmountKind(BaseModel):
    """固定金额折扣"""

    type: Literal["fixed_amount"] = "fixed_amount"
    value: Decimal = Field(..., description="减免金额")


class FreeShippingKind(BaseModel):
    """免运费"""

    type: Literal["free_shipping"] = "free_shipping"


RuleKind = Annotated[
    Union[PercentageKind, FixedAmountKind, FreeShippingKind],
    Field(discriminator="type")
]


def build_rule_kind(
    discount_type: str,
    value: Optional[Decimal] = None,
    maximum_discount_amount: Optional[Decimal] = None
) -> Union[PercentageKind, FixedAmountKind, FreeShippingKind]:
    """根据存储层的扁平字段构造规则类型"""
    discount_type = DiscountType(discount_type)
    if discount_type == DiscountType.PERCENTAGE:
        return PercentageKind(
            value=value if value is not None else Decimal("0"),
            maximum_discount_amount=maximum_discount_amount
        )
    if discount_type == DiscountType.FIXED_AMOUNT:
        return FixedAmountKind(value=value if value is not None else Decimal("0"))
    return FreeShippingKind()


class RuleScopes(BaseModel):
    """规则适用范围关联（商品/分类/品牌/商家）"""

    product_ids: List[str] = Field(default_factory=list, description="关联商品ID")
    category_ids: List[str] = Field(default_factory=list, description="关联分类ID")
    brand_ids: List[str] = Field(default_factory=list, description="关联品牌ID")
    vendor_ids: List[str] = Field(default_factory=list, description="关联商家ID")

    def is_empty(self) -> bool:
        return not (self.product_ids or self.category_ids or self.brand_ids or self.vendor_ids)


class PromotionalRule(BaseModel):
    """促销规则基础模型"""

    id: str = Field(..., description="规则ID")
    code: Optional[str] = Field(None, max_length=50, description="优惠券代码，自动折扣为空")
    name: str = Field(default="", description="规则名称")
    description: Optional[str] = Field(None, description="规则描述")
    kind: RuleKind = Field(..., description="折扣类型及参数")
    minimum_order_amount: Decimal = Field(default=Decimal("0"), description="最小订单金额")
    usage_limit: Optional[int] = Field(None, description="总使用次数限制")
    usage_limit_per_user: int = Field(default=1, description="单用户使用次数限制")
    used_count: int = Field(default=0, ge=0, description="已使用次数")
    status: RuleStatus = Field(default=RuleStatus.ACTIVE, description="规则状态")
    start_date: datetime = Field(..., description="生效时间")
    end_date: Optional[datetime] = Field(None, description="结束时间，为空表示长期有效")
    is_active: bool = Field(default=True, description="启用开关")
    is_global: bool = Field(default=False, description="是否全店通用")
    vendor_id: Optional[str] = Field(None, description="限定商家")
    scopes: RuleScopes = Field(default_factory=RuleScopes, description="适用范围关联")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v):
        """空字符串视为无代码"""
        if v is not None and not v.strip():
            return None
        return v

    @property
    def discount_type(self) -> DiscountType:
        return DiscountType(self.kind.type)

    @property
    def is_coupon(self) -> bool:
        """需要用户输入代码的规则即优惠券"""
        return self.code is not None

    @property
    def has_scope_associations(self) -> bool:
        return not self.scopes.is_empty()

    @property
    def is_used_up(self) -> bool:
        return self.usage_limit is not None and self.used_count >= self.usage_limit

    def is_within_window(self, now: Optional[datetime] = None) -> bool:
        """检查是否在有效期内"""
        if now is None:
            now = datetime.now()
        if self.start_date > now:
            return False
        return self.end_date is None or self.end_date >= now

    def is_eligible(self, now: Optional[datetime] = None) -> bool:
        """检查规则当前是否可参与计算"""
        return (
            self.is_active and
            self.status == RuleStatus.ACTIVE and
            self.is_within_window(now) and
            not self.is_used_up
        )


class RedemptionRecord(BaseModel):
    """规则使用记录，只追加不修改"""

    id: str = Field(..., description="记录ID")
    user_id: str = Field(..., description="用户ID")
    rule_id: str = Field(..., description="规则ID")
    order_id: Optional[str] = Field(None, description="关联订单ID")
    discount_amount: Decimal = Field(..., ge=0, description="折扣金额")
    used_at: datetime = Field(default_factory=datetime.now, description="使用时间")


class ScopeFilter(BaseModel):
    """批量查询规则时的范围过滤条件"""

    product_ids: List[str] = Field(default_factory=list)
    category_ids: List[str] = Field(default_factory=list)
    brand_ids: List[str] = Field(default_factory=list)
    vendor_ids: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.product_ids or self.category_ids or self.brand_ids or self.vendor_ids)
