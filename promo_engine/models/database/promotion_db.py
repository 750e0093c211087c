"""
促销规则数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from promo_engine.core.database import Base


class PromotionalRuleDB(Base):
    """促销规则表（自动折扣与优惠券共用）"""

    __tablename__ = "promotional_rules"

    # 主键和基本信息
    id = Column(String(50), primary_key=True, comment="规则ID")
    code = Column(String(50), unique=True, index=True, comment="优惠券代码，自动折扣为空")
    name = Column(String(200), nullable=False, default="", comment="规则名称")
    description = Column(Text, comment="规则描述")
    discount_type = Column(String(20), nullable=False, comment="折扣类型")

    # 折扣信息
    value = Column(Numeric(10, 2), nullable=False, default=0, comment="折扣值(百分点或金额)")
    minimum_order_amount = Column(Numeric(10, 2), nullable=False, default=0, comment="最小订单金额")
    maximum_discount_amount = Column(Numeric(10, 2), comment="最大折扣金额")

    # 使用限制
    usage_limit = Column(Integer, comment="总使用次数限制")
    usage_limit_per_user = Column(Integer, nullable=False, default=1, comment="单用户使用次数限制")
    used_count = Column(Integer, nullable=False, default=0, comment="已使用次数")

    # 状态与有效期
    status = Column(String(20), nullable=False, default="active", index=True, comment="规则状态")
    start_date = Column(DateTime, nullable=False, index=True, comment="生效时间")
    end_date = Column(DateTime, index=True, comment="结束时间")
    is_active = Column(Boolean, nullable=False, default=True, comment="启用开关")

    # 适用范围
    is_global = Column(Boolean, nullable=False, default=False, index=True, comment="是否全店通用")
    vendor_id = Column(String(50), index=True, comment="限定商家ID")

    # 时间戳
    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), comment="更新时间")

    # 关系映射
    product_scopes = relationship("RuleProductDB", cascade="all, delete-orphan", lazy="selectin")
    category_scopes = relationship("RuleCategoryDB", cascade="all, delete-orphan", lazy="selectin")
    brand_scopes = relationship("RuleBrandDB", cascade="all, delete-orphan", lazy="selectin")
    vendor_scopes = relationship("RuleVendorDB", cascade="all, delete-orphan", lazy="selectin")

    __table_args__ = (
        {'comment': '促销规则表'}
    )


class RuleProductDB(Base):
    """规则-商品关联表"""

    __tablename__ = "rule_products"

    rule_id = Column(String(50), ForeignKey("promotional_rules.id", ondelete="CASCADE"), primary_key=True, comment="规则ID")
    product_id = Column(String(50), primary_key=True, index=True, comment="商品ID")

    __table_args__ = (
        {'comment': '规则商品关联表'}
    )


class RuleCategoryDB(Base):
    """规则-分类关联表"""

    __tablename__ = "rule_categories"

    rule_id = Column(String(50), ForeignKey("promotional_rules.id", ondelete="CASCADE"), primary_key=True, comment="规则ID")
    category_id = Column(String(50), primary_key=True, index=True, comment="分类ID")

    __table_args__ = (
        {'comment': '规则分类关联表'}
    )


class RuleBrandDB(Base):
    """规则-品牌关联表"""

    __tablename__ = "rule_brands"

    rule_id = Column(String(50), ForeignKey("promotional_rules.id", ondelete="CASCADE"), primary_key=True, comment="规则ID")
    brand_id = Column(String(50), primary_key=True, index=True, comment="品牌ID")

    __table_args__ = (
        {'comment': '规则品牌关联表'}
    )


class RuleVendorDB(Base):
    """规则-商家关联表"""

    __tablename__ = "rule_vendors"

    rule_id = Column(String(50), ForeignKey("promotional_rules.id", ondelete="CASCADE"), primary_key=True, comment="规则ID")
    vendor_id = Column(String(50), primary_key=True, index=True, comment="商家ID")

    __table_args__ = (
        {'comment': '规则商家关联表'}
    )


class RuleRedemptionDB(Base):
    """规则使用记录表"""

    __tablename__ = "rule_redemptions"

    # 主键和关联信息
    id = Column(String(50), primary_key=True, comment="使用记录ID")
    rule_id = Column(String(50), ForeignKey("promotional_rules.id"), nullable=False, index=True, comment="规则ID")
    user_id = Column(String(50), nullable=False, index=True, comment="用户ID")
    order_id = Column(String(50), comment="关联订单ID")

    # 使用详情
    discount_amount = Column(Numeric(10, 2), nullable=False, comment="折扣金额")
    used_at = Column(DateTime, server_default=func.now(), comment="使用时间")

    __table_args__ = (
        UniqueConstraint("rule_id", "order_id", name="uq_rule_redemptions_rule_order"),
        {'comment': '规则使用记录表'}
    )
