"""
促销规则数据库操作层
所有批量查询都以一次范围过滤完成，不按商品逐个查询
"""

import logging
import uuid
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update, and_, or_, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from promo_engine.models.promotion import (
    PromotionalRule,
    RedemptionRecord,
    RuleScopes,
    RuleStatus,
    ScopeFilter,
    build_rule_kind
)
from promo_engine.models.database.promotion_db import (
    PromotionalRuleDB,
    RuleProductDB,
    RuleCategoryDB,
    RuleBrandDB,
    RuleVendorDB,
    RuleRedemptionDB
)


logger = logging.getLogger(__name__)


class RuleRepository:
    """促销规则数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _eligible_conditions(self, current_time: datetime) -> list:
        """规则可参与计算的基础条件"""
        return [
            PromotionalRuleDB.is_active.is_(True),
            PromotionalRuleDB.status == RuleStatus.ACTIVE.value,
            PromotionalRuleDB.start_date <= current_time,
            or_(
                PromotionalRuleDB.end_date.is_(None),
                PromotionalRuleDB.end_date >= current_time
            ),
            or_(
                PromotionalRuleDB.usage_limit.is_(None),
                PromotionalRuleDB.used_count < PromotionalRuleDB.usage_limit
            )
        ]

    async def fetch_eligible_rules(
        self,
        scope_filter: ScopeFilter,
        current_time: Optional[datetime] = None
    ) -> List[PromotionalRule]:
        """
        获取与给定商品/分类/品牌/商家集合相关的全部有效自动折扣
        一次主查询加固定数量的关联加载，与商品数量无关
        """
        if current_time is None:
            current_time = datetime.now()

        # 全店规则总是候选，其余规则需命中任一关联
        scope_conditions = [PromotionalRuleDB.is_global.is_(True)]
        if scope_filter.product_ids:
            scope_conditions.append(PromotionalRuleDB.id.in_(
                select(RuleProductDB.rule_id).where(RuleProductDB.product_id.in_(scope_filter.product_ids))
            ))
        if scope_filter.category_ids:
            scope_conditions.append(PromotionalRuleDB.id.in_(
                select(RuleCategoryDB.rule_id).where(RuleCategoryDB.category_id.in_(scope_filter.category_ids))
            ))
        if scope_filter.brand_ids:
            scope_conditions.append(PromotionalRuleDB.id.in_(
                select(RuleBrandDB.rule_id).where(RuleBrandDB.brand_id.in_(scope_filter.brand_ids))
            ))
        if scope_filter.vendor_ids:
            scope_conditions.append(PromotionalRuleDB.id.in_(
                select(RuleVendorDB.rule_id).where(RuleVendorDB.vendor_id.in_(scope_filter.vendor_ids))
            ))

        query = select(PromotionalRuleDB).where(
            and_(
                *self._eligible_conditions(current_time),
                PromotionalRuleDB.code.is_(None),
                or_(*scope_conditions)
            )
        ).order_by(PromotionalRuleDB.created_at.desc())

        result = await self.db.execute(query)
        return self._to_models(result.scalars().all())

    async def fetch_global_automatic_rules(
        self,
        current_time: Optional[datetime] = None
    ) -> List[PromotionalRule]:
        """获取全店自动折扣（无需输入代码）"""
        if current_time is None:
            current_time = datetime.now()

        query = select(PromotionalRuleDB).where(
            and_(
                *self._eligible_conditions(current_time),
                PromotionalRuleDB.is_global.is_(True),
                PromotionalRuleDB.code.is_(None)
            )
        ).order_by(PromotionalRuleDB.created_at.desc())

        result = await self.db.execute(query)
        return self._to_models(result.scalars().all())

    async def fetch_rule_by_code(self, code: str) -> Optional[PromotionalRule]:
        """根据优惠券代码获取规则"""
        result = await self.db.execute(
            select(PromotionalRuleDB)
            .where(PromotionalRuleDB.code == code)
            .execution_options(populate_existing=True)
        )
        db_rule = result.scalar_one_or_none()
        return self._safe_to_model(db_rule) if db_rule else None

    async def fetch_active_coupons(
        self,
        current_time: Optional[datetime] = None
    ) -> List[PromotionalRule]:
        """获取当前可用的优惠券"""
        if current_time is None:
            current_time = datetime.now()

        query = select(PromotionalRuleDB).where(
            and_(
                *self._eligible_conditions(current_time),
                PromotionalRuleDB.code.is_not(None)
            )
        ).order_by(PromotionalRuleDB.created_at.desc())

        result = await self.db.execute(query)
        return self._to_models(result.scalars().all())

    async def count_user_redemptions(self, user_id: str, rule_id: str) -> int:
        """获取用户对特定规则的使用次数"""
        result = await self.db.execute(
            select(func.count(RuleRedemptionDB.id)).where(
                and_(
                    RuleRedemptionDB.user_id == user_id,
                    RuleRedemptionDB.rule_id == rule_id
                )
            )
        )
        return result.scalar() or 0

    async def count_user_redemptions_batch(self, user_id: str, rule_ids: List[str]) -> dict:
        """批量获取用户对多个规则的使用次数"""
        if not rule_ids:
            return {}

        result = await self.db.execute(
            select(
                RuleRedemptionDB.rule_id,
                func.count(RuleRedemptionDB.id).label("used")
            ).where(
                and_(
                    RuleRedemptionDB.user_id == user_id,
                    RuleRedemptionDB.rule_id.in_(rule_ids)
                )
            ).group_by(RuleRedemptionDB.rule_id)
        )
        return {row.rule_id: row.used for row in result.fetchall()}

    async def record_redemption(
        self,
        rule_id: str,
        user_id: str,
        order_id: Optional[str],
        discount_amount: Decimal
    ) -> Optional[RedemptionRecord]:
        """
        记录规则使用并原子递增使用次数
        条件更新失败（并发下已用完）时返回None，由调用方决定回滚
        """
        now = datetime.now()

        # 比较并递增，达到上限时同时切换为已用完
        result = await self.db.execute(
            update(PromotionalRuleDB)
            .where(
                and_(
                    PromotionalRuleDB.id == rule_id,
                    or_(
                        PromotionalRuleDB.usage_limit.is_(None),
                        PromotionalRuleDB.used_count < PromotionalRuleDB.usage_limit
                    )
                )
            )
            .values(
                used_count=PromotionalRuleDB.used_count + 1,
                status=case(
                    (
                        and_(
                            PromotionalRuleDB.usage_limit.is_not(None),
                            PromotionalRuleDB.used_count + 1 >= PromotionalRuleDB.usage_limit
                        ),
                        RuleStatus.USED_UP.value
                    ),
                    else_=PromotionalRuleDB.status
                ),
                updated_at=now
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            return None

        redemption = RuleRedemptionDB(
            id=str(uuid.uuid4()),
            rule_id=rule_id,
            user_id=user_id,
            order_id=order_id,
            discount_amount=discount_amount,
            used_at=now
        )
        self.db.add(redemption)
        await self.db.flush()

        return RedemptionRecord(
            id=redemption.id,
            user_id=user_id,
            rule_id=rule_id,
            order_id=order_id,
            discount_amount=discount_amount,
            used_at=now
        )

    def _safe_to_model(self, db_rule: PromotionalRuleDB) -> Optional[PromotionalRule]:
        """单条规则数据异常时记录并跳过，不影响其余规则"""
        try:
            return self.to_model(db_rule)
        except ValueError as e:
            # pydantic.ValidationError 也是 ValueError
            logger.error(f"促销规则数据异常，已跳过 {db_rule.id}: {e}")
            return None

    def _to_models(self, db_rules) -> List[PromotionalRule]:
        rules = []
        for db_rule in db_rules:
            rule = self._safe_to_model(db_rule)
            if rule is not None:
                rules.append(rule)
        return rules

    def to_model(self, db_rule: PromotionalRuleDB) -> PromotionalRule:
        """转换为Pydantic模型"""
        return PromotionalRule(
            id=db_rule.id,
            code=db_rule.code,
            name=db_rule.name or "",
            description=db_rule.description,
            kind=build_rule_kind(
                db_rule.discount_type,
                value=db_rule.value,
                maximum_discount_amount=db_rule.maximum_discount_amount
            ),
            minimum_order_amount=db_rule.minimum_order_amount or Decimal("0"),
            usage_limit=db_rule.usage_limit,
            usage_limit_per_user=1 if db_rule.usage_limit_per_user is None else db_rule.usage_limit_per_user,
            used_count=db_rule.used_count or 0,
            status=db_rule.status,
            start_date=db_rule.start_date,
            end_date=db_rule.end_date,
            is_active=db_rule.is_active,
            is_global=db_rule.is_global,
            vendor_id=db_rule.vendor_id,
            scopes=RuleScopes(
                product_ids=[s.product_id for s in db_rule.product_scopes],
                category_ids=[s.category_id for s in db_rule.category_scopes],
                brand_ids=[s.brand_id for s in db_rule.brand_scopes],
                vendor_ids=[s.vendor_id for s in db_rule.vendor_scopes]
            ),
            created_at=db_rule.created_at or db_rule.start_date,
            updated_at=db_rule.updated_at or db_rule.start_date
        )
