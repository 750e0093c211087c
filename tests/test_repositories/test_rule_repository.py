"""
促销规则Repository数据库操作测试 - 使用真实数据库
"""

import pytest
from decimal import Decimal
from datetime import timedelta
from unittest.mock import MagicMock

from promo_engine.models.promotion import DiscountType, RuleStatus, ScopeFilter, PercentageKind
from promo_engine.models.database.promotion_db import (
    PromotionalRuleDB,
    RuleProductDB,
    RuleCategoryDB,
    RuleBrandDB,
    RuleVendorDB,
    RuleRedemptionDB
)
from promo_engine.repositories.rule_repository import RuleRepository
from conftest import NOW


def _rule_db(rule_id: str, **overrides) -> PromotionalRuleDB:
    data = {
        "id": rule_id,
        "code": None,
        "name": f"规则 {rule_id}",
        "discount_type": "percentage",
        "value": Decimal("10.00"),
        "minimum_order_amount": Decimal("0"),
        "usage_limit_per_user": 1,
        "used_count": 0,
        "status": "active",
        "start_date": NOW - timedelta(days=1),
        "end_date": NOW + timedelta(days=30),
        "is_active": True,
        "is_global": False,
        "created_at": NOW - timedelta(days=2),
        "updated_at": NOW - timedelta(days=2)
    }
    data.update(overrides)
    return PromotionalRuleDB(**data)


@pytest.mark.asyncio
class TestRuleRepository:
    """促销规则Repository数据库操作测试类"""

    async def test_fetch_eligible_rules_by_scope(self, db_session):
        """按范围批量获取有效自动折扣"""
        db_session.add_all([
            _rule_db("storewide", is_global=True),
            _rule_db("by_product", product_scopes=[RuleProductDB(product_id="p1")]),
            _rule_db("by_category", category_scopes=[RuleCategoryDB(category_id="c1")]),
            _rule_db("by_brand", brand_scopes=[RuleBrandDB(brand_id="b1")]),
            _rule_db("by_vendor", vendor_scopes=[RuleVendorDB(vendor_id="v1")]),
            _rule_db("other_product", product_scopes=[RuleProductDB(product_id="p9")]),
            _rule_db("coupon", code="SAVE10", is_global=True),
            _rule_db("expired", is_global=True, end_date=NOW - timedelta(days=1)),
            _rule_db("switched_off", is_global=True, is_active=False),
            _rule_db("used_up", is_global=True, usage_limit=3, used_count=3)
        ])
        await db_session.commit()

        repo = RuleRepository(db_session)
        rules = await repo.fetch_eligible_rules(
            ScopeFilter(product_ids=["p1"], category_ids=["c1"], brand_ids=["b1"], vendor_ids=["v1"]),
            current_time=NOW
        )

        assert sorted(rule.id for rule in rules) == [
            "by_brand", "by_category", "by_product", "by_vendor", "storewide"
        ]
        by_id = {rule.id: rule for rule in rules}
        assert by_id["by_product"].scopes.product_ids == ["p1"]
        assert by_id["by_vendor"].scopes.vendor_ids == ["v1"]
        assert by_id["storewide"].has_scope_associations is False

    async def test_fetch_eligible_rules_empty_filter_returns_globals(self, db_session):
        db_session.add_all([
            _rule_db("storewide", is_global=True),
            _rule_db("by_product", product_scopes=[RuleProductDB(product_id="p1")])
        ])
        await db_session.commit()

        rules = await RuleRepository(db_session).fetch_eligible_rules(ScopeFilter(), current_time=NOW)

        assert [rule.id for rule in rules] == ["storewide"]

    async def test_fetch_global_automatic_rules(self, db_session):
        """全店自动折扣不包含优惠券和非全店规则"""
        db_session.add_all([
            _rule_db("auto", is_global=True),
            _rule_db("coupon", code="WELCOME", is_global=True),
            _rule_db("scoped", product_scopes=[RuleProductDB(product_id="p1")])
        ])
        await db_session.commit()

        rules = await RuleRepository(db_session).fetch_global_automatic_rules(current_time=NOW)

        assert [rule.id for rule in rules] == ["auto"]

    async def test_fetch_rule_by_code(self, db_session):
        """根据代码获取优惠券"""
        db_session.add(_rule_db(
            "coupon",
            code="HALF",
            discount_type="percentage",
            value=Decimal("50.00"),
            maximum_discount_amount=Decimal("10.00")
        ))
        await db_session.commit()

        repo = RuleRepository(db_session)
        rule = await repo.fetch_rule_by_code("HALF")

        assert rule is not None
        assert rule.discount_type == DiscountType.PERCENTAGE
        assert isinstance(rule.kind, PercentageKind)
        assert rule.kind.maximum_discount_amount == Decimal("10.00")
        assert await repo.fetch_rule_by_code("NONEXISTENT") is None

    async def test_fetch_active_coupons(self, db_session):
        db_session.add_all([
            _rule_db("live", code="LIVE"),
            _rule_db("future", code="FUTURE", start_date=NOW + timedelta(days=1)),
            _rule_db("auto", is_global=True)
        ])
        await db_session.commit()

        coupons = await RuleRepository(db_session).fetch_active_coupons(current_time=NOW)

        assert [coupon.code for coupon in coupons] == ["LIVE"]

    async def test_record_redemption_increments_and_marks_used_up(self, db_session):
        """核销递增使用次数，达到上限后切换为已用完"""
        db_session.add(_rule_db("limited", code="LIMITED", usage_limit=2, used_count=1))
        await db_session.commit()

        repo = RuleRepository(db_session)
        record = await repo.record_redemption("limited", "user_001", "order_001", Decimal("5.00"))
        await db_session.commit()

        assert record is not None
        assert record.rule_id == "limited"
        rule = await repo.fetch_rule_by_code("LIMITED")
        assert rule.used_count == 2
        assert rule.status == RuleStatus.USED_UP

        # 已达上限，条件更新不再生效
        assert await repo.record_redemption("limited", "user_002", "order_002", Decimal("5.00")) is None

    async def test_record_redemption_without_limit(self, db_session):
        db_session.add(_rule_db("open", code="OPEN", usage_limit=None))
        await db_session.commit()

        repo = RuleRepository(db_session)
        for i in range(3):
            assert await repo.record_redemption("open", "user_001", f"order_{i}", Decimal("1.00")) is not None
        await db_session.commit()

        rule = await repo.fetch_rule_by_code("OPEN")
        assert rule.used_count == 3
        assert rule.status == RuleStatus.ACTIVE

    async def test_count_user_redemptions(self, db_session):
        """统计用户使用次数"""
        db_session.add_all([_rule_db("r1", code="R1"), _rule_db("r2", code="R2")])
        await db_session.commit()
        db_session.add_all([
            RuleRedemptionDB(id="u1", rule_id="r1", user_id="user_001", order_id="o1",
                             discount_amount=Decimal("1.00"), used_at=NOW),
            RuleRedemptionDB(id="u2", rule_id="r1", user_id="user_001", order_id="o2",
                             discount_amount=Decimal("1.00"), used_at=NOW),
            RuleRedemptionDB(id="u3", rule_id="r2", user_id="user_002", order_id="o3",
                             discount_amount=Decimal("1.00"), used_at=NOW)
        ])
        await db_session.commit()

        repo = RuleRepository(db_session)

        assert await repo.count_user_redemptions("user_001", "r1") == 2
        assert await repo.count_user_redemptions("user_001", "r2") == 0
        assert await repo.count_user_redemptions_batch("user_001", ["r1", "r2"]) == {"r1": 2}
        assert await repo.count_user_redemptions_batch("user_001", []) == {}

    async def test_zero_per_user_limit_is_preserved(self, db_session):
        """单用户限制0表示不限，读取后不被改写"""
        db_session.add(_rule_db("anytime", code="ANYTIME", is_global=True, usage_limit_per_user=0))
        await db_session.commit()

        repo = RuleRepository(db_session)
        rule = await repo.fetch_rule_by_code("ANYTIME")

        assert rule.usage_limit_per_user == 0

    async def test_malformed_rule_is_skipped(self, db_session):
        """未知折扣类型的规则被跳过，其余规则照常返回"""
        db_session.add_all([
            _rule_db("storewide", is_global=True),
            _rule_db("bogo", is_global=True, discount_type="bogo")
        ])
        await db_session.commit()

        repo = RuleRepository(db_session)
        rules = await repo.fetch_eligible_rules(ScopeFilter(), current_time=NOW)

        assert [rule.id for rule in rules] == ["storewide"]


class TestRuleConversion:
    """数据库行到模型的转换，不需要数据库"""

    @pytest.fixture
    def repo(self):
        return RuleRepository(MagicMock())

    def test_zero_per_user_limit(self, repo):
        rule = repo.to_model(_rule_db("anytime", code="ANYTIME", usage_limit_per_user=0))
        assert rule.usage_limit_per_user == 0

    def test_missing_per_user_limit_defaults_to_one(self, repo):
        rule = repo.to_model(_rule_db("legacy", usage_limit_per_user=None))
        assert rule.usage_limit_per_user == 1

    def test_malformed_row_skipped(self, repo):
        rules = repo._to_models([
            _rule_db("bogo", discount_type="bogo"),
            _rule_db("valid")
        ])

        assert [rule.id for rule in rules] == ["valid"]
        assert rules[0].kind == PercentageKind(value=Decimal("10.00"))

    def test_malformed_coupon_looks_like_missing(self, repo):
        assert repo._safe_to_model(_rule_db("bad", code="BAD", discount_type="bogo")) is None
