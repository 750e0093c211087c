"""
测试配置文件 - pytest fixtures和共用配置
"""

import pytest
import pytest_asyncio
from decimal import Decimal
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from promo_engine.core.database import Base
from promo_engine.models.pricing import Product
from promo_engine.models.promotion import PromotionalRule, RuleScopes, RuleStatus, build_rule_kind
from promo_engine.models.database.promotion_db import (
    PromotionalRuleDB,
    RuleProductDB,
    RuleCategoryDB,
    RuleBrandDB,
    RuleVendorDB,
    RuleRedemptionDB
)


# 配置pytest-asyncio
pytest_plugins = ('pytest_asyncio',)

# 固定的计算时间，避免测试依赖系统时钟
NOW = datetime(2026, 6, 1, 12, 0, 0)


def build_rule(
    rule_id: str = "rule_001",
    discount_type: str = "percentage",
    value: Optional[str] = "10",
    maximum_discount_amount: Optional[str] = None,
    code: Optional[str] = None,
    created_at: Optional[datetime] = None,
    product_ids=None,
    category_ids=None,
    brand_ids=None,
    vendor_ids=None,
    **overrides
) -> PromotionalRule:
    """构造测试用促销规则，默认在NOW时刻有效"""
    data = {
        "id": rule_id,
        "code": code,
        "name": f"测试规则 {rule_id}",
        "kind": build_rule_kind(
            discount_type,
            value=Decimal(value) if value is not None else None,
            maximum_discount_amount=Decimal(maximum_discount_amount) if maximum_discount_amount else None
        ),
        "status": RuleStatus.ACTIVE,
        "start_date": NOW - timedelta(days=1),
        "end_date": NOW + timedelta(days=30),
        "is_active": True,
        "is_global": False,
        "scopes": RuleScopes(
            product_ids=product_ids or [],
            category_ids=category_ids or [],
            brand_ids=brand_ids or [],
            vendor_ids=vendor_ids or []
        ),
        "created_at": created_at or NOW - timedelta(days=2),
        "updated_at": created_at or NOW - timedelta(days=2)
    }
    data.update(overrides)
    return PromotionalRule(**data)


@pytest.fixture
def make_rule():
    """促销规则工厂"""
    return build_rule


@pytest.fixture
def sample_products():
    """示例商品，覆盖不同分类/品牌/商家"""
    return [
        Product(id="p_shoe", name="跑鞋", price=Decimal("100.00"), category_id="c_shoes", brand_id="b_swift", vendor_id="v_alpha"),
        Product(id="p_shirt", name="T恤", price=Decimal("40.00"), category_id="c_apparel", brand_id="b_cotton", vendor_id="v_alpha"),
        Product(id="p_mug", name="马克杯", price=Decimal("12.50"), category_id="c_home", brand_id=None, vendor_id="v_beta")
    ]


@pytest_asyncio.fixture(scope="function")
async def test_db_engine():
    """测试数据库引擎 - 使用真实PostgreSQL，不可用时跳过"""
    from promo_engine.core.config import settings

    test_db_url = settings.database_url_computed.replace(
        settings.db_name,
        f"{settings.db_name}_test"
    )

    engine = create_async_engine(
        test_db_url,
        echo=False,  # 设为True可以看到SQL语句
        pool_pre_ping=True
    )

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            # 每个测试从空表开始
            for model in (RuleRedemptionDB, RuleProductDB, RuleCategoryDB, RuleBrandDB, RuleVendorDB, PromotionalRuleDB):
                await conn.execute(delete(model))
    except (SQLAlchemyError, OSError):
        await engine.dispose()
        pytest.skip("PostgreSQL not available")

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_db_engine) -> AsyncSession:
    """测试数据库会话"""
    async_session_maker = async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
