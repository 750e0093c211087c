"""
促销规则数据库表创建脚本
"""

import asyncio
import sys
from pathlib import Path
from datetime import datetime, timedelta

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy import text
from promo_engine.core.config import settings
from promo_engine.core.database import Base

# 导入所有数据库模型以确保表被注册
from promo_engine.models.database.promotion_db import (  # noqa: F401
    PromotionalRuleDB,
    RuleProductDB,
    RuleCategoryDB,
    RuleBrandDB,
    RuleVendorDB,
    RuleRedemptionDB
)


async def create_database_if_not_exists():
    """创建数据库（如果不存在）"""
    server_url = settings.database_url_computed.replace(f"/{settings.db_name}", "/postgres")

    engine = create_async_engine(server_url, isolation_level="AUTOCOMMIT")

    async with engine.connect() as conn:
        result = await conn.execute(
            text("SELECT 1 FROM pg_database WHERE datname = :db_name"),
            {"db_name": settings.db_name}
        )

        if not result.fetchone():
            await conn.execute(text(f'CREATE DATABASE "{settings.db_name}"'))
            print(f"数据库 '{settings.db_name}' 创建成功")
        else:
            print(f"数据库 '{settings.db_name}' 已存在")

    await engine.dispose()


async def create_tables():
    """创建所有数据表"""
    engine = create_async_engine(settings.database_url_computed)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        print("所有数据表创建成功")

    await engine.dispose()


async def create_indexes():
    """创建额外的索引"""
    engine = create_async_engine(settings.database_url_computed)

    indexes = [
        # 有效规则查询
        "CREATE INDEX IF NOT EXISTS idx_rules_eligibility ON promotional_rules(is_active, status, start_date, end_date);",
        "CREATE INDEX IF NOT EXISTS idx_rules_global_automatic ON promotional_rules(is_global) WHERE code IS NULL;",

        # 使用记录
        "CREATE INDEX IF NOT EXISTS idx_redemptions_user_rule ON rule_redemptions(user_id, rule_id);"
    ]

    async with engine.begin() as conn:
        for index_sql in indexes:
            await conn.execute(text(index_sql))
        print("所有索引创建成功")

    await engine.dispose()


async def insert_sample_rules():
    """插入示例促销规则"""
    engine = create_async_engine(settings.database_url_computed)

    now = datetime.now()
    sample_rules = [
        {
            "id": "storewide_10",
            "code": None,
            "name": "全店满100减10%",
            "discount_type": "percentage",
            "value": 10,
            "minimum_order_amount": 100,
            "maximum_discount_amount": 50,
            "is_global": True,
            "start_date": now,
            "end_date": now + timedelta(days=30),
            "usage_limit": None,
            "usage_limit_per_user": 0
        },
        {
            "id": "welcome_5",
            "code": "WELCOME5",
            "name": "新用户5元券",
            "discount_type": "fixed_amount",
            "value": 5,
            "minimum_order_amount": 25,
            "maximum_discount_amount": None,
            "is_global": True,
            "start_date": now,
            "end_date": now + timedelta(days=60),
            "usage_limit": 1000,
            "usage_limit_per_user": 1
        },
        {
            "id": "ship_free",
            "code": "SHIPFREE",
            "name": "免运费券",
            "discount_type": "free_shipping",
            "value": 0,
            "minimum_order_amount": 0,
            "maximum_discount_amount": None,
            "is_global": True,
            "start_date": now,
            "end_date": None,
            "usage_limit": None,
            "usage_limit_per_user": 3
        }
    ]

    async with engine.begin() as conn:
        for rule in sample_rules:
            result = await conn.execute(
                text("SELECT 1 FROM promotional_rules WHERE id = :id"),
                {"id": rule["id"]}
            )

            if not result.fetchone():
                await conn.execute(
                    text("""
                        INSERT INTO promotional_rules (
                            id, code, name, discount_type, value, minimum_order_amount,
                            maximum_discount_amount, usage_limit, usage_limit_per_user, used_count,
                            status, start_date, end_date, is_active, is_global
                        ) VALUES (
                            :id, :code, :name, :discount_type, :value, :minimum_order_amount,
                            :maximum_discount_amount, :usage_limit, :usage_limit_per_user, 0,
                            'active', :start_date, :end_date, true, :is_global
                        )
                    """),
                    rule
                )
                print(f"插入规则: {rule['name']}")
            else:
                print(f"规则已存在: {rule['name']}")

    await engine.dispose()


async def main():
    """主函数"""
    print("开始创建促销规则数据库表...")

    try:
        # 1. 创建数据库
        await create_database_if_not_exists()

        # 2. 创建表结构
        await create_tables()

        # 3. 创建索引
        await create_indexes()

        # 4. 插入示例数据
        await insert_sample_rules()

        print("促销规则数据库初始化完成！")

    except Exception as e:
        print(f"数据库初始化失败: {e}")
        import traceback
        traceback.print_exc()


if __name__ == "__main__":
    asyncio.run(main())
