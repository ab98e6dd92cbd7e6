"""
WonderStars 数据库表创建脚本
"""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from wonderstars.core.config import settings
from wonderstars.core.database import Base

# 导入所有数据库模型以确保表被注册
from wonderstars.models.database import (
    VoucherDB,
    UserVoucherDB,
    VoucherRedemptionLogDB,
    VoucherAutoRuleDB,
    VoucherIssuanceDB,
    UserDB,
    ShopProductDB,
    WalletTransactionDB,
    BonusTransactionDB,
    StarsTransactionDB,
    PhoneVerificationDB,
)


async def create_database_if_not_exists():
    """创建数据库（如果不存在）"""
    # 连接到PostgreSQL服务器（不指定数据库）
    server_url = settings.database_url_computed.replace(f"/{settings.db_name}", "/postgres")

    engine = create_async_engine(server_url, isolation_level="AUTOCOMMIT")

    async with engine.connect() as conn:
        result = await conn.execute(
            text("SELECT 1 FROM pg_database WHERE datname = :db_name"),
            {"db_name": settings.db_name}
        )

        if not result.fetchone():
            await conn.execute(text(f"CREATE DATABASE {settings.db_name}"))
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
        # 用户卡包按状态过滤
        "CREATE INDEX IF NOT EXISTS idx_user_vouchers_user_status ON user_vouchers(user_id, status);",

        # 流水按用户时间倒序
        "CREATE INDEX IF NOT EXISTS idx_wallet_tx_user_time ON wallet_transactions(user_id, created_at);",
        "CREATE INDEX IF NOT EXISTS idx_bonus_tx_user_time ON bonus_transactions(user_id, created_at);",
        "CREATE INDEX IF NOT EXISTS idx_stars_tx_user_time ON stars_transactions(user_id, created_at);",

        # 同一时间只能有一张启用中的特价券
        """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_vouchers_single_special_discount
        ON vouchers(restriction_type)
        WHERE restriction_type = 'special_discount' AND is_active;
        """,
    ]

    async with engine.begin() as conn:
        for index_sql in indexes:
            await conn.execute(text(index_sql))
        print("所有索引创建成功")

    await engine.dispose()


async def insert_sample_vouchers():
    """插入示例优惠券数据"""
    engine = create_async_engine(settings.database_url_computed)

    sample_vouchers = [
        {
            "code": "DISCOUNT5",
            "title": "RM5 off every item",
            "voucher_type": "amount",
            "value": Decimal("5.00"),
            "application_scope": "product_level",
            "product_application_method": "per_product",
            "restriction_type": "none",
            "max_products_per_use": 6,
        },
        {
            "code": "WELCOME10",
            "title": "10% off your first order",
            "voucher_type": "percent",
            "value": Decimal("10"),
            "application_scope": "order_total",
            "min_purchase": Decimal("30.00"),
        },
        {
            "code": "DAILYFNB",
            "title": "Daily F&B treat",
            "voucher_type": "amount",
            "value": Decimal("3.00"),
            "application_scope": "product_level",
            "product_application_method": "total_once",
            "is_daily_redeemable": True,
        },
        {
            "code": "CHECKINFNB",
            "title": "Check-in F&B treat",
            "voucher_type": "amount",
            "value": Decimal("2.00"),
            "application_scope": "product_level",
            "product_application_method": "total_once",
        },
    ]

    async with AsyncSession(engine) as session:
        for voucher in sample_vouchers:
            result = await session.execute(select(VoucherDB).where(VoucherDB.code == voucher["code"]))

            if result.scalar_one_or_none() is None:
                session.add(VoucherDB(**voucher))
                print(f"插入优惠券: {voucher['code']}")
            else:
                print(f"优惠券已存在: {voucher['code']}")

        await session.commit()

    await engine.dispose()


async def insert_sample_auto_rules():
    """插入示例自动发券规则：首次登录送WELCOME10，每日签到送CHECKINFNB"""
    engine = create_async_engine(settings.database_url_computed)

    sample_rules = [
        ("WELCOME10", "first_login", Decimal("0"), 0),
        ("CHECKINFNB", "daily_checkin", Decimal("0"), 0),
    ]

    async with AsyncSession(engine) as session:
        for code, trigger_type, threshold, priority in sample_rules:
            voucher = (await session.execute(select(VoucherDB).where(VoucherDB.code == code))).scalar_one_or_none()
            if voucher is None:
                continue

            result = await session.execute(
                select(VoucherAutoRuleDB).where(VoucherAutoRuleDB.trigger_type == trigger_type)
            )
            if result.first() is None:
                session.add(VoucherAutoRuleDB(
                    voucher_id=voucher.id,
                    trigger_type=trigger_type,
                    threshold_amount=threshold,
                    priority=priority
                ))
                print(f"插入自动发券规则: {trigger_type} -> {code}")

        await session.commit()

    await engine.dispose()


async def main():
    """主函数"""
    print("开始创建WonderStars数据库表...")

    try:
        await create_database_if_not_exists()
        await create_tables()
        await create_indexes()
        await insert_sample_vouchers()
        await insert_sample_auto_rules()

        print("数据库初始化完成！")

    except Exception as e:
        print(f"数据库初始化失败: {e}")
        raise


if __name__ == "__main__":
    asyncio.run(main())
