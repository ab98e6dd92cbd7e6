"""
测试配置文件 - pytest fixtures和共用配置

仓库层测试使用临时文件SQLite（aiosqlite），不依赖PostgreSQL服务：
每个事务以 BEGIN IMMEDIATE 开始，多个会话之间串行化，保存点可用。
"""

import pytest
import pytest_asyncio
from decimal import Decimal

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from wonderstars.core.database import Base
import wonderstars.models.database  # noqa: F401  注册所有表
from wonderstars.models.database import VoucherDB, UserDB
from wonderstars.models.cart import CartLineItem
from wonderstars.models.voucher import Voucher


@pytest_asyncio.fixture(scope="function")
async def test_db_engine(tmp_path):
    """测试数据库引擎 - 临时文件SQLite"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'wonderstars_test.db'}",
        echo=False,  # 设为True可以看到SQL语句
        poolclass=NullPool
    )

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        # 关闭驱动自带的事务管理，由下面的 begin 事件接管
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    # 创建表结构
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_db_engine):
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncSession:
    """测试数据库会话"""
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@pytest.fixture
def create_voucher_row(session_maker):
    """插入一条优惠券记录并提交，返回ID"""

    async def _create(**overrides) -> str:
        data = {
            "code": "DAILYFNB",
            "title": "Daily F&B treat",
            "voucher_type": "amount",
            "value": Decimal("3.00"),
            "application_scope": "order_total",
            "product_application_method": "total_once",
            "restriction_type": "none",
            "is_daily_redeemable": True,
            "is_active": True,
            "usage_limit_per_user": 1,
        }
        data.update(overrides)
        async with session_maker() as session:
            voucher = VoucherDB(**data)
            session.add(voucher)
            await session.commit()
            return voucher.id

    return _create


@pytest.fixture
def create_user_row(session_maker):
    """插入一个用户并提交，返回ID"""

    async def _create(**overrides) -> str:
        data = {
            "phone": "+60123456789",
            "display_name": "Aisyah",
            "wallet_balance": Decimal("0"),
            "bonus_balance": Decimal("0"),
            "stars": Decimal("0"),
        }
        data.update(overrides)
        async with session_maker() as session:
            user = UserDB(**data)
            session.add(user)
            await session.commit()
            return user.id

    return _create


@pytest.fixture
def make_voucher():
    """构造优惠券读模型"""

    def _make(**overrides) -> Voucher:
        data = {
            "id": "voucher_001",
            "code": "DISCOUNT5",
            "voucher_type": "amount",
            "value": Decimal("5"),
            "application_scope": "product_level",
            "product_application_method": "per_product",
            "restriction_type": "none",
            "max_products_per_use": 6,
        }
        data.update(overrides)
        return Voucher(**data)

    return _make


@pytest.fixture
def make_item():
    """构造购物车行"""

    def _make(product_id="p1", unit_price="10.00", quantity=1, **overrides) -> CartLineItem:
        return CartLineItem(
            product_id=product_id,
            unit_price=Decimal(unit_price),
            quantity=quantity,
            **overrides
        )

    return _make
