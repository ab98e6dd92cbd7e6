from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, AsyncEngine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool
from sqlalchemy.exc import OperationalError, InterfaceError
from sqlalchemy import text
from typing import AsyncGenerator, Awaitable, Callable, Optional, TypeVar
import asyncio
import logging

from wonderstars.core.config import settings
from wonderstars.core.exceptions import DatastoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 创建基础模型类
Base = declarative_base()

# 全局数据库引擎
engine: AsyncEngine = None
async_session_maker: sessionmaker = None


async def init_database() -> None:
    """初始化数据库连接"""
    global engine, async_session_maker

    try:
        engine_kwargs = {
            "echo": settings.debug,  # 调试模式下打印SQL
            "pool_pre_ping": True,  # 连接前ping检查
            "pool_recycle": 3600,   # 连接回收时间1小时
        }
        if settings.is_testing:
            engine_kwargs["poolclass"] = NullPool

        # 创建异步数据库引擎
        engine = create_async_engine(settings.database_url_computed, **engine_kwargs)

        # 创建异步session工厂
        async_session_maker = sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        logger.info("数据库连接初始化成功")

    except Exception as e:
        logger.error(f"数据库连接初始化失败: {e}")
        raise


async def close_database() -> None:
    """关闭数据库连接"""
    global engine

    if engine:
        await engine.dispose()
        logger.info("数据库连接已关闭")


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """获取数据库会话依赖注入函数"""
    if not async_session_maker:
        raise RuntimeError("数据库未初始化，请先调用 init_database()")

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def with_timeout(awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
    """为单次数据库调用加上超时，超时或连接错误统一转成 DatastoreError"""
    timeout = timeout if timeout is not None else settings.datastore_timeout_seconds
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.error(f"数据库调用超时 ({timeout}s)")
        raise DatastoreError(details={"reason": "timeout"}) from e
    except (OperationalError, InterfaceError) as e:
        logger.error(f"数据库连接异常: {e}")
        raise DatastoreError(details={"reason": "connection"}) from e


async def retry_read(
    operation: Callable[[], Awaitable[T]],
    attempts: Optional[int] = None,
    description: str = "read",
) -> T:
    """
    只读查询的有限重试

    写操作（发放、兑换）不能经过这里：它们的幂等性靠唯一约束保证，
    由调用方决定是否重放。
    """
    attempts = attempts or settings.read_retry_attempts
    last_error: Optional[DatastoreError] = None

    for attempt in range(1, attempts + 1):
        try:
            return await with_timeout(operation())
        except DatastoreError as e:
            last_error = e
            logger.warning(f"读取失败 {description}，第{attempt}/{attempts}次")
            if attempt < attempts:
                await asyncio.sleep(settings.read_retry_backoff_seconds * attempt)

    raise last_error


class DatabaseService:
    """数据库服务类"""

    @property
    def engine(self):
        return engine

    @property
    def session_maker(self):
        return async_session_maker

    async def health_check(self) -> dict:
        """数据库健康检查"""
        try:
            if not self.engine:
                return {"status": "error", "message": "数据库引擎未初始化"}

            # 执行简单查询测试连接
            async with self.engine.begin() as conn:
                result = await conn.execute(text("SELECT 1"))
                row = result.fetchone()

            return {
                "status": "healthy",
                "message": "数据库连接正常",
                "test_query_result": row[0] if row else None
            }

        except Exception as e:
            return {
                "status": "error",
                "message": f"数据库连接失败: {str(e)}"
            }


# 全局数据库服务实例
database_service = DatabaseService()
