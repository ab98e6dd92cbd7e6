"""
用户持券 / 兑换数据库操作层

兑换的写操作都是数据库层面的原子操作：
首次兑换靠 (user_id, voucher_id) 唯一约束，再次兑换靠带条件的 UPDATE，
受影响行数为0即视为已被兑换。
"""

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import select, update, and_, or_, case, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wonderstars.models.voucher import UserVoucher, UserVoucherStatus, Voucher
from wonderstars.models.database.voucher_db import UserVoucherDB, VoucherRedemptionLogDB


class UserVoucherRepository:
    """用户持券数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: str, voucher_id: str) -> Optional[UserVoucherDB]:
        """获取用户对某张券的持券记录"""
        result = await self.db.execute(
            select(UserVoucherDB).where(
                and_(
                    UserVoucherDB.user_id == user_id,
                    UserVoucherDB.voucher_id == voucher_id
                )
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: str, status: Optional[str] = None) -> List[UserVoucherDB]:
        """获取用户持券列表，最新的在前"""
        conditions = [UserVoucherDB.user_id == user_id]
        if status:
            conditions.append(UserVoucherDB.status == status)

        result = await self.db.execute(
            select(UserVoucherDB)
            .where(and_(*conditions))
            .order_by(desc(UserVoucherDB.created_at))
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def expire_stale(self, user_id: str, now: datetime) -> int:
        """把已过有效期的可用券标记为过期"""
        result = await self.db.execute(
            update(UserVoucherDB)
            .where(
                and_(
                    UserVoucherDB.user_id == user_id,
                    UserVoucherDB.status == UserVoucherStatus.AVAILABLE.value,
                    UserVoucherDB.expires_at.is_not(None),
                    UserVoucherDB.expires_at < now
                )
            )
            .values(status=UserVoucherStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def claim(
        self,
        user_id: str,
        voucher: Voucher,
        expires_at: Optional[datetime] = None
    ) -> UserVoucherDB:
        """领取优惠券，已领取则返回原记录；expires_at 覆盖券本身的有效期"""
        existing = await self.get(user_id, voucher.id)
        if existing is not None:
            return existing

        if expires_at is None and not voucher.is_daily_redeemable:
            expires_at = voucher.expires_at

        row = UserVoucherDB(
            user_id=user_id,
            voucher_id=voucher.id,
            status=UserVoucherStatus.AVAILABLE.value,
            is_daily_voucher=voucher.is_daily_redeemable,
            redemption_count=0,
            usage_count=0,
            max_usage_count=voucher.usage_limit_per_user,
            expires_at=expires_at
        )
        try:
            async with self.db.begin_nested():
                self.db.add(row)
        except IntegrityError:
            # 并发领取，另一请求已插入
            return await self.get(user_id, voucher.id)

        await self.db.refresh(row)
        return row

    async def insert_first_redemption(
        self,
        user_id: str,
        voucher: Voucher,
        method: str,
        today: date,
        expires_at: Optional[datetime]
    ) -> Optional[UserVoucherDB]:
        """
        首次兑换：插入已兑换状态的持券记录和兑换流水

        唯一约束冲突说明并发请求已先完成，返回None。
        """
        if voucher.is_daily_redeemable:
            row = UserVoucherDB(
                user_id=user_id,
                voucher_id=voucher.id,
                status=UserVoucherStatus.AVAILABLE.value,
                is_daily_voucher=True,
                redemption_count=1,
                usage_count=0,
                max_usage_count=voucher.usage_limit_per_user,
                last_redeemed_date=today,
                expires_at=expires_at,
                redemption_method=method
            )
        else:
            exhausted = voucher.usage_limit_per_user <= 1
            row = UserVoucherDB(
                user_id=user_id,
                voucher_id=voucher.id,
                status=UserVoucherStatus.USED.value if exhausted else UserVoucherStatus.AVAILABLE.value,
                is_daily_voucher=False,
                redemption_count=1,
                usage_count=1,
                max_usage_count=voucher.usage_limit_per_user,
                last_redeemed_date=today,
                expires_at=voucher.expires_at,
                redemption_method=method
            )

        try:
            async with self.db.begin_nested():
                self.db.add(row)
                await self.db.flush()
                self.db.add(VoucherRedemptionLogDB(
                    user_voucher_id=row.id,
                    user_id=user_id,
                    voucher_id=voucher.id,
                    redeemed_date=today if voucher.is_daily_redeemable else None,
                    redemption_method=method
                ))
        except IntegrityError:
            return None
        return row

    async def mark_redeemed_today(
        self,
        user_voucher_id: str,
        today: date,
        expires_at: datetime,
        method: str
    ) -> bool:
        """
        每日券再次兑换：只有 last_redeemed_date 不是今天时才更新

        两个同日并发请求只有一个能让这条 UPDATE 命中行。
        """
        try:
            async with self.db.begin_nested():
                result = await self.db.execute(
                    update(UserVoucherDB)
                    .where(
                        and_(
                            UserVoucherDB.id == user_voucher_id,
                            or_(
                                UserVoucherDB.last_redeemed_date.is_(None),
                                UserVoucherDB.last_redeemed_date != today
                            )
                        )
                    )
                    .values(
                        last_redeemed_date=today,
                        redemption_count=UserVoucherDB.redemption_count + 1,
                        expires_at=expires_at,
                        status=UserVoucherStatus.AVAILABLE.value,
                        redemption_method=method
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    return False

                user_voucher = await self.db.get(UserVoucherDB, user_voucher_id)
                self.db.add(VoucherRedemptionLogDB(
                    user_voucher_id=user_voucher_id,
                    user_id=user_voucher.user_id,
                    voucher_id=user_voucher.voucher_id,
                    redeemed_date=today,
                    redemption_method=method
                ))
                await self.db.flush()
        except IntegrityError:
            # 流水表的 (user_voucher_id, redeemed_date) 唯一约束兜底
            return False
        return True

    async def mark_used(self, user_voucher_id: str, today: date, method: str) -> bool:
        """
        单次券使用：只有状态为 available 且还有剩余次数时才更新
        """
        async with self.db.begin_nested():
            result = await self.db.execute(
                update(UserVoucherDB)
                .where(
                    and_(
                        UserVoucherDB.id == user_voucher_id,
                        UserVoucherDB.status == UserVoucherStatus.AVAILABLE.value,
                        UserVoucherDB.usage_count < UserVoucherDB.max_usage_count
                    )
                )
                .values(
                    usage_count=UserVoucherDB.usage_count + 1,
                    redemption_count=UserVoucherDB.redemption_count + 1,
                    last_redeemed_date=today,
                    redemption_method=method,
                    status=case(
                        (UserVoucherDB.usage_count + 1 >= UserVoucherDB.max_usage_count, UserVoucherStatus.USED.value),
                        else_=UserVoucherStatus.AVAILABLE.value
                    )
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return False

            user_voucher = await self.db.get(UserVoucherDB, user_voucher_id)
            self.db.add(VoucherRedemptionLogDB(
                user_voucher_id=user_voucher_id,
                user_id=user_voucher.user_id,
                voucher_id=user_voucher.voucher_id,
                redeemed_date=None,
                redemption_method=method
            ))
            await self.db.flush()
        return True

    async def reissue(self, user_voucher_id: str, expires_at: Optional[datetime]) -> bool:
        """重新发放已持有的券：恢复可用、清零使用次数、更新有效期"""
        result = await self.db.execute(
            update(UserVoucherDB)
            .where(UserVoucherDB.id == user_voucher_id)
            .values(
                status=UserVoucherStatus.AVAILABLE.value,
                usage_count=0,
                expires_at=expires_at
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def refresh(self, row: UserVoucherDB) -> UserVoucherDB:
        await self.db.refresh(row)
        return row

    def to_model(self, row: UserVoucherDB, voucher: Optional[Voucher] = None) -> UserVoucher:
        """转换为Pydantic模型"""
        return UserVoucher(
            id=row.id,
            user_id=row.user_id,
            voucher_id=row.voucher_id,
            status=row.status,
            is_daily_voucher=bool(row.is_daily_voucher),
            redemption_count=row.redemption_count or 0,
            usage_count=row.usage_count or 0,
            max_usage_count=row.max_usage_count or 1,
            last_redeemed_date=row.last_redeemed_date,
            expires_at=row.expires_at,
            redemption_method=row.redemption_method,
            created_at=row.created_at,
            updated_at=row.updated_at,
            voucher=voucher
        )
