"""
优惠券目录数据库操作层
"""

from typing import List, Optional, Dict, Any

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from wonderstars.models.voucher import Voucher, RestrictionType
from wonderstars.models.database.voucher_db import VoucherDB


class VoucherRepository:
    """优惠券目录数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_code(self, code: str) -> Optional[VoucherDB]:
        """根据券码获取优惠券（大小写敏感）"""
        result = await self.db.execute(
            select(VoucherDB).where(VoucherDB.code == code)
        )
        return result.scalar_one_or_none()

    async def get_by_id(self, voucher_id: str) -> Optional[VoucherDB]:
        """根据ID获取优惠券"""
        result = await self.db.execute(
            select(VoucherDB).where(VoucherDB.id == voucher_id)
        )
        return result.scalar_one_or_none()

    async def list_active(self) -> List[VoucherDB]:
        """获取启用中的优惠券"""
        result = await self.db.execute(
            select(VoucherDB).where(VoucherDB.is_active.is_(True)).order_by(VoucherDB.code)
        )
        return list(result.scalars().all())

    async def list_active_special_discount(self, exclude_id: Optional[str] = None) -> List[VoucherDB]:
        """获取启用中的特价券"""
        conditions = [
            VoucherDB.is_active.is_(True),
            VoucherDB.restriction_type == RestrictionType.SPECIAL_DISCOUNT.value,
        ]
        if exclude_id:
            conditions.append(VoucherDB.id != exclude_id)

        result = await self.db.execute(select(VoucherDB).where(and_(*conditions)))
        return list(result.scalars().all())

    async def create(self, data: Dict[str, Any]) -> VoucherDB:
        """创建优惠券"""
        db_voucher = VoucherDB(**data)
        self.db.add(db_voucher)
        await self.db.flush()
        await self.db.refresh(db_voucher)
        return db_voucher

    async def update(self, voucher_id: str, data: Dict[str, Any]) -> Optional[VoucherDB]:
        """更新优惠券"""
        if data:
            await self.db.execute(
                update(VoucherDB).where(VoucherDB.id == voucher_id).values(**data)
            )
            await self.db.flush()

        db_voucher = await self.get_by_id(voucher_id)
        if db_voucher is not None:
            await self.db.refresh(db_voucher)
        return db_voucher

    async def commit(self) -> None:
        """提交当前事务，目录写入后需要在提交之后再清缓存"""
        await self.db.commit()

    def to_model(self, db_voucher: VoucherDB) -> Voucher:
        """转换为Pydantic模型"""
        return Voucher(
            id=db_voucher.id,
            code=db_voucher.code,
            title=db_voucher.title,
            description=db_voucher.description,
            voucher_type=db_voucher.voucher_type,
            value=db_voucher.value,
            application_scope=db_voucher.application_scope,
            product_application_method=db_voucher.product_application_method,
            restriction_type=db_voucher.restriction_type,
            eligible_product_ids=db_voucher.eligible_product_ids or [],
            eligible_category_ids=db_voucher.eligible_category_ids or [],
            eligible_subcategory_ids=db_voucher.eligible_subcategory_ids or [],
            min_purchase=db_voucher.min_purchase if db_voucher.min_purchase is not None else 0,
            max_products_per_use=db_voucher.max_products_per_use or 6,
            is_daily_redeemable=bool(db_voucher.is_daily_redeemable),
            is_active=bool(db_voucher.is_active),
            usage_limit_per_user=db_voucher.usage_limit_per_user or 1,
            expires_at=db_voucher.expires_at,
            created_at=db_voucher.created_at,
            updated_at=db_voucher.updated_at
        )
