"""
手机验证码数据库操作层
"""

from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from wonderstars.models.database.otp_db import PhoneVerificationDB


class PhoneVerificationRepository:
    """手机验证记录数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, phone: str) -> Optional[PhoneVerificationDB]:
        result = await self.db.execute(
            select(PhoneVerificationDB).where(PhoneVerificationDB.phone == phone)
        )
        return result.scalar_one_or_none()

    async def upsert(self, phone: str, data: Dict[str, Any]) -> PhoneVerificationDB:
        """按手机号插入或覆盖"""
        record = await self.get(phone)
        if record is None:
            record = PhoneVerificationDB(phone=phone, **data)
            self.db.add(record)
        else:
            for field, value in data.items():
                setattr(record, field, value)

        await self.db.flush()
        return record

    async def update(self, phone: str, data: Dict[str, Any]) -> None:
        await self.db.execute(
            update(PhoneVerificationDB)
            .where(PhoneVerificationDB.phone == phone)
            .values(**data)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.flush()
