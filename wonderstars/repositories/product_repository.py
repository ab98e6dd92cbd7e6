"""
商品数据库操作层
"""

from typing import List, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wonderstars.models.database.user_db import ShopProductDB


class ProductRepository:
    """商品查询，只读"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_products_by_ids(self, product_ids: Sequence[str]) -> List[ShopProductDB]:
        if not product_ids:
            return []
        result = await self.db.execute(
            select(ShopProductDB).where(ShopProductDB.product_id.in_(list(product_ids)))
        )
        return list(result.scalars().all())
