"""
优惠券目录业务服务层
提供优惠券的创建、查询、更新，按券码查询走Redis缓存
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from wonderstars.core.config import settings
from wonderstars.core.database import retry_read, with_timeout
from wonderstars.core.exceptions import VoucherNotFound, VoucherValidationError
from wonderstars.models.voucher import RestrictionType, Voucher, VoucherCreate, VoucherUpdate
from wonderstars.repositories.voucher_repository import VoucherRepository
from wonderstars.services.common_cache import voucher_cache

logger = logging.getLogger(__name__)


def _row_values(data: Dict[str, Any]) -> Dict[str, Any]:
    """枚举转成数据库里存的字符串"""
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in data.items()
    }


class VoucherService:
    """优惠券目录业务服务"""

    def __init__(self, voucher_repo: VoucherRepository):
        self.voucher_repo = voucher_repo
        self.cache = voucher_cache
        self.cache_prefix = "code"
        self.cache_ttl = settings.voucher_cache_ttl  # 30分钟缓存

    def _cache_key(self, code: str) -> str:
        return f"{self.cache_prefix}:{code}"

    async def get_voucher_by_code(self, code: str, use_cache: bool = True) -> Optional[Voucher]:
        """根据券码获取优惠券"""
        if use_cache:
            cached_voucher = await self.cache.get(self._cache_key(code))
            if cached_voucher:
                return Voucher(**cached_voucher)

        db_voucher = await retry_read(
            lambda: self.voucher_repo.get_by_code(code),
            description=f"voucher {code}"
        )
        if not db_voucher:
            return None

        voucher = self.voucher_repo.to_model(db_voucher)

        if use_cache:
            await self.cache.set(self._cache_key(code), voucher.model_dump(mode="json"), ttl=self.cache_ttl)

        return voucher

    async def get_voucher_by_id(self, voucher_id: str) -> Optional[Voucher]:
        """根据ID获取优惠券，不走缓存"""
        db_voucher = await retry_read(
            lambda: self.voucher_repo.get_by_id(voucher_id),
            description=f"voucher id {voucher_id}"
        )
        if not db_voucher:
            return None
        return self.voucher_repo.to_model(db_voucher)

    async def list_active_vouchers(self) -> List[Voucher]:
        db_vouchers = await retry_read(self.voucher_repo.list_active, description="active vouchers")
        return [self.voucher_repo.to_model(db_voucher) for db_voucher in db_vouchers]

    async def get_active_special_discount_vouchers(self, exclude_id: Optional[str] = None) -> List[Voucher]:
        """获取启用中的特价券（同一时间只允许一张）"""
        db_vouchers = await retry_read(
            lambda: self.voucher_repo.list_active_special_discount(exclude_id=exclude_id),
            description="special discount vouchers"
        )
        return [self.voucher_repo.to_model(db_voucher) for db_voucher in db_vouchers]

    async def create_voucher(self, voucher_data: VoucherCreate) -> Voucher:
        """创建优惠券，配置已在 VoucherCreate 中校验"""
        existing = await self.get_voucher_by_code(voucher_data.code, use_cache=False)
        if existing:
            raise VoucherValidationError(
                "Voucher code already exists",
                {"code": voucher_data.code}
            )

        if voucher_data.is_active and voucher_data.restriction_type == RestrictionType.SPECIAL_DISCOUNT:
            await self._ensure_single_special_discount()

        db_voucher = await with_timeout(
            self.voucher_repo.create(_row_values(voucher_data.model_dump()))
        )
        voucher = self.voucher_repo.to_model(db_voucher)
        logger.info(f"创建优惠券成功: {voucher.code}")
        return voucher

    async def update_voucher(self, voucher_id: str, update_data: VoucherUpdate) -> Voucher:
        """部分更新优惠券，合并后重新校验配置"""
        current = await self.get_voucher_by_id(voucher_id)
        if not current:
            raise VoucherNotFound("Voucher not found", {"voucher_id": voucher_id})

        changes = update_data.model_dump(exclude_unset=True)
        merged = current.model_copy(update=changes)

        errors = merged.config_errors()
        if errors:
            raise VoucherValidationError("; ".join(errors), {"voucher_id": voucher_id})

        if merged.is_active and merged.restriction_type == RestrictionType.SPECIAL_DISCOUNT:
            await self._ensure_single_special_discount(exclude_id=voucher_id)

        # 写之前和提交之后各清一次缓存，提交前并发读到的旧数据不会留在缓存里
        await self.cache.delete(self._cache_key(current.code))
        db_voucher = await with_timeout(
            self.voucher_repo.update(voucher_id, _row_values(changes))
        )
        voucher = self.voucher_repo.to_model(db_voucher)
        await with_timeout(self.voucher_repo.commit())

        await self.cache.delete(self._cache_key(voucher.code))
        logger.info(f"更新优惠券成功: {voucher.code} {sorted(changes)}")
        return voucher

    async def deactivate_voucher(self, voucher_id: str) -> Voucher:
        """停用优惠券"""
        return await self.update_voucher(voucher_id, VoucherUpdate(is_active=False))

    async def _ensure_single_special_discount(self, exclude_id: Optional[str] = None) -> None:
        active = await self.get_active_special_discount_vouchers(exclude_id=exclude_id)
        if active:
            raise VoucherValidationError(
                "Another special discount voucher is already active",
                {"active_codes": [voucher.code for voucher in active]}
            )
