"""
接口依赖注入：每个请求共用一个数据库会话
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from wonderstars.core.database import get_db_session
from wonderstars.repositories import (
    AutoRuleRepository,
    AwardRepository,
    PhoneVerificationRepository,
    ProductRepository,
    UserVoucherRepository,
    VoucherRepository,
)
from wonderstars.services import (
    AwardService,
    DiscountService,
    OtpService,
    RedemptionService,
    VoucherIssuanceService,
    VoucherService,
)


def get_voucher_service(db: AsyncSession = Depends(get_db_session)) -> VoucherService:
    return VoucherService(VoucherRepository(db))


def get_discount_service(
    db: AsyncSession = Depends(get_db_session),
    voucher_service: VoucherService = Depends(get_voucher_service)
) -> DiscountService:
    return DiscountService(voucher_service, ProductRepository(db))


def get_redemption_service(
    db: AsyncSession = Depends(get_db_session),
    voucher_service: VoucherService = Depends(get_voucher_service)
) -> RedemptionService:
    return RedemptionService(voucher_service, UserVoucherRepository(db))


def get_issuance_service(
    db: AsyncSession = Depends(get_db_session),
    voucher_service: VoucherService = Depends(get_voucher_service)
) -> VoucherIssuanceService:
    return VoucherIssuanceService(voucher_service, UserVoucherRepository(db), AutoRuleRepository(db))


def get_award_service(db: AsyncSession = Depends(get_db_session)) -> AwardService:
    return AwardService(AwardRepository(db))


def get_otp_service(db: AsyncSession = Depends(get_db_session)) -> OtpService:
    return OtpService(PhoneVerificationRepository(db))
