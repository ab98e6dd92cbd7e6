"""
服务包初始化文件
"""

from .common_cache import SimpleCache, voucher_cache
from .voucher_service import VoucherService
from .discount_calculator import DiscountService, compute_discount
from .redemption_service import RedemptionService
from .voucher_issuance_service import VoucherIssuanceService
from .award_service import AwardService
from .otp_service import OtpService

__all__ = [
    "SimpleCache",
    "voucher_cache",
    "VoucherService",
    "DiscountService",
    "compute_discount",
    "RedemptionService",
    "VoucherIssuanceService",
    "AwardService",
    "OtpService"
]
