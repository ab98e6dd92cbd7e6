"""
仓库包初始化文件 - 数据库访问层
"""

from .voucher_repository import VoucherRepository
from .user_voucher_repository import UserVoucherRepository
from .auto_rule_repository import AutoRuleRepository
from .product_repository import ProductRepository
from .award_repository import AwardRepository
from .phone_verification_repository import PhoneVerificationRepository

__all__ = [
    "VoucherRepository",
    "UserVoucherRepository",
    "AutoRuleRepository",
    "ProductRepository",
    "AwardRepository",
    "PhoneVerificationRepository"
]
