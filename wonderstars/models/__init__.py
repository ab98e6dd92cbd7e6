"""
数据模型包初始化文件
"""

from .voucher import (
    Voucher,
    VoucherCreate,
    VoucherUpdate,
    VoucherType,
    ApplicationScope,
    ProductApplicationMethod,
    RestrictionType,
    UserVoucher,
    UserVoucherStatus,
    RedemptionMethod,
    RedemptionResult,
    RedeemCheck
)
from .cart import CartLineItem, LineDiscount, DiscountResult
from .award import BalanceKind, TransactionType, LedgerResult
from .auto_rule import AutoRuleTrigger, VoucherAutoRule, IssuanceResult

__all__ = [
    "Voucher",
    "VoucherCreate",
    "VoucherUpdate",
    "VoucherType",
    "ApplicationScope",
    "ProductApplicationMethod",
    "RestrictionType",
    "UserVoucher",
    "UserVoucherStatus",
    "RedemptionMethod",
    "RedemptionResult",
    "RedeemCheck",
    "CartLineItem",
    "LineDiscount",
    "DiscountResult",
    "BalanceKind",
    "TransactionType",
    "LedgerResult",
    "AutoRuleTrigger",
    "VoucherAutoRule",
    "IssuanceResult"
]
