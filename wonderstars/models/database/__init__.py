"""
数据库模型包初始化文件
"""

from .voucher_db import VoucherDB, UserVoucherDB, VoucherRedemptionLogDB
from .auto_rule_db import VoucherAutoRuleDB, VoucherIssuanceDB
from .user_db import UserDB, ShopProductDB
from .ledger_db import WalletTransactionDB, BonusTransactionDB, StarsTransactionDB
from .otp_db import PhoneVerificationDB

__all__ = [
    "VoucherDB",
    "UserVoucherDB",
    "VoucherRedemptionLogDB",
    "VoucherAutoRuleDB",
    "VoucherIssuanceDB",
    "UserDB",
    "ShopProductDB",
    "WalletTransactionDB",
    "BonusTransactionDB",
    "StarsTransactionDB",
    "PhoneVerificationDB"
]
