"""
钱包 / 奖励金 / 星星 账本模型
"""

from decimal import Decimal
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator
from enum import Enum


class BalanceKind(str, Enum):
    """余额种类，每种对应一张流水表和users上的一个冗余余额列"""
    WALLET = "wallet"
    BONUS = "bonus"
    STARS = "stars"


class TransactionType(str, Enum):
    """流水类型"""
    TOPUP = "topup"
    TOPUP_BONUS = "topup_bonus"
    PURCHASE = "purchase"
    EARN = "earn"
    SPEND = "spend"
    REFUND = "refund"
    ADMIN_ADJUSTMENT = "admin_adjustment"


class AwardRequest(BaseModel):
    """发放请求"""

    amount: Decimal = Field(..., gt=0, description="发放数量")
    transaction_type: TransactionType = TransactionType.EARN
    source: str = Field(..., min_length=1, max_length=50, description="业务来源，如 topup_bonus")
    correlation_key: Optional[str] = Field(None, max_length=100, description="去重键，如 wallet_transaction_id")
    description: Optional[str] = Field(None, max_length=500)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    multiplier: Decimal = Field(default=Decimal("1"), gt=0, description="星星会员倍率")


class SpendRequest(BaseModel):
    """消费请求"""

    amount: Decimal = Field(..., gt=0)
    source: str = Field(..., min_length=1, max_length=50)
    correlation_key: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AdjustmentRequest(BaseModel):
    """管理员调整请求"""

    delta: Decimal = Field(..., description="带符号的调整量")
    admin_id: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=3, max_length=500)

    @field_validator("delta")
    @classmethod
    def validate_delta(cls, v):
        if v == 0:
            raise ValueError("delta cannot be zero")
        return v


class LedgerResult(BaseModel):
    """发放/消费/调整结果"""

    success: bool
    kind: BalanceKind
    new_balance: Optional[Decimal] = None
    transaction_id: Optional[str] = None
    duplicate: bool = False
    reason: Optional[str] = None


class LedgerTransaction(BaseModel):
    """流水记录"""

    id: str
    user_id: str
    amount: Decimal
    transaction_type: TransactionType
    source: str
    correlation_key: Optional[str] = None
    description: Optional[str] = None
    balance_after: Decimal
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class BalanceSnapshot(BaseModel):
    """用户余额快照"""

    user_id: str
    wallet_balance: Decimal
    bonus_balance: Decimal
    stars: Decimal


class ReconciliationEntry(BaseModel):
    """对账差异：流水合计与冗余余额不一致的用户"""

    user_id: str
    kind: BalanceKind
    ledger_sum: Decimal
    stored_balance: Decimal
    difference: Decimal


class ReconciliationReport(BaseModel):
    """对账报告"""

    kind: BalanceKind
    checked_users: int
    mismatches: List[ReconciliationEntry] = Field(default_factory=list)
