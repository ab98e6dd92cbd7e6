"""
自动发券规则与发放结果模型
"""

from decimal import Decimal
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field
from enum import Enum

from wonderstars.models.voucher import UserVoucher


class AutoRuleTrigger(str, Enum):
    """自动发券触发类型"""
    FIRST_LOGIN = "first_login"  # 首次登录，每个用户一次
    TOPUP_AMOUNT = "topup_amount"  # 单笔充值达到门槛
    DAILY_CHECKIN = "daily_checkin"  # 每日签到，每个自然日一次


class VoucherAutoRule(BaseModel):
    """自动发券规则"""

    id: str
    voucher_id: str = Field(..., description="发放的优惠券ID")
    trigger_type: AutoRuleTrigger
    threshold_amount: Decimal = Field(default=Decimal("0"), description="充值门槛（RM）")
    priority: int = Field(default=0, description="数值小的先匹配")
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class VoucherAutoRuleCreate(BaseModel):
    """创建自动发券规则"""

    voucher_id: str = Field(..., min_length=1)
    trigger_type: AutoRuleTrigger
    threshold_amount: Decimal = Field(default=Decimal("0"), ge=0)
    priority: int = 0
    is_active: bool = True


class TopupIssueRequest(BaseModel):
    """充值完成后触发发券"""

    amount: Decimal = Field(..., gt=0, description="充值金额（RM）")
    correlation_key: Optional[str] = Field(None, max_length=64, description="充值单号，同一单只发一次")


class IssuanceResult(BaseModel):
    """
    自动发券结果

    没有匹配规则、今天已签到等预期内情况返回 success=False；
    同一充值单重复触发返回 success=True, duplicate=True。
    """

    success: bool
    message: str
    rule_id: Optional[str] = None
    duplicate: bool = False
    user_voucher: Optional[UserVoucher] = None
