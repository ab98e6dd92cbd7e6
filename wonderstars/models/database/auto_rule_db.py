"""
自动发券规则数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from wonderstars.core.database import Base
from wonderstars.models.database.voucher_db import new_id


class VoucherAutoRuleDB(Base):
    """自动发券规则表"""

    __tablename__ = "voucher_auto_rules"

    id = Column(String(36), primary_key=True, default=new_id, comment="规则ID")
    voucher_id = Column(String(36), ForeignKey("vouchers.id"), nullable=False, index=True, comment="发放的优惠券ID")
    trigger_type = Column(String(20), nullable=False, index=True, comment="first_login / topup_amount / daily_checkin")
    threshold_amount = Column(Numeric(10, 2), nullable=False, default=0, comment="充值门槛，仅topup_amount使用")
    priority = Column(Integer, nullable=False, default=0, comment="优先级，数值小的先匹配")
    is_active = Column(Boolean, nullable=False, default=True, comment="是否启用")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        {'comment': '自动发券规则表'}
    )


class VoucherIssuanceDB(Base):
    """
    自动发券记录

    (user_id, trigger_type, issue_key) 唯一：首次登录的 issue_key 固定，
    每日签到用自然日，充值用充值单号。
    """

    __tablename__ = "voucher_issuance_logs"

    id = Column(String(36), primary_key=True, default=new_id, comment="记录ID")
    user_id = Column(String(36), nullable=False, index=True, comment="用户ID")
    rule_id = Column(String(36), ForeignKey("voucher_auto_rules.id"), nullable=False, index=True, comment="规则ID")
    trigger_type = Column(String(20), nullable=False, comment="触发类型")
    issue_key = Column(String(64), comment="去重键")
    user_voucher_id = Column(String(36), ForeignKey("user_vouchers.id"), comment="发放到的持券ID")
    issued_at = Column(DateTime(timezone=True), server_default=func.now(), comment="发放时间")

    __table_args__ = (
        UniqueConstraint("user_id", "trigger_type", "issue_key", name="uq_issuance_logs_user_trigger_key"),
        {'comment': '自动发券记录表'}
    )
