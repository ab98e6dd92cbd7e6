"""
优惠券数据库模型
"""

import uuid

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, Date, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from wonderstars.core.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class VoucherDB(Base):
    """优惠券目录表"""

    __tablename__ = "vouchers"

    # 主键和基本信息
    id = Column(String(36), primary_key=True, default=new_id, comment="优惠券ID")
    code = Column(String(50), nullable=False, unique=True, index=True, comment="优惠券代码")
    title = Column(String(200), comment="标题")
    description = Column(Text, comment="描述")

    # 折扣规则
    voucher_type = Column(String(20), nullable=False, comment="percent / amount")
    value = Column(Numeric(10, 2), nullable=False, comment="折扣值")
    application_scope = Column(String(20), nullable=False, default="order_total", comment="作用范围")
    product_application_method = Column(String(20), nullable=False, default="total_once", comment="商品级计算方式")
    min_purchase = Column(Numeric(10, 2), nullable=False, default=0, comment="最低消费")
    max_products_per_use = Column(Integer, nullable=False, default=6, comment="单次最多优惠件数")

    # 适用范围
    restriction_type = Column(String(20), nullable=False, default="none", comment="限制类型")
    eligible_product_ids = Column(JSON, default=list, comment="适用商品ID列表")
    eligible_category_ids = Column(JSON, default=list, comment="适用分类ID列表")
    eligible_subcategory_ids = Column(JSON, default=list, comment="适用子分类ID列表")

    # 使用规则
    is_daily_redeemable = Column(Boolean, nullable=False, default=False, comment="是否每日可兑换")
    usage_limit_per_user = Column(Integer, nullable=False, default=1, comment="单用户可用次数")
    is_active = Column(Boolean, nullable=False, default=True, index=True, comment="是否启用")
    expires_at = Column(DateTime(timezone=True), comment="过期时间")

    # 时间戳
    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        {'comment': '优惠券目录表'}
    )


class UserVoucherDB(Base):
    """用户持券表，(user_id, voucher_id) 唯一"""

    __tablename__ = "user_vouchers"

    id = Column(String(36), primary_key=True, default=new_id, comment="持券ID")
    user_id = Column(String(36), nullable=False, index=True, comment="用户ID")
    voucher_id = Column(String(36), ForeignKey("vouchers.id"), nullable=False, index=True, comment="优惠券ID")

    # 状态
    status = Column(String(20), nullable=False, default="available", index=True, comment="available / used / expired")
    is_daily_voucher = Column(Boolean, nullable=False, default=False, comment="领取时是否为每日券")
    redemption_count = Column(Integer, nullable=False, default=0, comment="每日兑换累计次数")
    usage_count = Column(Integer, nullable=False, default=0, comment="已使用次数")
    max_usage_count = Column(Integer, nullable=False, default=1, comment="最多使用次数")
    last_redeemed_date = Column(Date, comment="最后兑换的自然日")
    expires_at = Column(DateTime(timezone=True), comment="本次兑换的有效期")
    redemption_method = Column(String(32), comment="兑换方式")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        UniqueConstraint("user_id", "voucher_id", name="uq_user_vouchers_user_voucher"),
        {'comment': '用户持券表'}
    )


class VoucherRedemptionLogDB(Base):
    """兑换流水，每日券同一天只能有一条"""

    __tablename__ = "voucher_redemption_logs"

    id = Column(String(36), primary_key=True, default=new_id, comment="流水ID")
    user_voucher_id = Column(String(36), ForeignKey("user_vouchers.id"), nullable=False, index=True, comment="持券ID")
    user_id = Column(String(36), nullable=False, index=True, comment="用户ID")
    voucher_id = Column(String(36), nullable=False, index=True, comment="优惠券ID")
    redeemed_date = Column(Date, comment="每日券的兑换日，单次券为空")
    redemption_method = Column(String(32), nullable=False, comment="兑换方式")
    redeemed_at = Column(DateTime(timezone=True), server_default=func.now(), comment="兑换时间")

    __table_args__ = (
        UniqueConstraint("user_voucher_id", "redeemed_date", name="uq_redemption_logs_daily"),
        {'comment': '优惠券兑换流水表'}
    )
