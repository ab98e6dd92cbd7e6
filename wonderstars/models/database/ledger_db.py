"""
账本数据库模型：钱包、奖励金、星星三张只追加的流水表
"""

from sqlalchemy import Column, String, Numeric, Text, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import declared_attr
from sqlalchemy.sql import func
from wonderstars.core.database import Base
from wonderstars.models.database.voucher_db import new_id


class LedgerColumns:
    """三张流水表共用的列"""

    id = Column(String(36), primary_key=True, default=new_id, comment="流水ID")

    @declared_attr
    def user_id(cls):
        return Column(String(36), ForeignKey("users.id"), nullable=False, index=True, comment="用户ID")

    amount = Column(Numeric(12, 2), nullable=False, comment="变动数量，消费为负")
    transaction_type = Column(String(30), nullable=False, comment="流水类型")
    source = Column(String(50), nullable=False, comment="业务来源")
    correlation_key = Column(String(100), comment="去重键")
    description = Column(Text, comment="描述")
    balance_after = Column(Numeric(12, 2), nullable=False, comment="变动后余额")
    meta = Column("metadata", JSON, default=dict, comment="附加信息")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True, comment="创建时间")


class WalletTransactionDB(LedgerColumns, Base):
    """钱包流水表"""

    __tablename__ = "wallet_transactions"
    __table_args__ = (
        UniqueConstraint("user_id", "source", "correlation_key", name="uq_wallet_tx_dedup"),
        {'comment': '钱包流水表'}
    )


class BonusTransactionDB(LedgerColumns, Base):
    """奖励金流水表"""

    __tablename__ = "bonus_transactions"
    __table_args__ = (
        UniqueConstraint("user_id", "source", "correlation_key", name="uq_bonus_tx_dedup"),
        {'comment': '奖励金流水表'}
    )


class StarsTransactionDB(LedgerColumns, Base):
    """星星流水表"""

    __tablename__ = "stars_transactions"
    __table_args__ = (
        UniqueConstraint("user_id", "source", "correlation_key", name="uq_stars_tx_dedup"),
        {'comment': '星星流水表'}
    )
