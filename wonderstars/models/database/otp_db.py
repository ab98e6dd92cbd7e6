"""
手机验证码数据库模型
"""

from sqlalchemy import Column, String, Integer, Boolean, DateTime
from wonderstars.core.database import Base


class PhoneVerificationDB(Base):
    """手机号验证记录，每个号码一行"""

    __tablename__ = "phone_verifications"

    phone = Column(String(20), primary_key=True, comment="手机号")
    verification_code = Column(String(6), comment="当前验证码")
    expires_at = Column(DateTime(timezone=True), comment="验证码过期时间")
    sent_count = Column(Integer, nullable=False, default=0, comment="当前小时窗口内发送次数")
    last_sent_at = Column(DateTime(timezone=True), comment="最后发送时间")
    verified = Column(Boolean, nullable=False, default=False, comment="是否已验证")
    verified_at = Column(DateTime(timezone=True), comment="验证时间")

    __table_args__ = (
        {'comment': '手机验证码表'}
    )
