"""
用户与商品数据库模型（仅本服务用到的列）
"""

from sqlalchemy import Column, String, Numeric, Boolean, DateTime
from sqlalchemy.sql import func
from wonderstars.core.database import Base
from wonderstars.models.database.voucher_db import new_id


class UserDB(Base):
    """用户表，余额列只能经由账本事务修改"""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id, comment="用户ID")
    phone = Column(String(20), unique=True, index=True, comment="手机号")
    email = Column(String(255), comment="邮箱")
    display_name = Column(String(100), comment="昵称")

    # 冗余余额
    wallet_balance = Column(Numeric(12, 2), nullable=False, default=0, comment="钱包余额")
    bonus_balance = Column(Numeric(12, 2), nullable=False, default=0, comment="奖励金余额")
    stars = Column(Numeric(12, 2), nullable=False, default=0, comment="星星余额")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        {'comment': '用户表'}
    )


class ShopProductDB(Base):
    """商品表，用于补全购物车行的分类和特价标记"""

    __tablename__ = "shop_products"

    product_id = Column(String(36), primary_key=True, default=new_id, comment="商品ID")
    name = Column(String(200), nullable=False, comment="商品名称")
    category_id = Column(String(36), index=True, comment="分类ID")
    subcategory_id = Column(String(36), index=True, comment="子分类ID")
    base_price = Column(Numeric(10, 2), nullable=False, default=0, comment="基础价格")
    special_discount = Column(Boolean, nullable=False, default=False, comment="是否参加特价券")
    is_active = Column(Boolean, nullable=False, default=True, comment="是否上架")

    __table_args__ = (
        {'comment': '商品表'}
    )
