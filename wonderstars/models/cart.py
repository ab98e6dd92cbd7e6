"""
购物车与折扣计算结果模型
"""

from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field


class CartLineItem(BaseModel):
    """购物车行项目（由购物车/结账页传入）"""

    product_id: str = Field(..., description="商品ID")
    category_id: Optional[str] = Field(None, description="分类ID")
    subcategory_id: Optional[str] = Field(None, description="子分类ID")
    unit_price: Decimal = Field(..., ge=0, description="单价")
    quantity: int = Field(..., ge=1, description="数量")
    special_discount: Optional[bool] = Field(None, description="商品是否参加特价券，None表示由服务端补全")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class LineDiscount(BaseModel):
    """单行折扣明细，用于前端划线价和角标"""

    product_id: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    eligible: bool
    discounted_units: int = 0
    discount_amount: Decimal = Decimal("0.00")
    final_line_total: Decimal


class DiscountResult(BaseModel):
    """折扣计算结果"""

    voucher_code: str
    subtotal: Decimal
    total_discount: Decimal = Decimal("0.00")
    net_total: Decimal
    applied: bool = False
    reason: Optional[str] = None
    eligible_units: int = 0
    effective_units: int = 0
    line_items: List[LineDiscount] = Field(default_factory=list)


class DiscountQuoteRequest(BaseModel):
    """折扣试算请求"""

    items: List[CartLineItem] = Field(..., min_length=1)
