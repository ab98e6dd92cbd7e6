"""
优惠券相关数据模型
"""

import re
from decimal import Decimal
from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from enum import Enum


class VoucherType(str, Enum):
    """优惠券类型枚举"""
    PERCENT = "percent"  # 百分比折扣券，value为百分点
    AMOUNT = "amount"  # 固定金额券，value为RM


class ApplicationScope(str, Enum):
    """优惠作用范围"""
    ORDER_TOTAL = "order_total"  # 整单
    PRODUCT_LEVEL = "product_level"  # 商品级


class ProductApplicationMethod(str, Enum):
    """商品级优惠的计算方式"""
    PER_PRODUCT = "per_product"  # 按件计算，受max_products_per_use限制
    TOTAL_ONCE = "total_once"  # 整单只优惠一次


class RestrictionType(str, Enum):
    """适用商品限制类型"""
    NONE = "none"
    BY_PRODUCT = "by_product"
    BY_CATEGORY = "by_category"
    BY_SUBCATEGORY = "by_subcategory"
    SPECIAL_DISCOUNT = "special_discount"  # 看商品自身的special_discount标记


class UserVoucherStatus(str, Enum):
    """用户持券状态"""
    AVAILABLE = "available"
    USED = "used"
    EXPIRED = "expired"


class RedemptionMethod(str, Enum):
    """已知的兑换方式，接口层允许新增其他取值"""
    MANUAL_CODE = "manual_code"
    QR_SCAN = "qr_scan"
    STAFF_SCAN = "staff_scan"


REDEMPTION_METHOD_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,31}$")

# 限制类型 -> 对应的适用列表字段
RESTRICTION_LIST_FIELDS = {
    RestrictionType.BY_PRODUCT: "eligible_product_ids",
    RestrictionType.BY_CATEGORY: "eligible_category_ids",
    RestrictionType.BY_SUBCATEGORY: "eligible_subcategory_ids",
}


def voucher_config_errors(
    voucher_type: VoucherType,
    value: Optional[Decimal],
    restriction_type: RestrictionType,
    eligible_product_ids: Optional[List[str]],
    eligible_category_ids: Optional[List[str]],
    eligible_subcategory_ids: Optional[List[str]],
    min_purchase: Optional[Decimal],
    max_products_per_use: Optional[int],
) -> List[str]:
    """返回优惠券配置的全部错误，空列表表示合法"""
    errors = []

    if value is None or value <= 0:
        errors.append("value must be greater than 0")
    elif voucher_type == VoucherType.PERCENT and value > 100:
        errors.append("percent value cannot exceed 100")

    if min_purchase is not None and min_purchase < 0:
        errors.append("min_purchase cannot be negative")

    if max_products_per_use is not None and max_products_per_use < 1:
        errors.append("max_products_per_use must be at least 1")

    lists = {
        "eligible_product_ids": eligible_product_ids,
        "eligible_category_ids": eligible_category_ids,
        "eligible_subcategory_ids": eligible_subcategory_ids,
    }
    list_field = RESTRICTION_LIST_FIELDS.get(restriction_type)
    if list_field and not lists[list_field]:
        errors.append(f"{restriction_type.value} restriction requires {list_field}")

    return errors


class Voucher(BaseModel):
    """优惠券目录记录（读模型，数据库里的脏数据在计算时按不可用处理）"""

    id: str = Field(..., description="优惠券ID")
    code: str = Field(..., min_length=1, max_length=50, description="优惠券代码，大小写敏感")
    title: Optional[str] = Field(None, description="标题")
    description: Optional[str] = Field(None, description="描述")
    voucher_type: VoucherType = Field(..., description="优惠券类型")
    value: Decimal = Field(..., description="折扣值")
    application_scope: ApplicationScope = Field(default=ApplicationScope.ORDER_TOTAL)
    product_application_method: ProductApplicationMethod = Field(
        default=ProductApplicationMethod.TOTAL_ONCE
    )
    restriction_type: RestrictionType = Field(default=RestrictionType.NONE)
    eligible_product_ids: List[str] = Field(default_factory=list)
    eligible_category_ids: List[str] = Field(default_factory=list)
    eligible_subcategory_ids: List[str] = Field(default_factory=list)
    min_purchase: Decimal = Field(default=Decimal("0"), description="最低消费")
    max_products_per_use: int = Field(default=6, description="单次最多优惠件数")
    is_daily_redeemable: bool = Field(default=False, description="是否每日可兑换")
    is_active: bool = Field(default=True)
    usage_limit_per_user: int = Field(default=1, description="单用户可用次数")
    expires_at: Optional[datetime] = Field(None, description="优惠券本身的过期时间")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def config_errors(self) -> List[str]:
        return voucher_config_errors(
            self.voucher_type,
            self.value,
            self.restriction_type,
            self.eligible_product_ids,
            self.eligible_category_ids,
            self.eligible_subcategory_ids,
            self.min_purchase,
            self.max_products_per_use,
        )

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None and now.tzinfo is not None:
            now = now.replace(tzinfo=None)
        elif expires_at.tzinfo is not None and now.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=None)
        return expires_at < now


class VoucherCreate(BaseModel):
    """创建优惠券模型，配置在这里一次性校验"""

    code: str = Field(..., min_length=1, max_length=50)
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    voucher_type: VoucherType
    value: Decimal
    application_scope: ApplicationScope = ApplicationScope.ORDER_TOTAL
    product_application_method: ProductApplicationMethod = ProductApplicationMethod.TOTAL_ONCE
    restriction_type: RestrictionType = RestrictionType.NONE
    eligible_product_ids: List[str] = Field(default_factory=list)
    eligible_category_ids: List[str] = Field(default_factory=list)
    eligible_subcategory_ids: List[str] = Field(default_factory=list)
    min_purchase: Decimal = Decimal("0")
    max_products_per_use: int = 6
    is_daily_redeemable: bool = False
    is_active: bool = True
    usage_limit_per_user: int = Field(default=1, ge=1)
    expires_at: Optional[datetime] = None

    @field_validator("code")
    @classmethod
    def validate_code(cls, v):
        if v != v.strip():
            raise ValueError("code cannot have leading or trailing whitespace")
        return v

    @model_validator(mode="after")
    def validate_config(self):
        """校验折扣配置"""
        errors = voucher_config_errors(
            self.voucher_type,
            self.value,
            self.restriction_type,
            self.eligible_product_ids,
            self.eligible_category_ids,
            self.eligible_subcategory_ids,
            self.min_purchase,
            self.max_products_per_use,
        )
        if errors:
            raise ValueError("; ".join(errors))
        return self


class VoucherUpdate(BaseModel):
    """更新优惠券模型，合并后由服务层重新校验"""

    title: Optional[str] = None
    description: Optional[str] = None
    value: Optional[Decimal] = None
    application_scope: Optional[ApplicationScope] = None
    product_application_method: Optional[ProductApplicationMethod] = None
    restriction_type: Optional[RestrictionType] = None
    eligible_product_ids: Optional[List[str]] = None
    eligible_category_ids: Optional[List[str]] = None
    eligible_subcategory_ids: Optional[List[str]] = None
    min_purchase: Optional[Decimal] = None
    max_products_per_use: Optional[int] = None
    is_daily_redeemable: Optional[bool] = None
    is_active: Optional[bool] = None
    usage_limit_per_user: Optional[int] = Field(None, ge=1)
    expires_at: Optional[datetime] = None


class UserVoucher(BaseModel):
    """用户持有的优惠券"""

    id: str
    user_id: str
    voucher_id: str
    status: UserVoucherStatus = UserVoucherStatus.AVAILABLE
    is_daily_voucher: bool = False
    redemption_count: int = 0
    usage_count: int = 0
    max_usage_count: int = 1
    last_redeemed_date: Optional[date] = None
    expires_at: Optional[datetime] = None
    redemption_method: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    voucher: Optional[Voucher] = None


class RedeemRequest(BaseModel):
    """兑换请求"""

    code: str = Field(..., min_length=1)
    method: str = Field(default=RedemptionMethod.MANUAL_CODE.value)

    @field_validator("method")
    @classmethod
    def validate_method(cls, v):
        if not REDEMPTION_METHOD_PATTERN.match(v):
            raise ValueError("method must be a lowercase identifier")
        return v


class RedeemCheck(BaseModel):
    """今日是否可兑换"""

    can_redeem: bool
    reason: Optional[str] = None


class RedemptionResult(BaseModel):
    """兑换结果，预期内的失败也用这个结构返回"""

    success: bool
    message: str
    user_voucher_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    redemption_count: Optional[int] = None
