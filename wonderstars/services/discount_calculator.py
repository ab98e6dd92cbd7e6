"""
折扣计算服务
购物车页和结账页共用同一套计算，避免两处逻辑分叉
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from wonderstars.core.exceptions import VoucherNotFound
from wonderstars.models.cart import CartLineItem, DiscountResult, LineDiscount
from wonderstars.models.voucher import (
    ApplicationScope,
    ProductApplicationMethod,
    Voucher,
    VoucherType,
)
from wonderstars.services.eligibility import is_eligible

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value: Decimal) -> Decimal:
    """金额统一保留两位小数，四舍五入"""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_discount(
    cart: Sequence[CartLineItem],
    voucher: Voucher,
    now: Optional[datetime] = None
) -> DiscountResult:
    """
    计算购物车在该优惠券下的折扣

    预期内的不适用（未达最低消费、无适用商品）返回0折扣和原因，不抛异常。
    """
    items = list(cart)
    subtotal = money(sum((item.line_total for item in items), ZERO))

    if not voucher.is_active:
        return _no_discount(items, voucher, subtotal, "This voucher is no longer active")

    if now is not None and voucher.is_expired(now):
        return _no_discount(items, voucher, subtotal, "This voucher has expired")

    config_errors = voucher.config_errors()
    if config_errors:
        # 脏数据按不可用处理
        logger.warning(f"优惠券配置非法，按不可用处理 {voucher.code}: {config_errors}")
        return _no_discount(items, voucher, subtotal, "This voucher cannot be applied")

    if subtotal < voucher.min_purchase:
        return _no_discount(
            items, voucher, subtotal,
            f"Minimum purchase of RM{money(voucher.min_purchase)} required"
        )

    eligible_flags = [is_eligible(item, voucher) for item in items]
    eligible_units = sum(item.quantity for item, ok in zip(items, eligible_flags) if ok)

    if eligible_units == 0:
        return _no_discount(items, voucher, subtotal, "No eligible products in cart")

    scope = voucher.application_scope
    method = voucher.product_application_method

    if scope == ApplicationScope.ORDER_TOTAL:
        return _order_discount(items, voucher, subtotal, eligible_flags, eligible_units)
    if scope == ApplicationScope.PRODUCT_LEVEL:
        if method == ProductApplicationMethod.TOTAL_ONCE:
            return _order_discount(items, voucher, subtotal, eligible_flags, eligible_units)
        if method == ProductApplicationMethod.PER_PRODUCT:
            return _per_product_discount(items, voucher, subtotal, eligible_flags, eligible_units)
        raise ValueError(f"未知的商品级计算方式: {method}")

    raise ValueError(f"未知的作用范围: {scope}")


def _order_discount(
    items: List[CartLineItem],
    voucher: Voucher,
    subtotal: Decimal,
    eligible_flags: List[bool],
    eligible_units: int
) -> DiscountResult:
    """整单优惠：只计算一次"""
    if voucher.voucher_type == VoucherType.AMOUNT:
        total = min(money(voucher.value), subtotal)
    elif voucher.voucher_type == VoucherType.PERCENT:
        total = money(subtotal * voucher.value / 100)
    else:
        raise ValueError(f"未知的优惠券类型: {voucher.voucher_type}")

    total = min(total, subtotal)

    # 按行金额比例分摊，余数给最后一个有金额的行
    desired = [
        money(total * item.line_total / subtotal) if subtotal > 0 else ZERO
        for item in items
    ]
    remainder = total - sum(desired, ZERO)
    for index in range(len(items) - 1, -1, -1):
        if items[index].line_total > 0:
            desired[index] += remainder
            break

    allocations = _allocate(items, desired, total)
    discounted_units = [item.quantity if allocations[i] > 0 else 0 for i, item in enumerate(items)]

    return _build_result(
        items, voucher, subtotal, total, eligible_flags,
        discounted_units, allocations, eligible_units, eligible_units
    )


def _per_product_discount(
    items: List[CartLineItem],
    voucher: Voucher,
    subtotal: Decimal,
    eligible_flags: List[bool],
    eligible_units: int
) -> DiscountResult:
    """
    按件优惠

    适用件数先按 max_products_per_use 封顶；百分比券按购物车顺序消耗名额，
    靠前的适用行先占用名额。
    """
    effective_units = min(eligible_units, voucher.max_products_per_use)
    remaining = effective_units
    discounted_units = []
    desired = []

    for item, eligible in zip(items, eligible_flags):
        units = min(item.quantity, remaining) if eligible else 0
        remaining -= units
        discounted_units.append(units)

        if units == 0:
            desired.append(ZERO)
        elif voucher.voucher_type == VoucherType.AMOUNT:
            desired.append(money(voucher.value * units))
        elif voucher.voucher_type == VoucherType.PERCENT:
            desired.append(money(item.unit_price * voucher.value / 100 * units))
        else:
            raise ValueError(f"未知的优惠券类型: {voucher.voucher_type}")

    if voucher.voucher_type == VoucherType.AMOUNT:
        raw_total = money(voucher.value * effective_units)
    else:
        raw_total = sum(desired, ZERO)

    # 折扣只落在实际打折的行上，按件金额超过这些行的金额时以行金额为上限
    discounted_lines = [units > 0 for units in discounted_units]
    allocations = _allocate(items, desired, min(raw_total, subtotal), allowed=discounted_lines)
    total = sum(allocations, ZERO)

    return _build_result(
        items, voucher, subtotal, total, eligible_flags,
        discounted_units, allocations, eligible_units, effective_units
    )


def _allocate(
    items: List[CartLineItem],
    desired: List[Decimal],
    total: Decimal,
    allowed: Optional[List[bool]] = None
) -> List[Decimal]:
    """
    把总折扣分到各行，单行折扣不超过行金额

    先按期望值分配，剩余部分按购物车顺序补到 allowed 行中还有余量的行上，
    补不完的部分不分配。
    """
    if allowed is None:
        allowed = [True] * len(items)

    allocations = []
    left = total
    for item, want in zip(items, desired):
        amount = max(min(want, money(item.line_total), left), ZERO)
        allocations.append(amount)
        left -= amount

    for index, item in enumerate(items):
        if left <= 0:
            break
        if not allowed[index]:
            continue
        room = money(item.line_total) - allocations[index]
        extra = min(room, left)
        if extra > 0:
            allocations[index] += extra
            left -= extra

    return allocations


def _build_result(
    items: List[CartLineItem],
    voucher: Voucher,
    subtotal: Decimal,
    total: Decimal,
    eligible_flags: List[bool],
    discounted_units: List[int],
    allocations: List[Decimal],
    eligible_units: int,
    effective_units: int
) -> DiscountResult:
    line_items = [
        LineDiscount(
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price=item.unit_price,
            line_total=money(item.line_total),
            eligible=eligible,
            discounted_units=units,
            discount_amount=allocation,
            final_line_total=money(item.line_total) - allocation
        )
        for item, eligible, units, allocation in zip(items, eligible_flags, discounted_units, allocations)
    ]
    return DiscountResult(
        voucher_code=voucher.code,
        subtotal=subtotal,
        total_discount=total,
        net_total=subtotal - total,
        applied=total > 0,
        reason=None if total > 0 else "No discount for this cart",
        eligible_units=eligible_units,
        effective_units=effective_units,
        line_items=line_items
    )


def _no_discount(
    items: List[CartLineItem],
    voucher: Voucher,
    subtotal: Decimal,
    reason: str
) -> DiscountResult:
    line_items = [
        LineDiscount(
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price=item.unit_price,
            line_total=money(item.line_total),
            eligible=False,
            final_line_total=money(item.line_total)
        )
        for item in items
    ]
    return DiscountResult(
        voucher_code=voucher.code,
        subtotal=subtotal,
        total_discount=ZERO,
        net_total=subtotal,
        applied=False,
        reason=reason,
        line_items=line_items
    )


class DiscountService:
    """折扣试算服务：加载优惠券和商品属性后调用 compute_discount"""

    def __init__(self, voucher_service, product_repo):
        self.voucher_service = voucher_service
        self.product_repo = product_repo

    async def quote(
        self,
        code: str,
        items: List[CartLineItem],
        now: Optional[datetime] = None
    ) -> DiscountResult:
        """按券码试算购物车折扣"""
        voucher = await self.voucher_service.get_voucher_by_code(code)
        if not voucher:
            raise VoucherNotFound("Invalid voucher code", {"code": code})

        enriched = await self.enrich_cart(items)
        return compute_discount(enriched, voucher, now=now or datetime.now(timezone.utc))

    async def enrich_cart(self, items: List[CartLineItem]) -> List[CartLineItem]:
        """用商品表补全分类、子分类和特价标记"""
        missing_ids = sorted({
            item.product_id for item in items
            if item.category_id is None or item.subcategory_id is None or item.special_discount is None
        })
        if not missing_ids:
            return list(items)

        products = await self.product_repo.get_products_by_ids(missing_ids)
        by_id = {product.product_id: product for product in products}

        enriched = []
        for item in items:
            product = by_id.get(item.product_id)
            if product is None:
                enriched.append(item)
                continue
            enriched.append(item.model_copy(update={
                "category_id": item.category_id if item.category_id is not None else product.category_id,
                "subcategory_id": item.subcategory_id if item.subcategory_id is not None else product.subcategory_id,
                "special_discount": (
                    item.special_discount if item.special_discount is not None else bool(product.special_discount)
                ),
            }))
        return enriched
