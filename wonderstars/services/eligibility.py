"""
适用性判断：购物车行是否能享受某张优惠券
纯函数，无副作用
"""

from typing import Iterable

from wonderstars.models.cart import CartLineItem
from wonderstars.models.voucher import RestrictionType, Voucher


def is_eligible(line_item: CartLineItem, voucher: Voucher) -> bool:
    """判断单个购物车行是否适用"""
    if not voucher.is_active:
        return False

    restriction = voucher.restriction_type

    if restriction == RestrictionType.NONE:
        return True
    if restriction == RestrictionType.BY_PRODUCT:
        return line_item.product_id in set(voucher.eligible_product_ids)
    if restriction == RestrictionType.BY_CATEGORY:
        return line_item.category_id is not None and line_item.category_id in set(voucher.eligible_category_ids)
    if restriction == RestrictionType.BY_SUBCATEGORY:
        return (
            line_item.subcategory_id is not None
            and line_item.subcategory_id in set(voucher.eligible_subcategory_ids)
        )
    if restriction == RestrictionType.SPECIAL_DISCOUNT:
        # 特价券看商品自身标记，不看券上的列表
        return bool(line_item.special_discount)

    raise ValueError(f"未知的限制类型: {restriction}")


def eligible_unit_count(cart: Iterable[CartLineItem], voucher: Voucher) -> int:
    """适用的商品件数"""
    return sum(item.quantity for item in cart if is_eligible(item, voucher))
