from typing import List, Optional

from fastapi import APIRouter, Depends
import logging

from wonderstars.api.deps import get_discount_service, get_redemption_service, get_voucher_service
from wonderstars.core.exceptions import VoucherNotFound
from wonderstars.models.cart import DiscountQuoteRequest, DiscountResult
from wonderstars.models.voucher import (
    RedeemCheck,
    RedeemRequest,
    RedemptionResult,
    UserVoucher,
    UserVoucherStatus,
    Voucher,
    VoucherCreate,
    VoucherUpdate,
)
from wonderstars.services import DiscountService, RedemptionService, VoucherService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["优惠券"])


@router.post("/vouchers", response_model=Voucher, status_code=201)
async def create_voucher(
    payload: VoucherCreate,
    voucher_service: VoucherService = Depends(get_voucher_service)
):
    """创建优惠券"""
    return await voucher_service.create_voucher(payload)


@router.get("/vouchers", response_model=List[Voucher])
async def list_active_vouchers(
    voucher_service: VoucherService = Depends(get_voucher_service)
):
    """启用中的优惠券列表"""
    return await voucher_service.list_active_vouchers()


@router.get("/vouchers/{code}", response_model=Voucher)
async def get_voucher(
    code: str,
    voucher_service: VoucherService = Depends(get_voucher_service)
):
    voucher = await voucher_service.get_voucher_by_code(code)
    if not voucher:
        raise VoucherNotFound("Invalid voucher code", {"code": code})
    return voucher


@router.patch("/vouchers/{voucher_id}", response_model=Voucher)
async def update_voucher(
    voucher_id: str,
    payload: VoucherUpdate,
    voucher_service: VoucherService = Depends(get_voucher_service)
):
    """部分更新优惠券（is_active=false 即停用）"""
    return await voucher_service.update_voucher(voucher_id, payload)


@router.post("/vouchers/{code}/quote", response_model=DiscountResult)
async def quote_discount(
    code: str,
    payload: DiscountQuoteRequest,
    discount_service: DiscountService = Depends(get_discount_service)
):
    """购物车/结账页折扣试算"""
    return await discount_service.quote(code, payload.items)


@router.get("/users/{user_id}/vouchers", response_model=List[UserVoucher])
async def list_user_vouchers(
    user_id: str,
    status: Optional[UserVoucherStatus] = None,
    redemption_service: RedemptionService = Depends(get_redemption_service)
):
    return await redemption_service.get_user_vouchers(user_id, status=status)


@router.post("/users/{user_id}/vouchers/{voucher_id}/claim", response_model=UserVoucher)
async def claim_voucher(
    user_id: str,
    voucher_id: str,
    redemption_service: RedemptionService = Depends(get_redemption_service)
):
    """领取优惠券到卡包"""
    return await redemption_service.claim_voucher(user_id, voucher_id)


@router.get("/users/{user_id}/vouchers/{voucher_id}/can-redeem", response_model=RedeemCheck)
async def can_redeem_today(
    user_id: str,
    voucher_id: str,
    redemption_service: RedemptionService = Depends(get_redemption_service)
):
    return await redemption_service.can_redeem_today(user_id, voucher_id)


@router.post("/users/{user_id}/vouchers/redeem", response_model=RedemptionResult)
async def redeem_voucher(
    user_id: str,
    payload: RedeemRequest,
    redemption_service: RedemptionService = Depends(get_redemption_service)
):
    """
    兑换优惠券

    今日已兑换、已使用等情况返回200和 success=false，由前端展示 message。
    """
    return await redemption_service.redeem_by_code(user_id, payload.code, method=payload.method)
