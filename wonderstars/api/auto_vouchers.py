from typing import List

from fastapi import APIRouter, Depends

from wonderstars.api.deps import get_issuance_service
from wonderstars.models.auto_rule import (
    IssuanceResult,
    TopupIssueRequest,
    VoucherAutoRule,
    VoucherAutoRuleCreate,
)
from wonderstars.services import VoucherIssuanceService

router = APIRouter(tags=["自动发券"])


@router.post("/voucher-auto-rules", response_model=VoucherAutoRule, status_code=201)
async def create_auto_rule(
    payload: VoucherAutoRuleCreate,
    issuance_service: VoucherIssuanceService = Depends(get_issuance_service)
):
    """创建自动发券规则"""
    return await issuance_service.create_rule(payload)


@router.get("/voucher-auto-rules", response_model=List[VoucherAutoRule])
async def list_auto_rules(
    issuance_service: VoucherIssuanceService = Depends(get_issuance_service)
):
    return await issuance_service.list_rules()


@router.post("/users/{user_id}/auto-vouchers/first-login", response_model=IssuanceResult)
async def issue_first_login_voucher(
    user_id: str,
    issuance_service: VoucherIssuanceService = Depends(get_issuance_service)
):
    """登录流程调用：首次登录送券"""
    return await issuance_service.handle_first_login(user_id)


@router.post("/users/{user_id}/auto-vouchers/topup", response_model=IssuanceResult)
async def issue_topup_voucher(
    user_id: str,
    payload: TopupIssueRequest,
    issuance_service: VoucherIssuanceService = Depends(get_issuance_service)
):
    """充值成功后调用"""
    return await issuance_service.handle_topup(
        user_id, payload.amount, correlation_key=payload.correlation_key
    )


@router.post("/users/{user_id}/auto-vouchers/checkin", response_model=IssuanceResult)
async def issue_checkin_voucher(
    user_id: str,
    issuance_service: VoucherIssuanceService = Depends(get_issuance_service)
):
    """
    每日签到领券

    今天已领过返回200和 success=false。
    """
    return await issuance_service.handle_checkin(user_id)
