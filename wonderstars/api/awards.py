from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from wonderstars.api.deps import get_award_service
from wonderstars.models.award import (
    AdjustmentRequest,
    AwardRequest,
    BalanceKind,
    BalanceSnapshot,
    LedgerResult,
    LedgerTransaction,
    ReconciliationReport,
    SpendRequest,
)
from wonderstars.services import AwardService

router = APIRouter(tags=["账本"])


@router.post("/users/{user_id}/awards/{kind}", response_model=LedgerResult)
async def award(
    user_id: str,
    kind: BalanceKind,
    payload: AwardRequest,
    award_service: AwardService = Depends(get_award_service)
):
    """发放钱包/奖励金/星星，带去重键的重复请求返回 duplicate=true"""
    if kind == BalanceKind.STARS:
        return await award_service.award_stars(
            user_id,
            payload.amount,
            payload.source,
            correlation_key=payload.correlation_key,
            multiplier=payload.multiplier,
            description=payload.description,
            metadata=payload.metadata
        )

    return await award_service.award(
        kind,
        user_id,
        payload.amount,
        transaction_type=payload.transaction_type,
        source=payload.source,
        correlation_key=payload.correlation_key,
        description=payload.description,
        metadata=payload.metadata
    )


@router.post("/users/{user_id}/awards/{kind}/spend", response_model=LedgerResult)
async def spend(
    user_id: str,
    kind: BalanceKind,
    payload: SpendRequest,
    award_service: AwardService = Depends(get_award_service)
):
    return await award_service.spend(
        kind,
        user_id,
        payload.amount,
        payload.source,
        correlation_key=payload.correlation_key,
        description=payload.description,
        metadata=payload.metadata
    )


@router.post("/users/{user_id}/awards/{kind}/adjust", response_model=LedgerResult)
async def admin_adjust(
    user_id: str,
    kind: BalanceKind,
    payload: AdjustmentRequest,
    award_service: AwardService = Depends(get_award_service)
):
    """管理员调整余额"""
    return await award_service.admin_adjust(kind, user_id, payload.delta, payload.admin_id, payload.reason)


@router.get("/users/{user_id}/balances", response_model=BalanceSnapshot)
async def get_balances(
    user_id: str,
    award_service: AwardService = Depends(get_award_service)
):
    return await award_service.get_balances(user_id)


@router.get("/users/{user_id}/awards/{kind}/transactions", response_model=List[LedgerTransaction])
async def list_transactions(
    user_id: str,
    kind: BalanceKind,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    award_service: AwardService = Depends(get_award_service)
):
    return await award_service.list_transactions(kind, user_id, limit=limit, offset=offset)


@router.get("/admin/reconcile/{kind}", response_model=ReconciliationReport)
async def reconcile(
    kind: BalanceKind,
    user_id: Optional[str] = None,
    award_service: AwardService = Depends(get_award_service)
):
    """对账：只返回流水合计与余额不一致的用户"""
    return await award_service.reconcile(kind, user_id=user_id)
