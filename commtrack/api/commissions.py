"""Commission calculation API endpoints: listing, approvals, adjustments, explanations."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from commtrack.api.deps import get_current_user, http_error, require_manager
from commtrack.db import get_db
from commtrack.models import CalculationStatus, User, UserRole
from commtrack.schemas.commission import (
    AdjustmentCreate,
    AdjustmentResponse,
    BulkApproveRequest,
    BulkApproveResult,
    CalculationResponse,
    CommissionExplanation,
    NetCommissionAmount,
    RejectRequest,
)
from commtrack.services import adjustments as adjustment_service
from commtrack.services import approvals
from commtrack.services.commission_service import get_calculation, list_calculations
from commtrack.services.errors import CommissionError
from commtrack.services.explanation import check_calculation_access, explain_for_user

router = APIRouter(prefix="/commissions", tags=["Commissions"])


async def _load(db: AsyncSession, current_user: User, calculation_id: int):
    calculation = await get_calculation(db, current_user.organization_id, calculation_id)
    check_calculation_access(calculation, current_user)
    return calculation


@router.get("", response_model=List[CalculationResponse])
async def list_commissions(
    status_filter: Optional[CalculationStatus] = Query(None, alias="status"),
    user_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List commissions. Salespeople only see their own."""
    if current_user.role == UserRole.SALESPERSON:
        user_id = current_user.id

    return await list_calculations(
        db,
        current_user.organization_id,
        user_id=user_id,
        status=status_filter,
        limit=per_page,
        offset=(page - 1) * per_page,
    )


@router.post("/bulk-approve", response_model=BulkApproveResult)
async def bulk_approve(
    data: BulkApproveRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    return await approvals.bulk_approve_calculations(
        db, current_user.organization_id, data.calculation_ids, current_user.id
    )


@router.delete("/adjustments/{adjustment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_adjustment(
    adjustment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    try:
        await adjustment_service.delete_adjustment(
            db, current_user.organization_id, adjustment_id, current_user.id
        )
    except CommissionError as e:
        raise http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{calculation_id}", response_model=CalculationResponse)
async def get_commission(
    calculation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return await _load(db, current_user, calculation_id)
    except CommissionError as e:
        raise http_error(e)


@router.post("/{calculation_id}/approve", response_model=CalculationResponse)
async def approve_commission(
    calculation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    try:
        calculation = await _load(db, current_user, calculation_id)
        return await approvals.approve_calculation(db, calculation, current_user.id)
    except CommissionError as e:
        raise http_error(e)


@router.post("/{calculation_id}/reject", response_model=CalculationResponse)
async def reject_commission(
    calculation_id: int,
    data: RejectRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    try:
        calculation = await _load(db, current_user, calculation_id)
        return await approvals.reject_calculation(db, calculation, data.reason, current_user.id)
    except CommissionError as e:
        raise http_error(e)


@router.post("/{calculation_id}/pay", response_model=CalculationResponse)
async def pay_commission(
    calculation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    try:
        calculation = await _load(db, current_user, calculation_id)
        return await approvals.mark_calculation_paid(db, calculation, current_user.id)
    except CommissionError as e:
        raise http_error(e)


@router.get("/{calculation_id}/explain", response_model=CommissionExplanation)
async def explain_commission(
    calculation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """How the commission was calculated. Admin details for admins and managers only."""
    try:
        calculation = await get_calculation(db, current_user.organization_id, calculation_id)
        return explain_for_user(calculation, current_user)
    except CommissionError as e:
        raise http_error(e)


@router.get("/{calculation_id}/adjustments", response_model=List[AdjustmentResponse])
async def list_adjustments(
    calculation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        calculation = await _load(db, current_user, calculation_id)
    except CommissionError as e:
        raise http_error(e)
    return await adjustment_service.list_adjustments(db, calculation.id)


@router.post(
    "/{calculation_id}/adjustments",
    response_model=AdjustmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_adjustment(
    calculation_id: int,
    data: AdjustmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    try:
        calculation = await _load(db, current_user, calculation_id)
        return await adjustment_service.create_adjustment(db, calculation, data, current_user.id)
    except CommissionError as e:
        raise http_error(e)


@router.get("/{calculation_id}/net", response_model=NetCommissionAmount)
async def net_commission(
    calculation_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Commission after adjustments."""
    try:
        calculation = await _load(db, current_user, calculation_id)
    except CommissionError as e:
        raise http_error(e)
    return await adjustment_service.get_net_commission_amount(db, calculation)
