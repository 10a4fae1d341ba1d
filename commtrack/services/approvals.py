"""
Commission approval workflow.

PENDING -> APPROVED -> PAID, with REJECTED reachable from anything that
is not yet paid. A rejected commission can be approved again.
"""

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from commtrack.models import AuditAction, CalculationStatus, CommissionCalculation
from commtrack.models.base import utcnow
from commtrack.schemas.commission import BulkApproveResult
from commtrack.services.commission_service import get_calculation
from commtrack.services.errors import CommissionError, CommissionStateError
from commtrack.utils.audit import log_action

logger = logging.getLogger(__name__)


async def approve_calculation(
    db: AsyncSession,
    calculation: CommissionCalculation,
    user_id: Optional[int] = None,
) -> CommissionCalculation:
    if calculation.status == CalculationStatus.PAID:
        raise CommissionStateError(f"Commission {calculation.id} is already paid")
    if calculation.status == CalculationStatus.APPROVED:
        return calculation

    calculation.status = CalculationStatus.APPROVED
    calculation.approved_at = utcnow()
    calculation.rejection_reason = None
    await db.flush()

    await log_action(
        db,
        organization_id=calculation.organization_id,
        action=AuditAction.COMMISSION_APPROVED,
        user_id=user_id,
        target_type="commission",
        target_id=calculation.id,
        action_metadata={"amount": str(calculation.amount)},
    )
    logger.info(f"Commission {calculation.id} approved")
    return calculation


async def reject_calculation(
    db: AsyncSession,
    calculation: CommissionCalculation,
    reason: Optional[str] = None,
    user_id: Optional[int] = None,
) -> CommissionCalculation:
    if calculation.status == CalculationStatus.PAID:
        raise CommissionStateError(f"Commission {calculation.id} is already paid")

    calculation.status = CalculationStatus.REJECTED
    calculation.approved_at = None
    calculation.rejection_reason = reason
    await db.flush()

    await log_action(
        db,
        organization_id=calculation.organization_id,
        action=AuditAction.COMMISSION_REJECTED,
        user_id=user_id,
        target_type="commission",
        target_id=calculation.id,
        description=reason,
    )
    logger.info(f"Commission {calculation.id} rejected")
    return calculation


async def mark_calculation_paid(
    db: AsyncSession,
    calculation: CommissionCalculation,
    user_id: Optional[int] = None,
) -> CommissionCalculation:
    if calculation.status != CalculationStatus.APPROVED:
        raise CommissionStateError(
            f"Commission {calculation.id} must be approved before it is paid "
            f"(status: {calculation.status.value})"
        )

    calculation.status = CalculationStatus.PAID
    calculation.paid_at = utcnow()
    await db.flush()

    await log_action(
        db,
        organization_id=calculation.organization_id,
        action=AuditAction.COMMISSION_PAID,
        user_id=user_id,
        target_type="commission",
        target_id=calculation.id,
        action_metadata={"amount": str(calculation.amount)},
    )
    logger.info(f"Commission {calculation.id} marked paid")
    return calculation


async def bulk_approve_calculations(
    db: AsyncSession,
    organization_id: int,
    calculation_ids: List[int],
    user_id: Optional[int] = None,
) -> BulkApproveResult:
    """Approve each calculation independently; failures are reported per id."""
    result = BulkApproveResult()

    for calculation_id in calculation_ids:
        try:
            calculation = await get_calculation(db, organization_id, calculation_id)
            await approve_calculation(db, calculation, user_id=user_id)
        except CommissionError as e:
            result.failed.append({"id": calculation_id, "error": str(e)})
            continue
        result.approved.append(calculation_id)

    logger.info(
        f"Bulk approval: {len(result.approved)} approved, {len(result.failed)} failed"
    )
    return result
