"""
Commission adjustments.

Adjustments are signed amounts applied to a calculated commission after
the fact (returns, clawbacks, overrides, split credit). Each one is also
appended to the calculation's trace; removing an adjustment appends a
reversing entry instead of editing the trace.
"""

import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from commtrack.models import (
    AdjustmentType,
    AuditAction,
    CalculationStatus,
    CommissionAdjustment,
    CommissionCalculation,
    SalesTransaction,
    TransactionType,
)
from commtrack.models.base import utcnow
from commtrack.schemas.commission import AdjustmentCreate, NetCommissionAmount
from commtrack.schemas.trace import CommissionAdjustmentTrace
from commtrack.services.commission_service import applied_by_label, get_calculation_for_transaction
from commtrack.services.commission_trace import append_adjustment, dump_trace, load_trace
from commtrack.services.errors import CommissionStateError, EntityNotFoundError
from commtrack.utils.audit import log_action
from commtrack.utils.money import ZERO, format_money, round_currency

logger = logging.getLogger(__name__)


def _append_to_trace(
    calculation: CommissionCalculation,
    entry: CommissionAdjustmentTrace,
) -> None:
    trace = load_trace(calculation.trace)
    if trace is None:
        logger.warning(f"Commission {calculation.id} has no trace; adjustment not traced")
        return
    calculation.trace = dump_trace(append_adjustment(trace, entry))


async def create_adjustment(
    db: AsyncSession,
    calculation: CommissionCalculation,
    data: AdjustmentCreate,
    user_id: Optional[int] = None,
) -> CommissionAdjustment:
    """Store an adjustment and record it in the calculation's trace."""
    adjustment = CommissionAdjustment(
        organization_id=calculation.organization_id,
        commission_calculation_id=calculation.id,
        type=data.type,
        amount=round_currency(data.amount),
        reason=data.reason,
        notes=data.notes,
        related_transaction_id=data.related_transaction_id,
        applied_by_id=user_id,
    )
    db.add(adjustment)
    await db.flush()

    _append_to_trace(calculation, CommissionAdjustmentTrace(
        id=adjustment.id,
        type=adjustment.type,
        amount=adjustment.amount,
        reason=adjustment.reason,
        related_transaction_id=adjustment.related_transaction_id,
        applied_at=adjustment.applied_at,
        applied_by=await applied_by_label(db, user_id),
    ))
    await db.flush()

    await log_action(
        db,
        organization_id=calculation.organization_id,
        action=AuditAction.ADJUSTMENT_CREATED,
        user_id=user_id,
        target_type="commission",
        target_id=calculation.id,
        action_metadata={
            "adjustment_id": adjustment.id,
            "type": adjustment.type.value,
            "amount": str(adjustment.amount),
        },
    )
    logger.info(
        f"{adjustment.type.value} adjustment of {adjustment.amount} applied to commission {calculation.id}"
    )
    return adjustment


async def link_return_to_commission(
    db: AsyncSession,
    return_transaction: SalesTransaction,
    user_id: Optional[int] = None,
) -> Optional[CommissionAdjustment]:
    """
    Reduce the original sale's commission for a return.

    The deduction uses the rate the original commission was earned at:
    -(|return amount| * commission / sale amount). Returns None when the
    original sale has no commission.
    """
    if return_transaction.transaction_type != TransactionType.RETURN:
        raise CommissionStateError(f"Transaction {return_transaction.id} is not a return")
    if return_transaction.parent_transaction_id is None:
        raise CommissionStateError(f"Return {return_transaction.id} has no original sale")

    parent = await db.get(SalesTransaction, return_transaction.parent_transaction_id)
    if not parent or parent.organization_id != return_transaction.organization_id:
        raise EntityNotFoundError("SalesTransaction", return_transaction.parent_transaction_id)

    calculation = await get_calculation_for_transaction(db, parent.id)
    if calculation is None:
        logger.warning(
            f"Return {return_transaction.id}: original sale {parent.id} has no commission to adjust"
        )
        return None

    original_rate = calculation.amount / parent.amount if parent.amount else ZERO
    amount = -round_currency(abs(return_transaction.amount) * original_rate)

    return await create_adjustment(
        db,
        calculation,
        AdjustmentCreate(
            type=AdjustmentType.RETURN,
            amount=amount,
            reason=(
                f"Return of {format_money(abs(return_transaction.amount))} "
                f"against sale {parent.invoice_number or parent.id}"
            ),
            related_transaction_id=return_transaction.id,
        ),
        user_id=user_id,
    )


async def get_adjustment(
    db: AsyncSession,
    organization_id: int,
    adjustment_id: int,
) -> CommissionAdjustment:
    result = await db.execute(
        select(CommissionAdjustment)
        .where(
            CommissionAdjustment.id == adjustment_id,
            CommissionAdjustment.organization_id == organization_id,
        )
        .options(selectinload(CommissionAdjustment.commission_calculation))
    )
    adjustment = result.scalar_one_or_none()
    if not adjustment:
        raise EntityNotFoundError("CommissionAdjustment", adjustment_id)
    return adjustment


async def delete_adjustment(
    db: AsyncSession,
    organization_id: int,
    adjustment_id: int,
    user_id: Optional[int] = None,
) -> None:
    adjustment = await get_adjustment(db, organization_id, adjustment_id)
    calculation = adjustment.commission_calculation
    if calculation.status == CalculationStatus.PAID:
        raise CommissionStateError(
            f"Adjustments of paid commission {calculation.id} cannot be removed"
        )

    _append_to_trace(calculation, CommissionAdjustmentTrace(
        type=adjustment.type,
        amount=-adjustment.amount,
        reason=f"Reversal of adjustment {adjustment.id}",
        related_transaction_id=adjustment.related_transaction_id,
        applied_at=utcnow(),
        applied_by=await applied_by_label(db, user_id),
    ))
    await db.delete(adjustment)
    await db.flush()

    await log_action(
        db,
        organization_id=organization_id,
        action=AuditAction.ADJUSTMENT_DELETED,
        user_id=user_id,
        target_type="commission",
        target_id=calculation.id,
        action_metadata={"adjustment_id": adjustment_id},
    )


async def list_adjustments(db: AsyncSession, calculation_id: int) -> List[CommissionAdjustment]:
    result = await db.execute(
        select(CommissionAdjustment)
        .where(CommissionAdjustment.commission_calculation_id == calculation_id)
        .order_by(CommissionAdjustment.applied_at, CommissionAdjustment.id)
    )
    return list(result.scalars().all())


async def get_net_commission_amount(
    db: AsyncSession,
    calculation: CommissionCalculation,
) -> NetCommissionAmount:
    result = await db.execute(
        select(
            func.coalesce(func.sum(CommissionAdjustment.amount), 0),
            func.count(CommissionAdjustment.id),
        ).where(CommissionAdjustment.commission_calculation_id == calculation.id)
    )
    total, count = result.one()
    total = round_currency(total)

    return NetCommissionAmount(
        original_amount=calculation.amount,
        total_adjustments=total,
        net_amount=calculation.amount + total,
        adjustment_count=count,
    )
