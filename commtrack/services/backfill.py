"""
Backfill of missing commissions.

Finds sales that have no commission yet and calculates them one by one.
A sale that cannot be calculated is recorded in the summary and the run
moves on to the next one. Each sale is calculated inside its own savepoint,
so a database error on one sale leaves the others intact.
"""

import logging
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from commtrack.models import CommissionCalculation, SalesTransaction, TransactionType
from commtrack.services.commission_service import calculate_for_transaction, get_transaction
from commtrack.services.errors import NoApplicablePlanError, NoApplicableRuleError

logger = logging.getLogger(__name__)


class BackfillSummary(BaseModel):
    """Per-run outcome counts."""

    processed: int = 0
    succeeded: int = 0
    skipped: int = 0
    errored: int = 0
    errors: List[dict] = []


async def find_transactions_without_commission(
    db: AsyncSession,
    organization_id: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[tuple[int, int]]:
    """(organization_id, transaction_id) of sales lacking a commission, oldest first."""
    query = (
        select(SalesTransaction.organization_id, SalesTransaction.id)
        .outerjoin(
            CommissionCalculation,
            CommissionCalculation.sales_transaction_id == SalesTransaction.id,
        )
        .where(
            SalesTransaction.transaction_type == TransactionType.SALE,
            CommissionCalculation.id.is_(None),
        )
        .order_by(SalesTransaction.transaction_date, SalesTransaction.id)
    )
    if organization_id is not None:
        query = query.where(SalesTransaction.organization_id == organization_id)
    if limit is not None:
        query = query.limit(limit)

    result = await db.execute(query)
    return [(row[0], row[1]) for row in result.all()]


async def recalculate_missing_commissions(
    db: AsyncSession,
    organization_id: Optional[int] = None,
    limit: Optional[int] = None,
) -> BackfillSummary:
    summary = BackfillSummary()
    pending = await find_transactions_without_commission(db, organization_id, limit)
    logger.info(f"Backfill: {len(pending)} sales without a commission")

    for org_id, transaction_id in pending:
        summary.processed += 1
        try:
            async with db.begin_nested():
                transaction = await get_transaction(db, org_id, transaction_id)
                await calculate_for_transaction(db, transaction)
        except (NoApplicablePlanError, NoApplicableRuleError) as e:
            summary.skipped += 1
            logger.warning(f"Backfill skipped transaction {transaction_id}: {e}")
            continue
        except Exception as e:
            summary.errored += 1
            summary.errors.append({"transaction_id": transaction_id, "error": str(e)})
            logger.error(f"Backfill failed for transaction {transaction_id}: {e}")
            continue
        summary.succeeded += 1

    logger.info(
        f"Backfill finished: {summary.succeeded} succeeded, {summary.skipped} skipped, "
        f"{summary.errored} errored"
    )
    return summary
