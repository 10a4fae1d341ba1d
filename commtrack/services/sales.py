"""
Recording sales transactions.

A new SALE is given its commission straight away. A RETURN against an
earlier sale reduces that sale's commission through a RETURN adjustment.
"""

import logging
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from commtrack.models import (
    Client,
    CommissionCalculation,
    ProductCategory,
    Project,
    SalesTransaction,
    TransactionType,
    User,
)
from commtrack.schemas.sales import CommissionOutcome, SaleCreate
from commtrack.services.adjustments import link_return_to_commission
from commtrack.services.commission_service import (
    calculate_for_transaction,
    get_calculation_for_transaction,
    get_transaction,
)
from commtrack.services.errors import (
    CommissionStateError,
    EntityNotFoundError,
    NoApplicablePlanError,
    NoApplicableRuleError,
)

logger = logging.getLogger(__name__)

REFERENCES = (
    ("user_id", User),
    ("client_id", Client),
    ("project_id", Project),
    ("product_category_id", ProductCategory),
    ("parent_transaction_id", SalesTransaction),
)


async def _check_references(db: AsyncSession, organization_id: int, data: SaleCreate) -> None:
    for field, model in REFERENCES:
        value = getattr(data, field)
        if value is None:
            continue
        row = await db.get(model, value)
        if not row or row.organization_id != organization_id:
            raise EntityNotFoundError(model.__name__, value)

    if data.parent_transaction_id is not None:
        parent = await db.get(SalesTransaction, data.parent_transaction_id)
        if parent.transaction_type != TransactionType.SALE:
            raise CommissionStateError(
                f"Transaction {parent.id} is a {parent.transaction_type.value}, not a sale"
            )


async def create_sales_transaction(
    db: AsyncSession,
    organization_id: int,
    data: SaleCreate,
    user_id: Optional[int] = None,
) -> Tuple[SalesTransaction, CommissionOutcome, Optional[CommissionCalculation], Optional[str]]:
    """
    Store a transaction and apply its commission effect.

    Returns the transaction, what happened to the commission, the
    affected calculation (if any) and a message for skipped outcomes.
    """
    await _check_references(db, organization_id, data)

    transaction = SalesTransaction(organization_id=organization_id, **data.model_dump())
    db.add(transaction)
    await db.flush()
    logger.info(
        f"{transaction.transaction_type.value} transaction {transaction.id} recorded "
        f"for {transaction.amount}"
    )

    if transaction.transaction_type == TransactionType.SALE:
        transaction = await get_transaction(db, organization_id, transaction.id)
        try:
            calculation = await calculate_for_transaction(db, transaction, user_id=user_id)
        except NoApplicablePlanError as e:
            logger.warning(f"Sale {transaction.id} has no commission plan; flagged for review")
            return transaction, CommissionOutcome.SKIPPED_NO_PLAN, None, str(e)
        except NoApplicableRuleError as e:
            logger.warning(f"Sale {transaction.id} matched no commission rule; flagged for review")
            return transaction, CommissionOutcome.SKIPPED_NO_RULE, None, str(e)
        return transaction, CommissionOutcome.CALCULATED, calculation, None

    if transaction.transaction_type == TransactionType.RETURN and transaction.parent_transaction_id:
        adjustment = await link_return_to_commission(db, transaction, user_id=user_id)
        if adjustment is None:
            return (
                transaction,
                CommissionOutcome.NOT_APPLICABLE,
                None,
                "Original sale has no commission to adjust",
            )
        calculation = await get_calculation_for_transaction(db, transaction.parent_transaction_id)
        return transaction, CommissionOutcome.RETURN_LINKED, calculation, None

    return transaction, CommissionOutcome.NOT_APPLICABLE, None, None
