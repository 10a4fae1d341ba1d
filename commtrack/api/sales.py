"""Sales transaction API endpoints."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from commtrack.api.deps import get_current_user, http_error, require_manager
from commtrack.db import get_db
from commtrack.models import User
from commtrack.schemas.commission import CalculationResponse
from commtrack.schemas.sales import SaleCreate, SaleCreateResponse, SaleResponse
from commtrack.services.commission_service import get_transaction, recalculate_commission
from commtrack.services.errors import CommissionError
from commtrack.services.sales import create_sales_transaction

router = APIRouter(prefix="/sales", tags=["Sales"])


@router.post("", response_model=SaleCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_sale(
    data: SaleCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Record a sales transaction.

    Sales get their commission immediately. When no plan or rule covers
    the sale the transaction is still recorded and `commission_outcome`
    says why no commission was created.
    """
    try:
        transaction, outcome, calculation, message = await create_sales_transaction(
            db, current_user.organization_id, data, current_user.id
        )
    except CommissionError as e:
        raise http_error(e)

    return SaleCreateResponse(
        transaction=SaleResponse.model_validate(transaction),
        commission_outcome=outcome,
        commission=CalculationResponse.model_validate(calculation) if calculation else None,
        message=message,
    )


@router.get("/{transaction_id}", response_model=SaleResponse)
async def get_sale(
    transaction_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return await get_transaction(db, current_user.organization_id, transaction_id)
    except CommissionError as e:
        raise http_error(e)


@router.post("/{transaction_id}/recalculate", response_model=CalculationResponse)
async def recalculate_sale(
    transaction_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    """Re-run the commission for a sale against the current plan and rules."""
    try:
        transaction = await get_transaction(db, current_user.organization_id, transaction_id)
        return await recalculate_commission(db, transaction, user_id=current_user.id)
    except CommissionError as e:
        raise http_error(e)
