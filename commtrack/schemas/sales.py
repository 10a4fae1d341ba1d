"""Sales transaction schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from commtrack.models.sales import TransactionType
from commtrack.schemas.commission import CalculationResponse


class CommissionOutcome(str, Enum):
    """What happened to the commission when a sale was recorded."""
    CALCULATED = "calculated"
    SKIPPED_NO_PLAN = "skipped_no_plan"
    SKIPPED_NO_RULE = "skipped_no_rule"
    RETURN_LINKED = "return_linked"
    NOT_APPLICABLE = "not_applicable"


class SaleCreate(BaseModel):
    """Request to record a sales transaction."""

    amount: Decimal = Field(..., gt=0)
    transaction_date: datetime
    transaction_type: TransactionType = TransactionType.SALE
    user_id: int
    client_id: Optional[int] = None
    project_id: Optional[int] = None
    product_category_id: Optional[int] = None
    parent_transaction_id: Optional[int] = None
    invoice_number: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def check_parent(self) -> "SaleCreate":
        if self.parent_transaction_id is not None and self.transaction_type == TransactionType.SALE:
            raise ValueError("Only RETURN or ADJUSTMENT transactions may reference a parent sale")
        return self


class SaleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: Decimal
    transaction_date: datetime
    transaction_type: TransactionType
    user_id: int
    client_id: Optional[int]
    project_id: Optional[int]
    product_category_id: Optional[int]
    parent_transaction_id: Optional[int]
    invoice_number: Optional[str]


class SaleCreateResponse(BaseModel):
    transaction: SaleResponse
    commission_outcome: CommissionOutcome
    commission: Optional[CalculationResponse] = None
    message: Optional[str] = None
