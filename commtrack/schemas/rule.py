"""
Commission plan and rule schemas.

ScopedRule and TransactionContext are the plain-data inputs of the rule
engine; the *Create / *Update / *Response models are the API bodies.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from commtrack.models.client import CustomerTier
from commtrack.models.commission import (
    CommissionBasis,
    RulePriority,
    RuleScope,
    RuleType,
)


class RuleFields(BaseModel):
    """Fields shared by every representation of a rule."""

    rule_type: RuleType
    description: Optional[str] = None

    percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    flat_amount: Optional[Decimal] = Field(None, ge=0)
    tier_threshold: Optional[Decimal] = Field(None, ge=0)
    tier_percentage: Optional[Decimal] = Field(None, ge=0, le=100)

    # Commission caps (bounds on the computed commission)
    min_amount: Optional[Decimal] = Field(None, ge=0)
    max_amount: Optional[Decimal] = Field(None, ge=0)

    # Sale amount range filters (bounds on the basis amount)
    min_sale_amount: Optional[Decimal] = Field(None, ge=0)
    max_sale_amount: Optional[Decimal] = Field(None, ge=0)

    scope: RuleScope = RuleScope.GLOBAL
    priority: Optional[RulePriority] = None
    customer_tier: Optional[CustomerTier] = None
    product_category_id: Optional[int] = None
    territory_id: Optional[int] = None
    client_id: Optional[int] = None


class ScopedRule(RuleFields):
    """Immutable engine view of a stored CommissionRule."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        # SQLite hands back naive datetimes; precedence compares across sources
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class TransactionContext(BaseModel):
    """
    Snapshot of a sale's attributes at calculation time.

    Built once per calculation and never mutated, so later edits to the
    sale cannot change a stored trace.
    """

    model_config = ConfigDict(frozen=True)

    gross_amount: Decimal
    net_amount: Decimal
    transaction_date: datetime
    commission_basis: CommissionBasis = CommissionBasis.GROSS_REVENUE

    customer_tier: Optional[CustomerTier] = None
    product_category_id: Optional[int] = None
    territory_id: Optional[int] = None
    client_id: Optional[int] = None
    project_id: Optional[int] = None

    @property
    def basis_amount(self) -> Decimal:
        if self.commission_basis == CommissionBasis.NET_SALES:
            return self.net_amount
        return self.gross_amount


# ── Validation / conflicts ───────────────────────────────


class RuleValidationIssue(BaseModel):
    field: str
    message: str


class RuleValidationResult(BaseModel):
    valid: bool
    errors: List[RuleValidationIssue] = []


class RuleConflict(BaseModel):
    rule_id: int
    rule_name: Optional[str] = None
    reason: str


# ── API bodies ───────────────────────────────────────────


class PlanCreate(BaseModel):
    """Request to create a commission plan."""

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    project_id: Optional[int] = None
    commission_basis: CommissionBasis = CommissionBasis.GROSS_REVENUE
    is_active: bool = True


class PlanUpdate(BaseModel):
    """Request to update a commission plan. Omitted fields are unchanged."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    project_id: Optional[int] = None
    commission_basis: Optional[CommissionBasis] = None
    is_active: Optional[bool] = None


class RuleCreate(RuleFields):
    """Request to add a rule to a plan."""


class RuleUpdate(BaseModel):
    """Request to update a rule. Omitted fields are unchanged."""

    rule_type: Optional[RuleType] = None
    description: Optional[str] = None
    percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    flat_amount: Optional[Decimal] = Field(None, ge=0)
    tier_threshold: Optional[Decimal] = Field(None, ge=0)
    tier_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    min_amount: Optional[Decimal] = Field(None, ge=0)
    max_amount: Optional[Decimal] = Field(None, ge=0)
    min_sale_amount: Optional[Decimal] = Field(None, ge=0)
    max_sale_amount: Optional[Decimal] = Field(None, ge=0)
    scope: Optional[RuleScope] = None
    priority: Optional[RulePriority] = None
    customer_tier: Optional[CustomerTier] = None
    product_category_id: Optional[int] = None
    territory_id: Optional[int] = None
    client_id: Optional[int] = None


class RuleResponse(ScopedRule):
    """A stored rule as returned by the API."""

    commission_plan_id: int
    priority: RulePriority
    display: Optional[str] = None


class RuleWriteResponse(BaseModel):
    """Result of creating or updating a rule."""

    rule: RuleResponse
    conflicts: List[RuleConflict] = []


class PlanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str]
    project_id: Optional[int]
    commission_basis: CommissionBasis
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime]


class PlanDetailResponse(PlanResponse):
    rules: List[RuleResponse] = []


class PreviewRequest(BaseModel):
    """Sale to preview against a plan."""

    gross_amount: Decimal = Field(..., ge=0)
    net_amount: Optional[Decimal] = Field(None, ge=0)
    customer_tier: Optional[CustomerTier] = None
    product_category_id: Optional[int] = None
    territory_id: Optional[int] = None
    client_id: Optional[int] = None
    project_id: Optional[int] = None
