"""
Commission calculation, adjustment and explanation schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from commtrack.models.commission import (
    AdjustmentType,
    CalculationStatus,
    CommissionBasis,
    RulePriority,
    RuleScope,
    RuleType,
)
from commtrack.schemas.trace import (
    CommissionAdjustmentTrace,
    InputSnapshot,
    PlanVersionSnapshot,
    RuleEvaluationTrace,
)


# ── Engine results ───────────────────────────────────────


class AppliedRule(BaseModel):
    """One rule's contribution to a calculation."""

    rule_id: int
    rule_type: RuleType
    raw_amount: Decimal
    calculated_amount: Decimal
    description: str


class CalculationResult(BaseModel):
    """
    Sum over the supplied rules.

    base_amount is before caps, capped_amount and final_amount after.
    """

    base_amount: Decimal = Decimal("0")
    capped_amount: Decimal = Decimal("0")
    applied_rules: List[AppliedRule] = []
    final_amount: Decimal = Decimal("0")


class MatchedRule(BaseModel):
    id: int
    scope: RuleScope
    priority: RulePriority
    selected: bool


class SelectedRule(BaseModel):
    id: int
    scope: RuleScope
    priority: RulePriority
    description: str


class PrecedenceCalculationResult(CalculationResult):
    """Result of applying only the highest-precedence matching rule."""

    basis: CommissionBasis
    basis_amount: Decimal
    selected_rule: Optional[SelectedRule] = None
    matched_rules: List[MatchedRule] = []


class PreviewLine(BaseModel):
    type: RuleType
    description: str
    amount: Decimal


class CommissionPreview(BaseModel):
    sale_amount: Decimal
    total_commission: Decimal
    rules: List[PreviewLine] = []
    selected_rule_id: Optional[int] = None


# ── Stored calculations ──────────────────────────────────


class CalculationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sales_transaction_id: int
    user_id: int
    commission_plan_id: int
    amount: Decimal
    status: CalculationStatus
    calculated_at: datetime
    approved_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class BulkApproveRequest(BaseModel):
    calculation_ids: List[int] = Field(..., min_length=1)


class BulkApproveResult(BaseModel):
    approved: List[int] = []
    failed: List[dict] = []


# ── Adjustments ──────────────────────────────────────────


class AdjustmentCreate(BaseModel):
    """Request to adjust a calculated commission."""

    type: AdjustmentType
    amount: Decimal  # negative for deductions, positive for additions
    reason: Optional[str] = Field(None, max_length=2000)
    notes: Optional[str] = Field(None, max_length=2000)
    related_transaction_id: Optional[int] = None


class AdjustmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    commission_calculation_id: int
    type: AdjustmentType
    amount: Decimal
    reason: Optional[str]
    related_transaction_id: Optional[int]
    applied_by_id: Optional[int]
    applied_at: datetime


class NetCommissionAmount(BaseModel):
    original_amount: Decimal
    total_adjustments: Decimal
    net_amount: Decimal
    adjustment_count: int


# ── Explanation ──────────────────────────────────────────


class ExplanationSummary(BaseModel):
    commission_amount: Decimal
    effective_rate: Decimal
    sale_amount: Decimal
    plan_name: str
    calculated_at: datetime
    status: CalculationStatus


class ExplanationTransaction(BaseModel):
    id: int
    amount: Decimal
    date: datetime
    invoice_number: Optional[str] = None
    description: Optional[str] = None
    client_name: Optional[str] = None
    project_name: Optional[str] = None


class ExplanationCalculation(BaseModel):
    basis_type: str
    basis_amount: Decimal
    raw_amount: Decimal
    final_amount: Decimal


class ExplanationAppliedRule(BaseModel):
    description: str
    rule_type: RuleType
    rate: Optional[Decimal] = None
    flat_amount: Optional[Decimal] = None
    calculation: ExplanationCalculation


class ExplanationAdminDetails(BaseModel):
    engine_version: str
    plan_version: Optional[PlanVersionSnapshot] = None
    full_rule_trace: List[RuleEvaluationTrace] = []
    input_snapshot: Optional[InputSnapshot] = None
    recalculated: bool = False


class CommissionExplanation(BaseModel):
    """Role-appropriate explanation of a stored commission."""

    summary: ExplanationSummary
    transaction: ExplanationTransaction
    applied_rule: Optional[ExplanationAppliedRule] = None
    adjustments: List[CommissionAdjustmentTrace] = []
    admin_details: Optional[ExplanationAdminDetails] = None
