"""
Commission calculation trace types.

A trace records how a commission amount was derived so it can be audited
and explained later. It is stored as JSON on CommissionCalculation.trace.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict

from commtrack.models.client import CustomerTier
from commtrack.models.commission import (
    AdjustmentType,
    CommissionBasis,
    RulePriority,
    RuleScope,
    RuleType,
)
from commtrack.schemas.rule import TransactionContext

# Increment when calculation logic changes to track which version was used.
ENGINE_VERSION = "1.1.0"


class TraceModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class PlanVersionSnapshot(TraceModel):
    """Plan information at calculation time."""

    id: int
    name: str
    commission_basis: CommissionBasis
    updated_at: Optional[datetime] = None


class EntitySnapshot(TraceModel):
    id: int
    name: str


class ClientSnapshot(EntitySnapshot):
    tier: CustomerTier


class SalespersonSnapshot(EntitySnapshot):
    email: Optional[str] = None


class InputSnapshot(TraceModel):
    """Transaction details frozen at calculation time."""

    transaction_id: int
    gross_amount: Decimal
    net_amount: Decimal
    transaction_date: datetime
    transaction_type: str
    invoice_number: Optional[str] = None
    description: Optional[str] = None
    client: Optional[ClientSnapshot] = None
    project: Optional[EntitySnapshot] = None
    territory: Optional[EntitySnapshot] = None
    product_category: Optional[EntitySnapshot] = None
    salesperson: Optional[SalespersonSnapshot] = None


class RuleCondition(TraceModel):
    """A single condition evaluated during rule matching."""

    field: str  # e.g. customerTier, saleAmount, territoryId
    operator: str  # equals, greaterThanOrEqual, lessThanOrEqual
    expected: Any = None
    actual: Any = None
    passed: bool


class RuleCalculationDetail(TraceModel):
    """Arithmetic of the rule that was applied."""

    basis: CommissionBasis
    basis_amount: Decimal
    rate: Optional[Decimal] = None
    flat_amount: Optional[Decimal] = None
    tier_threshold: Optional[Decimal] = None
    tier_rate: Optional[Decimal] = None
    raw_amount: Decimal
    min_cap: Optional[Decimal] = None
    max_cap: Optional[Decimal] = None
    final_amount: Decimal


class RuleEvaluationTrace(TraceModel):
    """How one candidate rule was evaluated."""

    rule_id: int
    rule_name: Optional[str] = None
    rule_type: RuleType
    scope: RuleScope
    priority: RulePriority
    description: Optional[str] = None
    conditions: List[RuleCondition] = []
    eligible: bool
    selected: bool
    calculation: Optional[RuleCalculationDetail] = None


class CommissionAdjustmentTrace(TraceModel):
    """An adjustment applied after the initial calculation."""

    id: Optional[int] = None
    type: AdjustmentType
    amount: Decimal  # negative for deductions
    reason: Optional[str] = None
    related_transaction_id: Optional[int] = None
    applied_at: datetime
    applied_by: Optional[str] = None


class CalculationOutput(TraceModel):
    selected_rule_id: Optional[int] = None
    commission_amount: Decimal
    effective_rate: Decimal


class CommissionCalculationTrace(TraceModel):
    """Complete audit record of one commission calculation."""

    engine_version: str = ENGINE_VERSION
    plan_version: Optional[PlanVersionSnapshot] = None
    transaction_context: TransactionContext
    input_snapshot: Optional[InputSnapshot] = None
    rule_trace: List[RuleEvaluationTrace] = []
    adjustments: List[CommissionAdjustmentTrace] = []
    output: CalculationOutput
    calculated_at: datetime

    recalculated: bool = False
    previous_trace: Optional["CommissionCalculationTrace"] = None

    @property
    def selected_rule(self) -> Optional[RuleEvaluationTrace]:
        for rule in self.rule_trace:
            if rule.selected:
                return rule
        return None

    @property
    def has_selection(self) -> bool:
        return self.output.selected_rule_id is not None

    @property
    def adjustments_total(self) -> Decimal:
        return sum((a.amount for a in self.adjustments), Decimal("0"))
