"""Pydantic schemas for engine data and request/response validation."""

from commtrack.schemas.commission import (
    AdjustmentCreate,
    AdjustmentResponse,
    AppliedRule,
    BulkApproveRequest,
    BulkApproveResult,
    CalculationResponse,
    CalculationResult,
    CommissionExplanation,
    CommissionPreview,
    MatchedRule,
    NetCommissionAmount,
    PrecedenceCalculationResult,
    RejectRequest,
    SelectedRule,
)
from commtrack.schemas.rule import (
    PlanCreate,
    PlanDetailResponse,
    PlanResponse,
    PlanUpdate,
    PreviewRequest,
    RuleConflict,
    RuleCreate,
    RuleResponse,
    RuleUpdate,
    RuleValidationIssue,
    RuleValidationResult,
    RuleWriteResponse,
    ScopedRule,
    TransactionContext,
)
from commtrack.schemas.sales import (
    CommissionOutcome,
    SaleCreate,
    SaleCreateResponse,
    SaleResponse,
)
from commtrack.schemas.trace import (
    ENGINE_VERSION,
    CommissionAdjustmentTrace,
    CommissionCalculationTrace,
    InputSnapshot,
    PlanVersionSnapshot,
    RuleCalculationDetail,
    RuleCondition,
    RuleEvaluationTrace,
)

__all__ = [
    # Engine input
    "ScopedRule",
    "TransactionContext",
    # Rules and plans
    "PlanCreate",
    "PlanDetailResponse",
    "PlanResponse",
    "PlanUpdate",
    "PreviewRequest",
    "RuleConflict",
    "RuleCreate",
    "RuleResponse",
    "RuleUpdate",
    "RuleValidationIssue",
    "RuleValidationResult",
    "RuleWriteResponse",
    # Results
    "AppliedRule",
    "CalculationResult",
    "CommissionPreview",
    "MatchedRule",
    "PrecedenceCalculationResult",
    "SelectedRule",
    # Trace
    "ENGINE_VERSION",
    "CommissionAdjustmentTrace",
    "CommissionCalculationTrace",
    "InputSnapshot",
    "PlanVersionSnapshot",
    "RuleCalculationDetail",
    "RuleCondition",
    "RuleEvaluationTrace",
    # Calculations
    "AdjustmentCreate",
    "AdjustmentResponse",
    "BulkApproveRequest",
    "BulkApproveResult",
    "CalculationResponse",
    "CommissionExplanation",
    "NetCommissionAmount",
    "RejectRequest",
    # Sales
    "CommissionOutcome",
    "SaleCreate",
    "SaleCreateResponse",
    "SaleResponse",
]
