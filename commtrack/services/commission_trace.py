"""
Commission calculation traces.

A trace lists every candidate rule with the conditions it was checked
against, marks the single rule that was applied and records its
arithmetic. Traces are immutable; adjustments and recalculations produce
new trace objects that keep the earlier content intact.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from commtrack.models.commission import RuleType
from commtrack.schemas.commission import PrecedenceCalculationResult
from commtrack.schemas.rule import TransactionContext
from commtrack.schemas.trace import (
    ENGINE_VERSION,
    CalculationOutput,
    CommissionAdjustmentTrace,
    CommissionCalculationTrace,
    InputSnapshot,
    PlanVersionSnapshot,
    RuleCalculationDetail,
    RuleEvaluationTrace,
)
from commtrack.services.commission_calculator import (
    apply_caps,
    calculate_commission_with_precedence,
    calculate_rule_amount,
)
from commtrack.services.rule_matching import build_rule_conditions
from commtrack.services.rule_precedence import effective_priority, sort_by_precedence
from commtrack.utils.money import HUNDRED, ZERO

logger = logging.getLogger(__name__)


def build_rule_calculation_detail(rule, context: TransactionContext) -> RuleCalculationDetail:
    basis_amount = context.basis_amount
    raw = calculate_rule_amount(rule, basis_amount)
    final = apply_caps(raw, rule.min_amount, rule.max_amount, rule.id)

    rule_type = RuleType(rule.rule_type)
    return RuleCalculationDetail(
        basis=context.commission_basis,
        basis_amount=basis_amount,
        rate=rule.percentage if rule_type != RuleType.FLAT_AMOUNT else None,
        flat_amount=rule.flat_amount if rule_type == RuleType.FLAT_AMOUNT else None,
        tier_threshold=rule.tier_threshold if rule_type == RuleType.TIERED else None,
        tier_rate=rule.tier_percentage if rule_type == RuleType.TIERED else None,
        raw_amount=raw,
        min_cap=rule.min_amount,
        max_cap=rule.max_amount,
        final_amount=final,
    )


def effective_rate(amount: Decimal, basis_amount: Decimal) -> Decimal:
    if basis_amount == 0:
        return ZERO
    return amount / basis_amount * HUNDRED


def build_trace(
    context: TransactionContext,
    candidate_rules: Iterable,
    selected_rule_id: Optional[int],
    calculation_detail: Optional[RuleCalculationDetail],
    *,
    plan=None,
    input_snapshot: Optional[InputSnapshot] = None,
    calculated_at: Optional[datetime] = None,
) -> CommissionCalculationTrace:
    """
    Record how every candidate rule was evaluated.

    Only the rule with `selected_rule_id` is marked selected and carries
    the calculation detail. With no selection the output has no
    selected_rule_id and a zero amount.
    """
    rule_trace = []
    for rule in sort_by_precedence(candidate_rules):
        conditions = build_rule_conditions(rule, context)
        selected = selected_rule_id is not None and rule.id == selected_rule_id
        rule_trace.append(RuleEvaluationTrace(
            rule_id=rule.id,
            rule_name=getattr(rule, "description", None),
            rule_type=rule.rule_type,
            scope=rule.scope,
            priority=effective_priority(rule),
            description=getattr(rule, "description", None),
            conditions=conditions,
            eligible=all(c.passed for c in conditions),
            selected=selected,
            calculation=calculation_detail if selected else None,
        ))

    if selected_rule_id is not None and calculation_detail is not None:
        amount = calculation_detail.final_amount
    else:
        amount = ZERO

    plan_version = None
    if plan is not None:
        plan_version = PlanVersionSnapshot(
            id=plan.id,
            name=plan.name,
            commission_basis=plan.commission_basis,
            updated_at=plan.updated_at,
        )

    return CommissionCalculationTrace(
        engine_version=ENGINE_VERSION,
        plan_version=plan_version,
        transaction_context=context,
        input_snapshot=input_snapshot,
        rule_trace=rule_trace,
        output=CalculationOutput(
            selected_rule_id=selected_rule_id,
            commission_amount=amount,
            effective_rate=effective_rate(amount, context.basis_amount),
        ),
        calculated_at=calculated_at or datetime.now(timezone.utc),
    )


def calculate_commission_with_trace(
    context: TransactionContext,
    rules: List,
    *,
    plan=None,
    input_snapshot: Optional[InputSnapshot] = None,
) -> Tuple[PrecedenceCalculationResult, CommissionCalculationTrace]:
    """Select a rule, calculate with it and build the matching trace."""
    result = calculate_commission_with_precedence(context, rules)

    selected_rule_id = None
    detail = None
    if result.selected_rule is not None:
        selected_rule_id = result.selected_rule.id
        selected = next(r for r in rules if r.id == selected_rule_id)
        detail = build_rule_calculation_detail(selected, context)
    else:
        logger.debug(f"No rule among {len(rules)} candidates matched the transaction")

    trace = build_trace(
        context,
        rules,
        selected_rule_id,
        detail,
        plan=plan,
        input_snapshot=input_snapshot,
    )
    return result, trace


def append_adjustment(
    trace: CommissionCalculationTrace,
    adjustment: CommissionAdjustmentTrace,
) -> CommissionCalculationTrace:
    """A copy of the trace with one more adjustment at the end."""
    return trace.model_copy(update={"adjustments": [*trace.adjustments, adjustment]})


def supersede_trace(
    previous: CommissionCalculationTrace,
    new: CommissionCalculationTrace,
) -> CommissionCalculationTrace:
    """Mark `new` as a recalculation that replaced `previous`."""
    return new.model_copy(update={"recalculated": True, "previous_trace": previous})


def load_trace(data: Optional[dict]) -> Optional[CommissionCalculationTrace]:
    if not data:
        return None
    return CommissionCalculationTrace.model_validate(data)


def dump_trace(trace: CommissionCalculationTrace) -> dict:
    return trace.model_dump(mode="json")
