"""
"Explain this commission" views built from the stored trace.

Salespeople see the summary, the rule that was applied and the
adjustments to their own commissions. Admins and managers also get the
engine version, plan snapshot, full rule trace and input snapshot.
"""

from typing import Optional

from commtrack.models import CommissionCalculation, User, UserRole
from commtrack.schemas.commission import (
    CommissionExplanation,
    ExplanationAdminDetails,
    ExplanationAppliedRule,
    ExplanationCalculation,
    ExplanationSummary,
    ExplanationTransaction,
)
from commtrack.schemas.trace import CommissionCalculationTrace
from commtrack.services.commission_service import transaction_client
from commtrack.services.commission_trace import load_trace
from commtrack.services.errors import CommissionAccessError
from commtrack.utils.money import ZERO


def can_view_admin_details(user: User) -> bool:
    return user.role in (UserRole.ADMIN, UserRole.MANAGER)


def check_calculation_access(calculation: CommissionCalculation, user: User) -> None:
    """Salespeople may only look at their own commissions."""
    if user.organization_id != calculation.organization_id:
        raise CommissionAccessError(f"Commission {calculation.id} belongs to another organization")
    if user.role == UserRole.SALESPERSON and calculation.user_id != user.id:
        raise CommissionAccessError(f"Commission {calculation.id} belongs to another salesperson")


def _applied_rule(trace: CommissionCalculationTrace) -> Optional[ExplanationAppliedRule]:
    selected = trace.selected_rule
    if selected is None or selected.calculation is None:
        return None

    detail = selected.calculation
    return ExplanationAppliedRule(
        description=selected.description or f"{selected.scope.value.replace('_', ' ').title()} rule",
        rule_type=selected.rule_type,
        rate=detail.rate,
        flat_amount=detail.flat_amount,
        calculation=ExplanationCalculation(
            basis_type=detail.basis.value,
            basis_amount=detail.basis_amount,
            raw_amount=detail.raw_amount,
            final_amount=detail.final_amount,
        ),
    )


def build_explanation(
    calculation: CommissionCalculation,
    *,
    include_admin_details: bool = False,
) -> CommissionExplanation:
    """
    Explanation of a stored commission.

    `calculation` must have sales_transaction (with client and project with its client)
    and commission_plan loaded.
    """
    transaction = calculation.sales_transaction
    client = transaction_client(transaction)
    trace = load_trace(calculation.trace)

    summary = ExplanationSummary(
        commission_amount=calculation.amount,
        effective_rate=trace.output.effective_rate if trace else ZERO,
        sale_amount=transaction.amount,
        plan_name=calculation.commission_plan.name,
        calculated_at=calculation.calculated_at,
        status=calculation.status,
    )

    explanation = CommissionExplanation(
        summary=summary,
        transaction=ExplanationTransaction(
            id=transaction.id,
            amount=transaction.amount,
            date=transaction.transaction_date,
            invoice_number=transaction.invoice_number,
            description=transaction.description,
            client_name=client.name if client else None,
            project_name=transaction.project.name if transaction.project else None,
        ),
        applied_rule=_applied_rule(trace) if trace else None,
        adjustments=list(trace.adjustments) if trace else [],
    )

    if include_admin_details and trace is not None:
        explanation.admin_details = ExplanationAdminDetails(
            engine_version=trace.engine_version,
            plan_version=trace.plan_version,
            full_rule_trace=list(trace.rule_trace),
            input_snapshot=trace.input_snapshot,
            recalculated=trace.recalculated,
        )

    return explanation


def explain_for_user(calculation: CommissionCalculation, user: User) -> CommissionExplanation:
    check_calculation_access(calculation, user)
    return build_explanation(calculation, include_admin_details=can_view_admin_details(user))
