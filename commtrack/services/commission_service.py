"""
Commission calculation for stored sales transactions.

Looks up the plan that covers a sale, runs the rule engine over the
plan's rules and stores the resulting amount together with its trace.
A sale without a plan or without a matching rule is not given a $0
commission; the caller gets NoApplicablePlanError / NoApplicableRuleError
and decides how to flag it.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from commtrack.models import (
    AdjustmentType,
    AuditAction,
    CalculationStatus,
    Client,
    CommissionAdjustment,
    CommissionBasis,
    CommissionCalculation,
    CommissionPlan,
    Project,
    SalesTransaction,
    TransactionType,
    User,
)
from commtrack.models.base import utcnow
from commtrack.schemas.rule import TransactionContext
from commtrack.schemas.trace import (
    ClientSnapshot,
    CommissionAdjustmentTrace,
    CommissionCalculationTrace,
    EntitySnapshot,
    InputSnapshot,
    SalespersonSnapshot,
)
from commtrack.services.commission_trace import (
    append_adjustment,
    calculate_commission_with_trace,
    dump_trace,
    load_trace,
    supersede_trace,
)
from commtrack.services.errors import (
    CommissionStateError,
    EntityNotFoundError,
    NoApplicablePlanError,
    NoApplicableRuleError,
)
from commtrack.services.plans import scoped_rules
from commtrack.utils.audit import log_action
from commtrack.utils.money import ZERO, round_currency

logger = logging.getLogger(__name__)


async def get_transaction(
    db: AsyncSession,
    organization_id: int,
    transaction_id: int,
) -> SalesTransaction:
    """Transaction with everything a calculation reads loaded up front."""
    result = await db.execute(
        select(SalesTransaction)
        .where(
            SalesTransaction.id == transaction_id,
            SalesTransaction.organization_id == organization_id,
        )
        .options(
            selectinload(SalesTransaction.client).selectinload(Client.territory),
            selectinload(SalesTransaction.project)
            .selectinload(Project.client)
            .selectinload(Client.territory),
            selectinload(SalesTransaction.product_category),
            selectinload(SalesTransaction.user),
        )
    )
    transaction = result.scalar_one_or_none()
    if not transaction:
        raise EntityNotFoundError("SalesTransaction", transaction_id)
    return transaction


def transaction_client(transaction: SalesTransaction) -> Optional[Client]:
    """The sale's own client, or the client of its project."""
    if transaction.client is not None:
        return transaction.client
    if transaction.project is not None:
        return transaction.project.client
    return None


async def calculate_net_sales_amount(db: AsyncSession, transaction: SalesTransaction) -> Decimal:
    """Gross amount minus linked returns, never below zero."""
    result = await db.execute(
        select(func.coalesce(func.sum(func.abs(SalesTransaction.amount)), 0))
        .where(
            SalesTransaction.parent_transaction_id == transaction.id,
            SalesTransaction.transaction_type == TransactionType.RETURN,
        )
    )
    returned = round_currency(result.scalar_one())
    return max(transaction.amount - returned, ZERO)


async def _first_plan(db: AsyncSession, query) -> Optional[CommissionPlan]:
    result = await db.execute(
        query.options(selectinload(CommissionPlan.rules))
        .order_by(CommissionPlan.created_at.desc(), CommissionPlan.id.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def find_commission_plan(
    db: AsyncSession,
    transaction: SalesTransaction,
) -> Optional[CommissionPlan]:
    """
    Active plan for a transaction, most specific first:

    1. a plan on the transaction's project
    2. a plan on any project of the transaction's client (its own or its
       project's)
    3. an organization-wide plan (no project)
    """
    active = select(CommissionPlan).where(
        CommissionPlan.organization_id == transaction.organization_id,
        CommissionPlan.is_active == True,
    )

    if transaction.project_id is not None:
        plan = await _first_plan(db, active.where(CommissionPlan.project_id == transaction.project_id))
        if plan:
            return plan

    client = transaction_client(transaction)
    if client is not None:
        plan = await _first_plan(
            db,
            active.join(Project, CommissionPlan.project_id == Project.id)
            .where(Project.client_id == client.id),
        )
        if plan:
            return plan

    return await _first_plan(db, active.where(CommissionPlan.project_id.is_(None)))


def build_transaction_context(
    transaction: SalesTransaction,
    plan: CommissionPlan,
    net_amount: Decimal,
) -> TransactionContext:
    client = transaction_client(transaction)
    return TransactionContext(
        gross_amount=transaction.amount,
        net_amount=net_amount,
        transaction_date=transaction.transaction_date,
        commission_basis=plan.commission_basis,
        customer_tier=client.tier if client else None,
        product_category_id=transaction.product_category_id,
        territory_id=client.territory_id if client else None,
        client_id=client.id if client else None,
        project_id=transaction.project_id,
    )


def build_input_snapshot(transaction: SalesTransaction, net_amount: Decimal) -> InputSnapshot:
    client = transaction_client(transaction)
    territory = client.territory if client else None
    user = transaction.user

    return InputSnapshot(
        transaction_id=transaction.id,
        gross_amount=transaction.amount,
        net_amount=net_amount,
        transaction_date=transaction.transaction_date,
        transaction_type=transaction.transaction_type.value,
        invoice_number=transaction.invoice_number,
        description=transaction.description,
        client=ClientSnapshot(id=client.id, name=client.name, tier=client.tier) if client else None,
        project=(
            EntitySnapshot(id=transaction.project.id, name=transaction.project.name)
            if transaction.project else None
        ),
        territory=EntitySnapshot(id=territory.id, name=territory.name) if territory else None,
        product_category=(
            EntitySnapshot(id=transaction.product_category.id, name=transaction.product_category.name)
            if transaction.product_category else None
        ),
        salesperson=(
            SalespersonSnapshot(id=user.id, name=user.full_name or user.email, email=user.email)
            if user else None
        ),
    )


async def _run_engine(db: AsyncSession, transaction: SalesTransaction, plan: CommissionPlan):
    net_amount = await calculate_net_sales_amount(db, transaction)
    context = build_transaction_context(transaction, plan, net_amount)
    result, trace = calculate_commission_with_trace(
        context,
        scoped_rules(plan),
        plan=plan,
        input_snapshot=build_input_snapshot(transaction, net_amount),
    )
    if result.selected_rule is None:
        raise NoApplicableRuleError(transaction.id, plan.id)
    return result, trace


async def get_calculation_for_transaction(
    db: AsyncSession,
    transaction_id: int,
) -> Optional[CommissionCalculation]:
    result = await db.execute(
        select(CommissionCalculation).where(
            CommissionCalculation.sales_transaction_id == transaction_id
        )
    )
    return result.scalar_one_or_none()


async def calculate_for_transaction(
    db: AsyncSession,
    transaction: SalesTransaction,
    user_id: Optional[int] = None,
) -> CommissionCalculation:
    """
    Calculate and store the commission for a sale.

    Raises:
        NoApplicablePlanError: no active plan covers the sale
        NoApplicableRuleError: the plan has no rule matching the sale
        CommissionStateError: the sale already has a commission
    """
    if transaction.transaction_type != TransactionType.SALE:
        raise CommissionStateError(
            f"Commissions are only calculated for sales, not {transaction.transaction_type.value}"
        )
    if await get_calculation_for_transaction(db, transaction.id):
        raise CommissionStateError(f"Transaction {transaction.id} already has a commission")

    plan = await find_commission_plan(db, transaction)
    if not plan:
        raise NoApplicablePlanError(transaction.id)

    result, trace = await _run_engine(db, transaction, plan)

    calculation = CommissionCalculation(
        organization_id=transaction.organization_id,
        sales_transaction_id=transaction.id,
        user_id=transaction.user_id,
        commission_plan_id=plan.id,
        amount=round_currency(result.final_amount),
        status=CalculationStatus.PENDING,
        trace=dump_trace(trace),
        calculated_at=trace.calculated_at,
    )
    db.add(calculation)
    await db.flush()

    await log_action(
        db,
        organization_id=transaction.organization_id,
        action=AuditAction.COMMISSION_CALCULATED,
        user_id=user_id,
        target_type="commission",
        target_id=calculation.id,
        action_metadata={
            "transaction_id": transaction.id,
            "plan_id": plan.id,
            "rule_id": result.selected_rule.id,
            "amount": str(calculation.amount),
        },
    )
    logger.info(
        f"Commission {calculation.id} calculated for transaction {transaction.id}: "
        f"{calculation.amount} (rule {result.selected_rule.id})"
    )
    return calculation


async def applied_by_label(db: AsyncSession, user_id: Optional[int]) -> str:
    if user_id is None:
        return "system"
    user = await db.get(User, user_id)
    if not user:
        return f"user {user_id}"
    return user.full_name or user.email


async def _reverse_netted_returns(
    db: AsyncSession,
    calculation: CommissionCalculation,
    trace: CommissionCalculationTrace,
    user_id: Optional[int],
) -> CommissionCalculationTrace:
    """
    Remove RETURN adjustments for returns that the net amount already covers.

    Each removed adjustment gets a reversing trace entry.
    """
    returns = select(SalesTransaction.id).where(
        SalesTransaction.parent_transaction_id == calculation.sales_transaction_id,
        SalesTransaction.transaction_type == TransactionType.RETURN,
    )
    result = await db.execute(
        select(CommissionAdjustment)
        .where(
            CommissionAdjustment.commission_calculation_id == calculation.id,
            CommissionAdjustment.type == AdjustmentType.RETURN,
            CommissionAdjustment.related_transaction_id.in_(returns),
        )
        .order_by(CommissionAdjustment.applied_at, CommissionAdjustment.id)
    )
    netted = list(result.scalars().all())
    if not netted:
        return trace

    applied_by = await applied_by_label(db, user_id)
    for adjustment in netted:
        trace = append_adjustment(trace, CommissionAdjustmentTrace(
            type=adjustment.type,
            amount=-adjustment.amount,
            reason=f"Reversal of adjustment {adjustment.id}: return included in net sales",
            related_transaction_id=adjustment.related_transaction_id,
            applied_at=utcnow(),
            applied_by=applied_by,
        ))
        await db.delete(adjustment)

    logger.info(
        f"Commission {calculation.id}: {len(netted)} return adjustment(s) folded into net sales"
    )
    return trace


async def recalculate_commission(
    db: AsyncSession,
    transaction: SalesTransaction,
    plan: Optional[CommissionPlan] = None,
    user_id: Optional[int] = None,
) -> CommissionCalculation:
    """
    Re-run the engine for a sale and update its commission in place.

    The new trace links the one it replaces. Adjustments carry over, except
    that on NET_SALES plans the RETURN adjustments are reversed: the net
    amount already takes those returns off. The commission returns to
    PENDING since the amount may have changed. Paid commissions are never
    recalculated.
    """
    calculation = await get_calculation_for_transaction(db, transaction.id)
    if calculation is None:
        return await calculate_for_transaction(db, transaction, user_id=user_id)

    if calculation.status == CalculationStatus.PAID:
        raise CommissionStateError(f"Commission {calculation.id} is already paid")

    if plan is None:
        plan = await find_commission_plan(db, transaction)
    if not plan:
        raise NoApplicablePlanError(transaction.id)

    result, trace = await _run_engine(db, transaction, plan)

    previous = load_trace(calculation.trace)
    if previous is not None:
        trace = supersede_trace(previous, trace.model_copy(update={"adjustments": previous.adjustments}))
    if plan.commission_basis == CommissionBasis.NET_SALES:
        trace = await _reverse_netted_returns(db, calculation, trace, user_id)

    old_amount = calculation.amount
    calculation.amount = round_currency(result.final_amount)
    calculation.commission_plan_id = plan.id
    calculation.trace = dump_trace(trace)
    calculation.calculated_at = trace.calculated_at
    calculation.status = CalculationStatus.PENDING
    calculation.approved_at = None
    calculation.rejection_reason = None
    calculation.updated_at = utcnow()
    await db.flush()

    await log_action(
        db,
        organization_id=transaction.organization_id,
        action=AuditAction.COMMISSION_RECALCULATED,
        user_id=user_id,
        target_type="commission",
        target_id=calculation.id,
        action_metadata={
            "transaction_id": transaction.id,
            "plan_id": plan.id,
            "old_amount": str(old_amount),
            "new_amount": str(calculation.amount),
        },
    )
    logger.info(
        f"Commission {calculation.id} recalculated: {old_amount} -> {calculation.amount}"
    )
    return calculation


async def get_calculation(
    db: AsyncSession,
    organization_id: int,
    calculation_id: int,
) -> CommissionCalculation:
    result = await db.execute(
        select(CommissionCalculation)
        .where(
            CommissionCalculation.id == calculation_id,
            CommissionCalculation.organization_id == organization_id,
        )
        .options(
            selectinload(CommissionCalculation.sales_transaction)
            .selectinload(SalesTransaction.client),
            selectinload(CommissionCalculation.sales_transaction)
            .selectinload(SalesTransaction.project)
            .selectinload(Project.client),
            selectinload(CommissionCalculation.commission_plan),
            selectinload(CommissionCalculation.user),
            selectinload(CommissionCalculation.adjustments),
        )
        .execution_options(populate_existing=True)
    )
    calculation = result.scalar_one_or_none()
    if not calculation:
        raise EntityNotFoundError("CommissionCalculation", calculation_id)
    return calculation


async def list_calculations(
    db: AsyncSession,
    organization_id: int,
    user_id: Optional[int] = None,
    status: Optional[CalculationStatus] = None,
    limit: int = 100,
    offset: int = 0,
) -> list[CommissionCalculation]:
    query = select(CommissionCalculation).where(
        CommissionCalculation.organization_id == organization_id
    )
    if user_id is not None:
        query = query.where(CommissionCalculation.user_id == user_id)
    if status is not None:
        query = query.where(CommissionCalculation.status == status)

    result = await db.execute(
        query.order_by(CommissionCalculation.calculated_at.desc(), CommissionCalculation.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all())
