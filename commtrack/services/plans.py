"""
Commission plan and rule management.

Rules are validated before they are written; duplicates of an existing
rule are allowed but reported back so the editor can warn about them.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from commtrack.models import AuditAction, CommissionPlan, CommissionRule, Project
from commtrack.models.base import utcnow
from commtrack.schemas.commission import CommissionPreview, PreviewLine
from commtrack.schemas.rule import (
    PlanCreate,
    PlanUpdate,
    PreviewRequest,
    RuleConflict,
    RuleCreate,
    RuleFields,
    RuleResponse,
    RuleUpdate,
    ScopedRule,
    TransactionContext,
)
from commtrack.services.commission_calculator import (
    calculate_commission_with_precedence,
    format_rule,
)
from commtrack.services.errors import EntityNotFoundError
from commtrack.services.rule_precedence import (
    assign_priority_from_scope,
    detect_rule_conflicts,
    sort_by_precedence,
)
from commtrack.services.rule_validator import ensure_valid_rule
from commtrack.utils.audit import log_action
from commtrack.utils.money import to_decimal

logger = logging.getLogger(__name__)

RULE_FIELDS = tuple(RuleFields.model_fields)


# ── Plans ────────────────────────────────────────────────


async def _check_project(db: AsyncSession, organization_id: int, project_id: Optional[int]) -> None:
    if project_id is None:
        return
    project = await db.get(Project, project_id)
    if not project or project.organization_id != organization_id:
        raise EntityNotFoundError("Project", project_id)


async def create_plan(
    db: AsyncSession,
    organization_id: int,
    data: PlanCreate,
    user_id: Optional[int] = None,
) -> CommissionPlan:
    await _check_project(db, organization_id, data.project_id)

    plan = CommissionPlan(organization_id=organization_id, **data.model_dump())
    db.add(plan)
    await db.flush()

    await log_action(
        db,
        organization_id=organization_id,
        action=AuditAction.PLAN_CREATED,
        user_id=user_id,
        target_type="plan",
        target_id=plan.id,
        description=f"Created commission plan '{plan.name}'",
    )
    logger.info(f"Commission plan {plan.id} created in organization {organization_id}")
    return plan


async def get_plan(db: AsyncSession, organization_id: int, plan_id: int) -> CommissionPlan:
    plan = await db.get(CommissionPlan, plan_id)
    if not plan or plan.organization_id != organization_id:
        raise EntityNotFoundError("CommissionPlan", plan_id)
    return plan


async def get_plan_with_rules(db: AsyncSession, organization_id: int, plan_id: int) -> CommissionPlan:
    """Plan with its rules loaded fresh from the database."""
    result = await db.execute(
        select(CommissionPlan)
        .where(
            CommissionPlan.id == plan_id,
            CommissionPlan.organization_id == organization_id,
        )
        .options(selectinload(CommissionPlan.rules))
        .execution_options(populate_existing=True)
    )
    plan = result.scalar_one_or_none()
    if not plan:
        raise EntityNotFoundError("CommissionPlan", plan_id)
    return plan


async def list_plans(
    db: AsyncSession,
    organization_id: int,
    active_only: bool = False,
) -> List[CommissionPlan]:
    query = select(CommissionPlan).where(CommissionPlan.organization_id == organization_id)
    if active_only:
        query = query.where(CommissionPlan.is_active == True)
    result = await db.execute(query.order_by(CommissionPlan.name, CommissionPlan.id))
    return list(result.scalars().all())


async def update_plan(
    db: AsyncSession,
    organization_id: int,
    plan_id: int,
    data: PlanUpdate,
    user_id: Optional[int] = None,
) -> CommissionPlan:
    plan = await get_plan(db, organization_id, plan_id)
    changes = data.model_dump(exclude_unset=True)
    if "project_id" in changes:
        await _check_project(db, organization_id, changes["project_id"])

    for field, value in changes.items():
        setattr(plan, field, value)
    plan.updated_at = utcnow()
    await db.flush()

    await log_action(
        db,
        organization_id=organization_id,
        action=AuditAction.PLAN_UPDATED,
        user_id=user_id,
        target_type="plan",
        target_id=plan.id,
        action_metadata={"fields": sorted(changes)},
    )
    return plan


# ── Rules ────────────────────────────────────────────────


def scoped_rules(plan: CommissionPlan) -> List[ScopedRule]:
    """Engine view of a plan's rules, in precedence order."""
    return sort_by_precedence(ScopedRule.model_validate(rule) for rule in plan.rules)


def rule_to_response(rule: CommissionRule) -> RuleResponse:
    response = RuleResponse.model_validate(rule)
    return response.model_copy(update={"display": format_rule(rule)})


async def get_rule(db: AsyncSession, organization_id: int, rule_id: int) -> CommissionRule:
    result = await db.execute(
        select(CommissionRule)
        .join(CommissionPlan, CommissionRule.commission_plan_id == CommissionPlan.id)
        .where(
            CommissionRule.id == rule_id,
            CommissionPlan.organization_id == organization_id,
        )
    )
    rule = result.scalar_one_or_none()
    if not rule:
        raise EntityNotFoundError("CommissionRule", rule_id)
    return rule


async def _plan_rules(db: AsyncSession, plan_id: int) -> List[CommissionRule]:
    result = await db.execute(
        select(CommissionRule).where(CommissionRule.commission_plan_id == plan_id)
    )
    return list(result.scalars().all())


async def create_rule(
    db: AsyncSession,
    organization_id: int,
    plan_id: int,
    data: RuleCreate,
    user_id: Optional[int] = None,
) -> Tuple[CommissionRule, List[RuleConflict]]:
    """
    Validate and store a new rule.

    Raises RuleValidationError with field-level errors; nothing is written
    in that case. Returns the rule and any duplicates it shadows.
    """
    plan = await get_plan(db, organization_id, plan_id)

    if data.priority is None:
        data = data.model_copy(update={"priority": assign_priority_from_scope(data.scope)})
    ensure_valid_rule(data)

    conflicts = detect_rule_conflicts(data, await _plan_rules(db, plan.id))

    rule = CommissionRule(commission_plan_id=plan.id, **data.model_dump())
    db.add(rule)
    await db.flush()

    await log_action(
        db,
        organization_id=organization_id,
        action=AuditAction.RULE_CREATED,
        user_id=user_id,
        target_type="rule",
        target_id=rule.id,
        description=f"Added rule '{format_rule(rule)}' to plan '{plan.name}'",
        action_metadata={"plan_id": plan.id, "conflicts": [c.rule_id for c in conflicts]},
    )
    if conflicts:
        logger.info(
            f"Rule {rule.id} duplicates rules {[c.rule_id for c in conflicts]} of plan {plan.id}"
        )
    return rule, conflicts


async def update_rule(
    db: AsyncSession,
    organization_id: int,
    rule_id: int,
    data: RuleUpdate,
    user_id: Optional[int] = None,
) -> Tuple[CommissionRule, List[RuleConflict]]:
    rule = await get_rule(db, organization_id, rule_id)
    changes = data.model_dump(exclude_unset=True)

    current = {field: getattr(rule, field) for field in RULE_FIELDS}
    # Moving to another scope carries the implied priority along unless it was set by hand
    if (
        "scope" in changes
        and "priority" not in changes
        and rule.priority == assign_priority_from_scope(rule.scope)
    ):
        changes["priority"] = assign_priority_from_scope(changes["scope"])

    merged = RuleFields.model_validate({**current, **changes})
    if merged.priority is None:
        merged = merged.model_copy(update={"priority": assign_priority_from_scope(merged.scope)})
    ensure_valid_rule(merged)

    others = [r for r in await _plan_rules(db, rule.commission_plan_id) if r.id != rule.id]
    conflicts = detect_rule_conflicts(merged, others)

    for field in RULE_FIELDS:
        setattr(rule, field, getattr(merged, field))
    rule.updated_at = utcnow()
    await db.flush()

    await log_action(
        db,
        organization_id=organization_id,
        action=AuditAction.RULE_UPDATED,
        user_id=user_id,
        target_type="rule",
        target_id=rule.id,
        action_metadata={"fields": sorted(changes)},
    )
    return rule, conflicts


async def delete_rule(
    db: AsyncSession,
    organization_id: int,
    rule_id: int,
    user_id: Optional[int] = None,
) -> None:
    rule = await get_rule(db, organization_id, rule_id)
    plan_id = rule.commission_plan_id
    await db.delete(rule)
    await db.flush()

    await log_action(
        db,
        organization_id=organization_id,
        action=AuditAction.RULE_DELETED,
        user_id=user_id,
        target_type="rule",
        target_id=rule_id,
        action_metadata={"plan_id": plan_id},
    )
    logger.info(f"Rule {rule_id} deleted from plan {plan_id}")


# ── Preview ──────────────────────────────────────────────


def preview_plan(plan: CommissionPlan, request: PreviewRequest) -> CommissionPreview:
    """What a sale with these attributes would earn under the plan."""
    gross = to_decimal(request.gross_amount)
    context = TransactionContext(
        gross_amount=gross,
        net_amount=request.net_amount if request.net_amount is not None else gross,
        transaction_date=utcnow(),
        commission_basis=plan.commission_basis,
        customer_tier=request.customer_tier,
        product_category_id=request.product_category_id,
        territory_id=request.territory_id,
        client_id=request.client_id,
        project_id=request.project_id,
    )
    result = calculate_commission_with_precedence(context, scoped_rules(plan))

    return CommissionPreview(
        sale_amount=context.basis_amount,
        total_commission=result.final_amount,
        rules=[
            PreviewLine(type=r.rule_type, description=r.description, amount=r.calculated_amount)
            for r in result.applied_rules
        ],
        selected_rule_id=result.selected_rule.id if result.selected_rule else None,
    )
