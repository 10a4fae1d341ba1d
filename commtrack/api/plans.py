"""Commission plan and rule API endpoints."""

from typing import List

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from commtrack.api.deps import get_current_user, http_error, require_admin
from commtrack.db import get_db
from commtrack.models import User
from commtrack.schemas.commission import CommissionPreview
from commtrack.schemas.rule import (
    PlanCreate,
    PlanDetailResponse,
    PlanResponse,
    PlanUpdate,
    PreviewRequest,
    RuleCreate,
    RuleResponse,
    RuleUpdate,
    RuleValidationResult,
    RuleWriteResponse,
)
from commtrack.services import plans as plan_service
from commtrack.services.errors import CommissionError
from commtrack.services.rule_precedence import assign_priority_from_scope, sort_by_precedence
from commtrack.services.rule_validator import validate_rule

router = APIRouter(tags=["Plans"])


def _ordered_rules(plan) -> List[RuleResponse]:
    return sort_by_precedence(plan_service.rule_to_response(rule) for rule in plan.rules)


@router.get("/plans", response_model=List[PlanResponse])
async def list_plans(
    active_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List the organization's commission plans."""
    return await plan_service.list_plans(db, current_user.organization_id, active_only=active_only)


@router.post("/plans", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
async def create_plan(
    data: PlanCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    try:
        return await plan_service.create_plan(db, current_user.organization_id, data, current_user.id)
    except CommissionError as e:
        raise http_error(e)


@router.get("/plans/{plan_id}", response_model=PlanDetailResponse)
async def get_plan(
    plan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Plan with its rules in precedence order."""
    try:
        plan = await plan_service.get_plan_with_rules(db, current_user.organization_id, plan_id)
    except CommissionError as e:
        raise http_error(e)

    return PlanDetailResponse(
        **PlanResponse.model_validate(plan).model_dump(),
        rules=_ordered_rules(plan),
    )


@router.patch("/plans/{plan_id}", response_model=PlanResponse)
async def update_plan(
    plan_id: int,
    data: PlanUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    try:
        return await plan_service.update_plan(
            db, current_user.organization_id, plan_id, data, current_user.id
        )
    except CommissionError as e:
        raise http_error(e)


@router.get("/plans/{plan_id}/rules", response_model=List[RuleResponse])
async def list_rules(
    plan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Rules of a plan, highest precedence first."""
    try:
        plan = await plan_service.get_plan_with_rules(db, current_user.organization_id, plan_id)
    except CommissionError as e:
        raise http_error(e)
    return _ordered_rules(plan)


@router.post(
    "/plans/{plan_id}/rules",
    response_model=RuleWriteResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_rule(
    plan_id: int,
    data: RuleCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """
    Add a rule to a plan.

    Returns 422 with field-level errors for an invalid rule. Duplicates
    of existing rules are accepted and listed under `conflicts`.
    """
    try:
        rule, conflicts = await plan_service.create_rule(
            db, current_user.organization_id, plan_id, data, current_user.id
        )
    except CommissionError as e:
        raise http_error(e)
    return RuleWriteResponse(rule=plan_service.rule_to_response(rule), conflicts=conflicts)


@router.post("/plans/{plan_id}/preview", response_model=CommissionPreview)
async def preview_plan(
    plan_id: int,
    data: PreviewRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Commission a sale with these attributes would earn under the plan."""
    try:
        plan = await plan_service.get_plan_with_rules(db, current_user.organization_id, plan_id)
        return plan_service.preview_plan(plan, data)
    except CommissionError as e:
        raise http_error(e)


@router.post("/rules/validate", response_model=RuleValidationResult)
async def validate_rule_endpoint(
    data: RuleCreate,
    current_user: User = Depends(get_current_user),
):
    """Check a rule without saving it (rule editor)."""
    if data.priority is None:
        data = data.model_copy(update={"priority": assign_priority_from_scope(data.scope)})
    return validate_rule(data)


@router.patch("/rules/{rule_id}", response_model=RuleWriteResponse)
async def update_rule(
    rule_id: int,
    data: RuleUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    try:
        rule, conflicts = await plan_service.update_rule(
            db, current_user.organization_id, rule_id, data, current_user.id
        )
    except CommissionError as e:
        raise http_error(e)
    return RuleWriteResponse(rule=plan_service.rule_to_response(rule), conflicts=conflicts)


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    try:
        await plan_service.delete_rule(db, current_user.organization_id, rule_id, current_user.id)
    except CommissionError as e:
        raise http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
