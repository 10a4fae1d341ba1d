"""
Commission rule validation.

Runs when a rule is created or edited, before it is persisted. Nothing
here touches the database; `rule` is any object exposing the rule fields
(a RuleCreate, a ScopedRule, an ORM row).
"""

import logging
from decimal import Decimal

from commtrack.models.commission import RuleScope, RuleType
from commtrack.schemas.rule import RuleValidationIssue, RuleValidationResult
from commtrack.services.errors import RuleValidationError

logger = logging.getLogger(__name__)

# scope -> (qualifying field, label)
SCOPE_FIELDS = {
    RuleScope.CUSTOMER_TIER: ("customer_tier", "Customer tier"),
    RuleScope.PRODUCT_CATEGORY: ("product_category_id", "Product category"),
    RuleScope.TERRITORY: ("territory_id", "Territory"),
    RuleScope.CUSTOMER_SPECIFIC: ("client_id", "Client"),
}

AMOUNT_FIELDS = (
    "percentage",
    "flat_amount",
    "tier_threshold",
    "tier_percentage",
    "min_amount",
    "max_amount",
    "min_sale_amount",
    "max_sale_amount",
)

HUNDRED = Decimal("100")


def _result(errors: list[RuleValidationIssue]) -> RuleValidationResult:
    return RuleValidationResult(valid=not errors, errors=errors)


def validate_scoped_rule(rule) -> RuleValidationResult:
    """
    Check that the scope-qualifying fields match the declared scope.

    The field required by the scope must be set, and no qualifying field
    belonging to another scope may be set.
    """
    scope = RuleScope(getattr(rule, "scope", None) or RuleScope.GLOBAL)
    errors: list[RuleValidationIssue] = []

    required = SCOPE_FIELDS.get(scope)
    if required is not None:
        field, label = required
        if getattr(rule, field, None) is None:
            errors.append(RuleValidationIssue(
                field=field,
                message=f"{label} is required for {scope.value} scope",
            ))

    for other_scope, (field, label) in SCOPE_FIELDS.items():
        if other_scope != scope and getattr(rule, field, None) is not None:
            errors.append(RuleValidationIssue(
                field=field,
                message=f"{label} should only be set for {other_scope.value} scope",
            ))

    return _result(errors)


def validate_rule_configuration(rule) -> RuleValidationResult:
    """Check the amount fields against the rule type."""
    rule_type = RuleType(rule.rule_type)
    errors: list[RuleValidationIssue] = []

    for field in AMOUNT_FIELDS:
        value = getattr(rule, field, None)
        if value is not None and value < 0:
            errors.append(RuleValidationIssue(field=field, message="Must not be negative"))

    percentage = getattr(rule, "percentage", None)
    if rule_type == RuleType.PERCENTAGE:
        if percentage is None or percentage <= 0:
            errors.append(RuleValidationIssue(
                field="percentage",
                message="Percentage must be greater than 0 for PERCENTAGE rules",
            ))
    if percentage is not None and percentage > HUNDRED:
        errors.append(RuleValidationIssue(
            field="percentage",
            message="Percentage cannot exceed 100",
        ))

    if rule_type == RuleType.FLAT_AMOUNT:
        flat_amount = getattr(rule, "flat_amount", None)
        if flat_amount is None or flat_amount <= 0:
            errors.append(RuleValidationIssue(
                field="flat_amount",
                message="Flat amount must be greater than 0 for FLAT_AMOUNT rules",
            ))

    if rule_type == RuleType.TIERED:
        if getattr(rule, "tier_threshold", None) is None:
            errors.append(RuleValidationIssue(
                field="tier_threshold",
                message="Tier threshold is required for TIERED rules",
            ))
        tier_percentage = getattr(rule, "tier_percentage", None)
        if tier_percentage is None:
            errors.append(RuleValidationIssue(
                field="tier_percentage",
                message="Tier percentage is required for TIERED rules",
            ))
        elif tier_percentage > HUNDRED:
            errors.append(RuleValidationIssue(
                field="tier_percentage",
                message="Tier percentage cannot exceed 100",
            ))

    min_amount = getattr(rule, "min_amount", None)
    max_amount = getattr(rule, "max_amount", None)
    if min_amount is not None and max_amount is not None and min_amount > max_amount:
        errors.append(RuleValidationIssue(
            field="max_amount",
            message="Maximum commission must not be less than minimum commission",
        ))

    min_sale = getattr(rule, "min_sale_amount", None)
    max_sale = getattr(rule, "max_sale_amount", None)
    if min_sale is not None and max_sale is not None and min_sale > max_sale:
        errors.append(RuleValidationIssue(
            field="max_sale_amount",
            message="Maximum sale amount must not be less than minimum sale amount",
        ))

    return _result(errors)


def validate_rule(rule) -> RuleValidationResult:
    """Scope check plus amount/type check."""
    errors = validate_scoped_rule(rule).errors + validate_rule_configuration(rule).errors
    return _result(errors)


def ensure_valid_rule(rule) -> None:
    """Raise RuleValidationError if the rule is invalid."""
    result = validate_rule(rule)
    if not result.valid:
        logger.debug(f"Rule rejected: {[e.field for e in result.errors]}")
        raise RuleValidationError(result.errors)
