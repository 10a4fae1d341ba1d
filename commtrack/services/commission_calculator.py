"""
Commission calculation.

Rule types:
- PERCENTAGE: basis * percentage / 100
- FLAT_AMOUNT: flat_amount, whatever the basis
- TIERED: percentage up to tier_threshold, tier_percentage above it

Each rule's amount is then bounded by its own min/max caps. No rounding
happens here; amounts are rounded to cents when persisted.
"""

import logging
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from commtrack.models.commission import RuleScope, RuleType
from commtrack.schemas.commission import (
    AppliedRule,
    CalculationResult,
    CommissionPreview,
    MatchedRule,
    PrecedenceCalculationResult,
    PreviewLine,
    SelectedRule,
)
from commtrack.schemas.rule import TransactionContext
from commtrack.services.errors import MisconfiguredCapError, TierConfigurationError
from commtrack.services.rule_matching import get_applicable_rules
from commtrack.services.rule_precedence import effective_priority
from commtrack.utils.money import HUNDRED, ZERO, format_money, format_rate, to_decimal

logger = logging.getLogger(__name__)

RULE_TYPE_LABELS = {
    RuleType.PERCENTAGE: "Percentage",
    RuleType.FLAT_AMOUNT: "Flat Amount",
    RuleType.TIERED: "Tiered",
}

SCOPE_DESCRIPTIONS = {
    RuleScope.CUSTOMER_SPECIFIC: "Customer-specific rule",
    RuleScope.PRODUCT_CATEGORY: "Product category rule",
    RuleScope.TERRITORY: "Territory rule",
    RuleScope.GLOBAL: "Global default rule",
}


def _tier_parts(rule):
    if rule.tier_threshold is None or rule.tier_percentage is None:
        raise TierConfigurationError(rule.id)
    return rule.tier_threshold, rule.percentage or ZERO, rule.tier_percentage


def calculate_rule_amount(rule, basis_amount: Decimal) -> Decimal:
    """Raw (uncapped) commission for one rule."""
    rule_type = RuleType(rule.rule_type)
    basis_amount = to_decimal(basis_amount)

    if rule_type == RuleType.PERCENTAGE:
        if rule.percentage is None:
            logger.warning(f"PERCENTAGE rule {rule.id} has no percentage; contributing 0")
            return ZERO
        return basis_amount * rule.percentage / HUNDRED

    if rule_type == RuleType.FLAT_AMOUNT:
        if rule.flat_amount is None:
            logger.warning(f"FLAT_AMOUNT rule {rule.id} has no flat amount; contributing 0")
            return ZERO
        return rule.flat_amount

    threshold, base_rate, tier_rate = _tier_parts(rule)
    if basis_amount <= threshold:
        return basis_amount * base_rate / HUNDRED
    return threshold * base_rate / HUNDRED + (basis_amount - threshold) * tier_rate / HUNDRED


def apply_caps(
    amount: Decimal,
    min_amount: Optional[Decimal] = None,
    max_amount: Optional[Decimal] = None,
    rule_id: Optional[int] = None,
) -> Decimal:
    """Raise to min_amount, then lower to max_amount."""
    if min_amount is not None and max_amount is not None and min_amount > max_amount:
        raise MisconfiguredCapError(rule_id, min_amount, max_amount)

    if min_amount is not None and amount < min_amount:
        amount = min_amount
    if max_amount is not None and amount > max_amount:
        amount = max_amount
    return amount


def describe_rule_amount(rule, basis_amount: Decimal) -> str:
    """Human-readable arithmetic for one rule, before caps."""
    rule_type = RuleType(rule.rule_type)

    if rule_type == RuleType.PERCENTAGE:
        return f"{format_rate(rule.percentage or ZERO)}% of {format_money(basis_amount)}"

    if rule_type == RuleType.FLAT_AMOUNT:
        return f"Flat amount of {format_money(rule.flat_amount or ZERO)}"

    threshold, base_rate, tier_rate = _tier_parts(rule)
    if basis_amount <= threshold:
        return (
            f"{format_rate(base_rate)}% of {format_money(basis_amount)} "
            f"(at or below tier threshold of {format_money(threshold)})"
        )
    return (
        f"{format_rate(base_rate)}% of first {format_money(threshold)} + "
        f"{format_rate(tier_rate)}% of {format_money(basis_amount - threshold)} above threshold"
    )


def _apply_rule(rule, basis_amount: Decimal) -> AppliedRule:
    raw = calculate_rule_amount(rule, basis_amount)
    capped = apply_caps(raw, rule.min_amount, rule.max_amount, rule.id)
    description = describe_rule_amount(rule, basis_amount)

    if rule.min_amount is not None and raw < rule.min_amount:
        description += f" (raised to minimum of {format_money(rule.min_amount)})"
    if rule.max_amount is not None and raw > rule.max_amount:
        description += f" (capped at maximum of {format_money(rule.max_amount)})"

    return AppliedRule(
        rule_id=rule.id,
        rule_type=rule.rule_type,
        raw_amount=raw,
        calculated_amount=capped,
        description=description,
    )


def calculate_commission(basis_amount, rules: Sequence) -> CalculationResult:
    """Apply every rule to the basis amount and sum the capped contributions."""
    if not rules:
        return CalculationResult()

    basis_amount = to_decimal(basis_amount)
    applied = [_apply_rule(rule, basis_amount) for rule in rules]
    base_amount = sum((a.raw_amount for a in applied), ZERO)
    total = sum((a.calculated_amount for a in applied), ZERO)

    return CalculationResult(
        base_amount=base_amount,
        capped_amount=total,
        applied_rules=applied,
        final_amount=total,
    )


def describe_scope(rule) -> str:
    scope = RuleScope(rule.scope)
    if scope == RuleScope.CUSTOMER_TIER:
        tier = getattr(rule.customer_tier, "value", rule.customer_tier)
        return f"{tier} tier rule"
    return SCOPE_DESCRIPTIONS[scope]


def calculate_commission_with_precedence(
    context: TransactionContext,
    rules: Iterable,
) -> PrecedenceCalculationResult:
    """
    Apply only the highest-precedence matching rule.

    When nothing matches the result carries no selected_rule and a zero
    amount; callers must treat that as "no applicable rule", not as a
    legitimate zero commission.
    """
    applicable = get_applicable_rules(rules, context)
    basis_amount = context.basis_amount

    matched = [
        MatchedRule(
            id=rule.id,
            scope=rule.scope,
            priority=effective_priority(rule),
            selected=index == 0,
        )
        for index, rule in enumerate(applicable)
    ]

    if not applicable:
        return PrecedenceCalculationResult(
            basis=context.commission_basis,
            basis_amount=basis_amount,
            matched_rules=matched,
        )

    selected = applicable[0]
    result = calculate_commission(basis_amount, [selected])

    return PrecedenceCalculationResult(
        **result.model_dump(),
        basis=context.commission_basis,
        basis_amount=basis_amount,
        selected_rule=SelectedRule(
            id=selected.id,
            scope=selected.scope,
            priority=effective_priority(selected),
            description=describe_scope(selected),
        ),
        matched_rules=matched,
    )


def preview_commission(sale_amount, rules: Sequence) -> CommissionPreview:
    """Preview of every rule applied to a sale amount (rule editor)."""
    result = calculate_commission(sale_amount, rules)
    return CommissionPreview(
        sale_amount=to_decimal(sale_amount),
        total_commission=result.final_amount,
        rules=[
            PreviewLine(type=r.rule_type, description=r.description, amount=r.calculated_amount)
            for r in result.applied_rules
        ],
    )


def format_rule(rule) -> str:
    """One-line summary of a rule for lists and traces."""
    min_sale = getattr(rule, "min_sale_amount", None)
    max_sale = getattr(rule, "max_sale_amount", None)
    range_desc = ""
    if min_sale is not None and max_sale is not None:
        range_desc = f" (sales {format_money(min_sale)}-{format_money(max_sale)})"
    elif min_sale is not None:
        range_desc = f" (sales {format_money(min_sale)}+)"
    elif max_sale is not None:
        range_desc = f" (sales up to {format_money(max_sale)})"

    rule_type = RuleType(rule.rule_type)
    if rule_type == RuleType.PERCENTAGE:
        return f"{format_rate(rule.percentage or ZERO)}% of sale{range_desc}"
    if rule_type == RuleType.FLAT_AMOUNT:
        return f"{format_money(rule.flat_amount or ZERO)} per sale{range_desc}"

    threshold = rule.tier_threshold
    tier_rate = rule.tier_percentage
    if threshold is None or tier_rate is None:
        return f"Tiered rule (incomplete tier configuration){range_desc}"
    return (
        f"{format_rate(rule.percentage or ZERO)}% up to {format_money(threshold)}, "
        f"{format_rate(tier_rate)}% above{range_desc}"
    )


def get_rule_type_label(rule_type) -> str:
    try:
        return RULE_TYPE_LABELS[RuleType(rule_type)]
    except ValueError:
        return str(rule_type)
