"""
Rule precedence.

Rules are ordered by priority (most specific first), then newest first,
then by id so the order is total. The first eligible rule under this
order is the only rule applied to a transaction.
"""

from typing import Iterable, List, Tuple

from commtrack.models.commission import RulePriority, RuleScope
from commtrack.schemas.rule import RuleConflict

SCOPE_TO_PRIORITY = {
    RuleScope.GLOBAL: RulePriority.DEFAULT,
    RuleScope.CUSTOMER_TIER: RulePriority.CUSTOMER_TIER,
    RuleScope.PRODUCT_CATEGORY: RulePriority.PRODUCT_CATEGORY,
    RuleScope.TERRITORY: RulePriority.TERRITORY,
    RuleScope.CUSTOMER_SPECIFIC: RulePriority.CUSTOMER_SPECIFIC,
}

PRIORITY_VALUES = {
    RulePriority.PROJECT_SPECIFIC: 100,
    RulePriority.CUSTOMER_SPECIFIC: 90,
    RulePriority.PRODUCT_CATEGORY: 80,
    RulePriority.TERRITORY: 70,
    RulePriority.CUSTOMER_TIER: 60,
    RulePriority.DEFAULT: 50,
}

QUALIFYING_FIELDS = ("customer_tier", "product_category_id", "territory_id", "client_id")


def assign_priority_from_scope(scope: RuleScope) -> RulePriority:
    """Priority implied by a scope. PROJECT_SPECIFIC is only ever explicit."""
    return SCOPE_TO_PRIORITY[RuleScope(scope)]


def get_priority_value(priority: RulePriority) -> int:
    return PRIORITY_VALUES[RulePriority(priority)]


def effective_priority(rule) -> RulePriority:
    """The rule's explicit priority, or the one implied by its scope."""
    if rule.priority is not None:
        return RulePriority(rule.priority)
    return assign_priority_from_scope(rule.scope)


def precedence_key(rule) -> Tuple[int, float, int]:
    """Sort key: higher priority first, newer first, lower id first."""
    return (
        -get_priority_value(effective_priority(rule)),
        -rule.created_at.timestamp(),
        rule.id,
    )


def compare_rule_precedence(a, b) -> int:
    """Negative if `a` takes precedence over `b`, positive if `b` does."""
    key_a, key_b = precedence_key(a), precedence_key(b)
    if key_a < key_b:
        return -1
    if key_a > key_b:
        return 1
    return 0


def sort_by_precedence(rules: Iterable) -> List:
    return sorted(rules, key=precedence_key)


def detect_rule_conflicts(new_rule, existing_rules: Iterable) -> List[RuleConflict]:
    """
    Find existing rules with the same scope and qualifying fields.

    Informational only: the newer rule wins on precedence, so duplicates
    do not block creation.
    """
    conflicts = []
    new_id = getattr(new_rule, "id", None)

    for existing in existing_rules:
        if new_id is not None and existing.id == new_id:
            continue
        if RuleScope(existing.scope) != RuleScope(new_rule.scope):
            continue
        if all(
            getattr(existing, field, None) == getattr(new_rule, field, None)
            for field in QUALIFYING_FIELDS
        ):
            conflicts.append(RuleConflict(
                rule_id=existing.id,
                rule_name=getattr(existing, "description", None),
                reason="Duplicate rule with same scope and filters. The newer rule will take precedence.",
            ))

    return conflicts
