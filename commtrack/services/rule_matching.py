"""
Matching rules against a transaction.

Each rule produces an ordered list of conditions; a rule applies to a
transaction when every condition passes. The same conditions are recorded
in the calculation trace, so matching and explanation cannot disagree.
"""

from typing import Iterable, List, Optional, Tuple

from commtrack.models.commission import RuleScope
from commtrack.schemas.rule import TransactionContext
from commtrack.schemas.trace import RuleCondition
from commtrack.services.rule_precedence import sort_by_precedence

# scope -> (rule field, context field)
SCOPE_MATCH_FIELDS = {
    RuleScope.CUSTOMER_TIER: ("customer_tier", "customer_tier"),
    RuleScope.PRODUCT_CATEGORY: ("product_category_id", "product_category_id"),
    RuleScope.TERRITORY: ("territory_id", "territory_id"),
    RuleScope.CUSTOMER_SPECIFIC: ("client_id", "client_id"),
}


def build_rule_conditions(rule, context: TransactionContext) -> List[RuleCondition]:
    """Sale amount range conditions first, then the scope condition."""
    conditions = []
    sale_amount = context.basis_amount

    min_sale = getattr(rule, "min_sale_amount", None)
    if min_sale is not None:
        conditions.append(RuleCondition(
            field="sale_amount",
            operator="greaterThanOrEqual",
            expected=min_sale,
            actual=sale_amount,
            passed=sale_amount >= min_sale,
        ))

    max_sale = getattr(rule, "max_sale_amount", None)
    if max_sale is not None:
        conditions.append(RuleCondition(
            field="sale_amount",
            operator="lessThanOrEqual",
            expected=max_sale,
            actual=sale_amount,
            passed=sale_amount <= max_sale,
        ))

    scope = RuleScope(rule.scope)
    if scope == RuleScope.GLOBAL:
        conditions.append(RuleCondition(
            field="scope",
            operator="equals",
            expected=RuleScope.GLOBAL.value,
            actual=RuleScope.GLOBAL.value,
            passed=True,
        ))
    else:
        rule_field, context_field = SCOPE_MATCH_FIELDS[scope]
        expected = getattr(rule, rule_field, None)
        actual = getattr(context, context_field)
        conditions.append(RuleCondition(
            field=rule_field,
            operator="equals",
            expected=expected,
            actual=actual,
            # an unset qualifier never matches, even an unset attribute
            passed=expected is not None and expected == actual,
        ))

    return conditions


def rule_applies(rule, context: TransactionContext) -> bool:
    return all(c.passed for c in build_rule_conditions(rule, context))


def get_applicable_rules(rules: Iterable, context: TransactionContext) -> List:
    """Matching rules, highest precedence first."""
    return sort_by_precedence(r for r in rules if rule_applies(r, context))


def select_rule(context: TransactionContext, rules: Iterable) -> Tuple[Optional[object], List]:
    """The winning rule (or None) and every matching rule in precedence order."""
    applicable = get_applicable_rules(rules, context)
    return (applicable[0] if applicable else None), applicable
