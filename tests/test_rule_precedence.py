"""
Tests for rule precedence and conflict detection.
"""

import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from functools import cmp_to_key

import pytest

from commtrack.models import CustomerTier, RulePriority, RuleScope, RuleType
from commtrack.schemas.rule import ScopedRule, TransactionContext
from commtrack.services.commission_calculator import calculate_commission_with_precedence
from commtrack.services.rule_matching import rule_applies, select_rule
from commtrack.services.rule_precedence import (
    assign_priority_from_scope,
    compare_rule_precedence,
    detect_rule_conflicts,
    effective_priority,
    get_priority_value,
    sort_by_precedence,
)

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _make_rule(id, scope=RuleScope.GLOBAL, priority=None, created_at=T0, **kwargs):
    return ScopedRule(
        id=id,
        rule_type=RuleType.PERCENTAGE,
        percentage=Decimal("10"),
        scope=scope,
        priority=priority,
        created_at=created_at,
        **kwargs,
    )


def _make_context(**kwargs):
    defaults = {
        "gross_amount": Decimal("1000"),
        "net_amount": Decimal("1000"),
        "transaction_date": T0,
    }
    defaults.update(kwargs)
    return TransactionContext(**defaults)


# ── Priorities ───────────────────────────────────────────


class TestPriorities:
    @pytest.mark.parametrize(
        "scope, priority",
        [
            (RuleScope.GLOBAL, RulePriority.DEFAULT),
            (RuleScope.CUSTOMER_TIER, RulePriority.CUSTOMER_TIER),
            (RuleScope.PRODUCT_CATEGORY, RulePriority.PRODUCT_CATEGORY),
            (RuleScope.TERRITORY, RulePriority.TERRITORY),
            (RuleScope.CUSTOMER_SPECIFIC, RulePriority.CUSTOMER_SPECIFIC),
        ],
    )
    def test_assign_priority_from_scope(self, scope, priority):
        assert assign_priority_from_scope(scope) == priority

    def test_priority_values_descend_by_specificity(self):
        ordered = [
            RulePriority.PROJECT_SPECIFIC,
            RulePriority.CUSTOMER_SPECIFIC,
            RulePriority.PRODUCT_CATEGORY,
            RulePriority.TERRITORY,
            RulePriority.CUSTOMER_TIER,
            RulePriority.DEFAULT,
        ]
        values = [get_priority_value(p) for p in ordered]
        assert values == [100, 90, 80, 70, 60, 50]

    def test_effective_priority_prefers_explicit(self):
        rule = _make_rule(1, priority=RulePriority.PROJECT_SPECIFIC)
        assert effective_priority(rule) == RulePriority.PROJECT_SPECIFIC

    def test_effective_priority_falls_back_to_scope(self):
        rule = _make_rule(1, scope=RuleScope.TERRITORY, territory_id=3)
        assert effective_priority(rule) == RulePriority.TERRITORY


# ── Ordering ─────────────────────────────────────────────


class TestOrdering:
    @pytest.mark.parametrize("customer_first", [True, False])
    def test_customer_specific_beats_global_in_any_creation_order(self, customer_first):
        older, newer = T0, T0 + timedelta(days=30)
        customer = _make_rule(
            1,
            scope=RuleScope.CUSTOMER_SPECIFIC,
            client_id=42,
            created_at=older if customer_first else newer,
        )
        default = _make_rule(2, created_at=newer if customer_first else older)

        winner, applicable = select_rule(_make_context(client_id=42), [default, customer])

        assert winner.id == customer.id
        assert [r.id for r in applicable] == [customer.id, default.id]

    def test_newer_rule_wins_at_equal_priority(self):
        old = _make_rule(1, created_at=T0)
        new = _make_rule(2, created_at=T0 + timedelta(hours=1))

        assert sort_by_precedence([old, new]) == [new, old]
        assert compare_rule_precedence(new, old) < 0
        assert compare_rule_precedence(old, new) > 0

    def test_lower_id_breaks_full_tie(self):
        a = _make_rule(7)
        b = _make_rule(3)

        assert [r.id for r in sort_by_precedence([a, b])] == [3, 7]

    def test_compare_is_zero_only_for_same_key(self):
        rule = _make_rule(5)
        assert compare_rule_precedence(rule, rule) == 0

    def test_naive_and_aware_timestamps_compare(self):
        naive = _make_rule(1, created_at=datetime(2026, 1, 2))
        aware = _make_rule(2, created_at=T0)
        assert sort_by_precedence([aware, naive])[0].id == 1

    def test_order_is_total_and_consistent(self):
        rng = random.Random(20260315)
        scopes = {
            RuleScope.GLOBAL: {},
            RuleScope.CUSTOMER_TIER: {"customer_tier": CustomerTier.VIP},
            RuleScope.PRODUCT_CATEGORY: {"product_category_id": 1},
            RuleScope.TERRITORY: {"territory_id": 1},
            RuleScope.CUSTOMER_SPECIFIC: {"client_id": 1},
        }
        rules = []
        for rule_id in range(1, 61):
            scope = rng.choice(list(scopes))
            rules.append(_make_rule(
                rule_id,
                scope=scope,
                created_at=T0 + timedelta(days=rng.randint(0, 5)),
                **scopes[scope],
            ))

        expected = sorted(rules, key=cmp_to_key(compare_rule_precedence))
        for _ in range(10):
            shuffled = rules[:]
            rng.shuffle(shuffled)
            assert [r.id for r in sort_by_precedence(shuffled)] == [r.id for r in expected]

        for a in rules:
            for b in rules:
                if a.id != b.id:
                    assert compare_rule_precedence(a, b) != 0
                    assert compare_rule_precedence(a, b) == -compare_rule_precedence(b, a)


# ── Selection over random rule sets ──────────────────────


def _random_rule(rng, rule_id):
    scope = rng.choice(list(RuleScope))
    qualifiers = {
        RuleScope.GLOBAL: {},
        RuleScope.CUSTOMER_TIER: {"customer_tier": rng.choice(list(CustomerTier))},
        RuleScope.PRODUCT_CATEGORY: {"product_category_id": rng.randint(1, 3)},
        RuleScope.TERRITORY: {"territory_id": rng.randint(1, 3)},
        RuleScope.CUSTOMER_SPECIFIC: {"client_id": rng.randint(1, 3)},
    }[scope]
    if rng.random() < 0.2:
        qualifiers["min_sale_amount"] = Decimal(rng.randint(0, 2000))
    if rng.random() < 0.1:
        qualifiers["priority"] = RulePriority.PROJECT_SPECIFIC

    rule = _make_rule(
        rule_id,
        scope=scope,
        created_at=T0 + timedelta(hours=rng.randint(0, 48)),
        **qualifiers,
    )
    return rule.model_copy(update={"percentage": Decimal(rng.randint(1, 25))})


def _random_context(rng):
    gross = Decimal(rng.randint(0, 3000))
    return _make_context(
        gross_amount=gross,
        net_amount=gross,
        customer_tier=rng.choice([None, *CustomerTier]),
        product_category_id=rng.choice([None, 1, 2, 3]),
        territory_id=rng.choice([None, 1, 2, 3]),
        client_id=rng.choice([None, 1, 2, 3]),
    )


class TestSelectionProperties:
    def test_winner_is_highest_priority_then_newest_eligible_rule(self):
        rng = random.Random(20260318)

        for _ in range(200):
            rules = [_random_rule(rng, rule_id) for rule_id in range(1, rng.randint(1, 12) + 1)]
            context = _random_context(rng)

            winner, applicable = select_rule(context, rules)

            eligible = [r for r in rules if rule_applies(r, context)]
            if not eligible:
                assert winner is None
                assert applicable == []
                continue
            best = max(
                eligible,
                key=lambda r: (get_priority_value(effective_priority(r)), r.created_at, -r.id),
            )
            assert winner.id == best.id
            assert {r.id for r in applicable} == {r.id for r in eligible}

    def test_selection_does_not_depend_on_rule_order(self):
        rng = random.Random(20260319)

        for _ in range(50):
            rules = [_random_rule(rng, rule_id) for rule_id in range(1, 9)]
            context = _random_context(rng)

            first = calculate_commission_with_precedence(context, rules)
            for _ in range(3):
                shuffled = rules[:]
                rng.shuffle(shuffled)
                again = calculate_commission_with_precedence(context, shuffled)

                assert again.selected_rule == first.selected_rule
                assert again.final_amount == first.final_amount
                assert [m.id for m in again.matched_rules] == [m.id for m in first.matched_rules]


# ── Conflicts ────────────────────────────────────────────


class TestDetectRuleConflicts:
    def test_same_scope_and_filters_conflict(self):
        existing = _make_rule(1, scope=RuleScope.TERRITORY, territory_id=3, description="West")
        new = _make_rule(2, scope=RuleScope.TERRITORY, territory_id=3)

        conflicts = detect_rule_conflicts(new, [existing])

        assert len(conflicts) == 1
        assert conflicts[0].rule_id == 1
        assert conflicts[0].rule_name == "West"
        assert "newer rule will take precedence" in conflicts[0].reason

    def test_different_filters_do_not_conflict(self):
        existing = _make_rule(1, scope=RuleScope.TERRITORY, territory_id=3)
        new = _make_rule(2, scope=RuleScope.TERRITORY, territory_id=4)
        assert detect_rule_conflicts(new, [existing]) == []

    def test_different_scope_does_not_conflict(self):
        existing = _make_rule(1)
        new = _make_rule(2, scope=RuleScope.CUSTOMER_SPECIFIC, client_id=9)
        assert detect_rule_conflicts(new, [existing]) == []

    def test_rule_does_not_conflict_with_itself(self):
        rule = _make_rule(1)
        assert detect_rule_conflicts(rule, [rule]) == []
