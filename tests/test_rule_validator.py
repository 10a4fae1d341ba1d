"""
Tests for commission rule validation.

Covers:
- Scope-qualifying field checks for all five scopes
- Amount/type configuration checks (percentage, flat, tiered, caps, sale range)
- ensure_valid_rule raising RuleValidationError
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from commtrack.models import CustomerTier, RuleScope, RuleType
from commtrack.schemas.rule import RuleCreate
from commtrack.services.errors import RuleValidationError
from commtrack.services.rule_validator import (
    SCOPE_FIELDS,
    ensure_valid_rule,
    validate_rule,
    validate_rule_configuration,
    validate_scoped_rule,
)

QUALIFIER_VALUES = {
    "customer_tier": CustomerTier.VIP,
    "product_category_id": 7,
    "territory_id": 3,
    "client_id": 11,
}


def _make_rule(**kwargs):
    defaults = {
        "rule_type": RuleType.PERCENTAGE,
        "percentage": Decimal("10"),
        "flat_amount": None,
        "tier_threshold": None,
        "tier_percentage": None,
        "min_amount": None,
        "max_amount": None,
        "min_sale_amount": None,
        "max_sale_amount": None,
        "scope": RuleScope.GLOBAL,
        "customer_tier": None,
        "product_category_id": None,
        "territory_id": None,
        "client_id": None,
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def _fields(result):
    return sorted(e.field for e in result.errors)


# ── validate_scoped_rule ─────────────────────────────────


class TestValidateScopedRule:
    def test_global_without_qualifiers_is_valid(self):
        result = validate_scoped_rule(_make_rule())
        assert result.valid
        assert result.errors == []

    @pytest.mark.parametrize("scope", list(SCOPE_FIELDS))
    def test_scope_with_its_field_is_valid(self, scope):
        field, _ = SCOPE_FIELDS[scope]
        rule = _make_rule(scope=scope, **{field: QUALIFIER_VALUES[field]})
        assert validate_scoped_rule(rule).valid

    @pytest.mark.parametrize("scope", list(SCOPE_FIELDS))
    def test_missing_required_field_rejected(self, scope):
        field, label = SCOPE_FIELDS[scope]
        result = validate_scoped_rule(_make_rule(scope=scope))

        assert not result.valid
        assert _fields(result) == [field]
        assert result.errors[0].message == f"{label} is required for {scope.value} scope"

    @pytest.mark.parametrize("scope", list(RuleScope))
    def test_other_scope_field_rejected(self, scope):
        own = SCOPE_FIELDS.get(scope)
        own_values = {own[0]: QUALIFIER_VALUES[own[0]]} if own else {}

        for other_scope, (field, label) in SCOPE_FIELDS.items():
            if other_scope == scope:
                continue
            rule = _make_rule(scope=scope, **own_values, **{field: QUALIFIER_VALUES[field]})
            result = validate_scoped_rule(rule)

            assert not result.valid
            assert _fields(result) == [field]
            assert result.errors[0].message == (
                f"{label} should only be set for {other_scope.value} scope"
            )

    def test_territory_rule_with_customer_tier_has_exactly_two_errors(self):
        rule = _make_rule(scope=RuleScope.TERRITORY, customer_tier=CustomerTier.VIP)
        result = validate_scoped_rule(rule)

        assert not result.valid
        assert len(result.errors) == 2
        assert _fields(result) == ["customer_tier", "territory_id"]

    def test_accepts_request_models(self):
        data = RuleCreate(
            rule_type=RuleType.PERCENTAGE,
            percentage=Decimal("5"),
            scope=RuleScope.CUSTOMER_SPECIFIC,
            client_id=4,
        )
        assert validate_scoped_rule(data).valid


# ── validate_rule_configuration ──────────────────────────


class TestValidateRuleConfiguration:
    def test_valid_percentage(self):
        assert validate_rule_configuration(_make_rule()).valid

    def test_percentage_must_be_positive(self):
        result = validate_rule_configuration(_make_rule(percentage=Decimal("0")))
        assert _fields(result) == ["percentage"]

    def test_percentage_required_for_percentage_rule(self):
        result = validate_rule_configuration(_make_rule(percentage=None))
        assert _fields(result) == ["percentage"]

    def test_percentage_over_100_rejected(self):
        result = validate_rule_configuration(_make_rule(percentage=Decimal("100.01")))
        assert _fields(result) == ["percentage"]

    def test_flat_amount_required(self):
        rule = _make_rule(rule_type=RuleType.FLAT_AMOUNT, percentage=None)
        assert _fields(validate_rule_configuration(rule)) == ["flat_amount"]

    def test_valid_flat_amount(self):
        rule = _make_rule(rule_type=RuleType.FLAT_AMOUNT, percentage=None, flat_amount=Decimal("250"))
        assert validate_rule_configuration(rule).valid

    def test_tiered_needs_both_tier_fields(self):
        rule = _make_rule(rule_type=RuleType.TIERED, percentage=Decimal("5"))
        assert _fields(validate_rule_configuration(rule)) == ["tier_percentage", "tier_threshold"]

        rule = _make_rule(
            rule_type=RuleType.TIERED,
            percentage=Decimal("5"),
            tier_threshold=Decimal("10000"),
        )
        assert _fields(validate_rule_configuration(rule)) == ["tier_percentage"]

    def test_tiered_without_base_percentage_is_valid(self):
        rule = _make_rule(
            rule_type=RuleType.TIERED,
            percentage=None,
            tier_threshold=Decimal("10000"),
            tier_percentage=Decimal("8"),
        )
        assert validate_rule_configuration(rule).valid

    def test_min_above_max_rejected(self):
        rule = _make_rule(min_amount=Decimal("500"), max_amount=Decimal("100"))
        result = validate_rule_configuration(rule)
        assert _fields(result) == ["max_amount"]

    def test_equal_caps_allowed(self):
        rule = _make_rule(min_amount=Decimal("100"), max_amount=Decimal("100"))
        assert validate_rule_configuration(rule).valid

    def test_sale_range_inverted_rejected(self):
        rule = _make_rule(min_sale_amount=Decimal("5000"), max_sale_amount=Decimal("1000"))
        assert _fields(validate_rule_configuration(rule)) == ["max_sale_amount"]

    def test_negative_amounts_rejected(self):
        rule = _make_rule(min_amount=Decimal("-1"))
        assert _fields(validate_rule_configuration(rule)) == ["min_amount"]


# ── validate_rule / ensure_valid_rule ────────────────────


class TestEnsureValidRule:
    def test_combines_scope_and_configuration_errors(self):
        rule = _make_rule(scope=RuleScope.TERRITORY, percentage=None)
        result = validate_rule(rule)
        assert _fields(result) == ["percentage", "territory_id"]

    def test_raises_with_field_errors(self):
        rule = _make_rule(scope=RuleScope.CUSTOMER_TIER)
        with pytest.raises(RuleValidationError) as exc_info:
            ensure_valid_rule(rule)
        assert [e.field for e in exc_info.value.errors] == ["customer_tier"]

    def test_valid_rule_passes(self):
        ensure_valid_rule(_make_rule(scope=RuleScope.TERRITORY, territory_id=3))
