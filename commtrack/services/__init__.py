"""Commission rule engine and business logic services."""

from commtrack.services.commission_calculator import (
    apply_caps,
    calculate_commission,
    calculate_commission_with_precedence,
)
from commtrack.services.commission_trace import build_trace, calculate_commission_with_trace
from commtrack.services.rule_precedence import compare_rule_precedence, sort_by_precedence
from commtrack.services.rule_validator import validate_rule, validate_scoped_rule

__all__ = [
    "apply_caps",
    "build_trace",
    "calculate_commission",
    "calculate_commission_with_precedence",
    "calculate_commission_with_trace",
    "compare_rule_precedence",
    "sort_by_precedence",
    "validate_rule",
    "validate_scoped_rule",
]
