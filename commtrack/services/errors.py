"""
Commission domain errors.

Services raise these; API routers translate them into HTTP responses and
batch jobs record them against the single transaction being processed.
"""

from decimal import Decimal
from typing import List, Optional

from commtrack.schemas.rule import RuleValidationIssue


class CommissionError(Exception):
    """Base class for commission errors."""


class CommissionConfigurationError(CommissionError):
    """A plan or rule is configured in a way the engine cannot evaluate."""


class RuleValidationError(CommissionConfigurationError):
    """A rule failed validation. Carries field-level errors."""

    def __init__(self, errors: List[RuleValidationIssue]):
        self.errors = errors
        fields = ", ".join(e.field for e in errors)
        super().__init__(f"Invalid commission rule ({fields})")


class MisconfiguredCapError(CommissionConfigurationError):
    """A rule's minimum commission is greater than its maximum."""

    def __init__(self, rule_id: Optional[int], min_amount: Decimal, max_amount: Decimal):
        self.rule_id = rule_id
        self.min_amount = min_amount
        self.max_amount = max_amount
        super().__init__(
            f"Rule {rule_id}: minimum commission {min_amount} exceeds maximum {max_amount}"
        )


class TierConfigurationError(CommissionConfigurationError):
    """A TIERED rule is missing its threshold or its above-threshold rate."""

    def __init__(self, rule_id: Optional[int]):
        self.rule_id = rule_id
        super().__init__(
            f"Rule {rule_id}: tiered rules need both tier_threshold and tier_percentage"
        )


class NoApplicablePlanError(CommissionError):
    """No active commission plan covers the transaction."""

    def __init__(self, transaction_id: Optional[int]):
        self.transaction_id = transaction_id
        super().__init__(f"No active commission plan for transaction {transaction_id}")


class NoApplicableRuleError(CommissionError):
    """No rule of the plan matches the transaction."""

    def __init__(self, transaction_id: Optional[int], plan_id: Optional[int] = None):
        self.transaction_id = transaction_id
        self.plan_id = plan_id
        super().__init__(
            f"No rule of plan {plan_id} applies to transaction {transaction_id}"
        )


class CommissionStateError(CommissionError):
    """The requested change is not allowed in the calculation's current status."""


class CommissionAccessError(CommissionError):
    """The current user may not see or change this commission."""


class EntityNotFoundError(CommissionError):
    """A referenced row does not exist in the caller's organization."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")
