"""
Commission plans, rules, calculations and adjustments.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commtrack.models.base import BaseModel, TenantMixin, utcnow
from commtrack.models.client import CustomerTier

if TYPE_CHECKING:
    from commtrack.models.client import Project
    from commtrack.models.organization import User
    from commtrack.models.sales import SalesTransaction


class RuleType(str, Enum):
    """How a rule turns a basis amount into a commission."""
    PERCENTAGE = "PERCENTAGE"
    FLAT_AMOUNT = "FLAT_AMOUNT"
    TIERED = "TIERED"


class RuleScope(str, Enum):
    """The specificity dimension a rule is keyed on."""
    GLOBAL = "GLOBAL"
    CUSTOMER_TIER = "CUSTOMER_TIER"
    PRODUCT_CATEGORY = "PRODUCT_CATEGORY"
    TERRITORY = "TERRITORY"
    CUSTOMER_SPECIFIC = "CUSTOMER_SPECIFIC"


class RulePriority(str, Enum):
    """Precedence rank of a rule (highest first)."""
    PROJECT_SPECIFIC = "PROJECT_SPECIFIC"
    CUSTOMER_SPECIFIC = "CUSTOMER_SPECIFIC"
    PRODUCT_CATEGORY = "PRODUCT_CATEGORY"
    TERRITORY = "TERRITORY"
    CUSTOMER_TIER = "CUSTOMER_TIER"
    DEFAULT = "DEFAULT"


class CommissionBasis(str, Enum):
    """Which sale figure percentages are computed against."""
    GROSS_REVENUE = "GROSS_REVENUE"
    NET_SALES = "NET_SALES"


class CalculationStatus(str, Enum):
    """Approval workflow status of a calculated commission."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"


class AdjustmentType(str, Enum):
    """Post-hoc change applied to a calculated commission."""
    RETURN = "RETURN"
    CLAWBACK = "CLAWBACK"
    OVERRIDE = "OVERRIDE"
    SPLIT_CREDIT = "SPLIT_CREDIT"


def _enum(enum_cls):
    return SQLAlchemyEnum(
        enum_cls,
        values_callable=lambda x: [e.value for e in x],
    )


class CommissionPlan(BaseModel, TenantMixin):
    """
    Container of commission rules.

    A plan attached to a project only applies to that project's sales;
    plans without a project are organization-wide.
    """

    __tablename__ = "commission_plans"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    project_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("projects.id"),
        nullable=True,
        index=True,
    )
    commission_basis: Mapped[CommissionBasis] = mapped_column(
        _enum(CommissionBasis),
        default=CommissionBasis.GROSS_REVENUE,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
    )

    project: Mapped[Optional["Project"]] = relationship(
        "Project",
        back_populates="commission_plans",
    )
    rules: Mapped[List["CommissionRule"]] = relationship(
        "CommissionRule",
        back_populates="plan",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<CommissionPlan(id={self.id}, name='{self.name}', active={self.is_active})>"


class CommissionRule(BaseModel):
    """
    One pricing rule of a plan.

    Exactly the scope-qualifying column matching `scope` is set; the rule
    validator enforces this before a row is written.
    """

    __tablename__ = "commission_rules"

    commission_plan_id: Mapped[int] = mapped_column(
        ForeignKey("commission_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    rule_type: Mapped[RuleType] = mapped_column(_enum(RuleType), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Amounts
    percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(7, 4), nullable=True)
    flat_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    tier_threshold: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    tier_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(7, 4), nullable=True)

    # Commission caps
    min_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    max_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    # Sale amount range filters
    min_sale_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    max_sale_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    # Scope and priority
    scope: Mapped[RuleScope] = mapped_column(
        _enum(RuleScope),
        default=RuleScope.GLOBAL,
        nullable=False,
    )
    priority: Mapped[RulePriority] = mapped_column(
        _enum(RulePriority),
        default=RulePriority.DEFAULT,
        nullable=False,
    )
    customer_tier: Mapped[Optional[CustomerTier]] = mapped_column(
        _enum(CustomerTier),
        nullable=True,
    )
    product_category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("product_categories.id"),
        nullable=True,
    )
    territory_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("territories.id"),
        nullable=True,
    )
    client_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("clients.id"),
        nullable=True,
    )

    plan: Mapped["CommissionPlan"] = relationship(
        "CommissionPlan",
        back_populates="rules",
    )

    def __repr__(self) -> str:
        return f"<CommissionRule(id={self.id}, type={self.rule_type}, scope={self.scope})>"


class CommissionCalculation(BaseModel, TenantMixin):
    """
    The commission computed for one sales transaction.

    `trace` holds the serialized CommissionCalculationTrace. It is written
    once; later changes only append adjustments or link the superseded
    trace through previous_trace.
    """

    __tablename__ = "commission_calculations"
    __table_args__ = (
        UniqueConstraint("sales_transaction_id", name="uq_commission_calculations_transaction"),
    )

    sales_transaction_id: Mapped[int] = mapped_column(
        ForeignKey("sales_transactions.id"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    commission_plan_id: Mapped[int] = mapped_column(
        ForeignKey("commission_plans.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    status: Mapped[CalculationStatus] = mapped_column(
        _enum(CalculationStatus),
        default=CalculationStatus.PENDING,
        nullable=False,
        index=True,
    )
    trace: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
        comment="Serialized calculation trace",
    )
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    sales_transaction: Mapped["SalesTransaction"] = relationship(
        "SalesTransaction",
        back_populates="commission_calculation",
    )
    user: Mapped["User"] = relationship("User")
    commission_plan: Mapped["CommissionPlan"] = relationship("CommissionPlan")
    adjustments: Mapped[List["CommissionAdjustment"]] = relationship(
        "CommissionAdjustment",
        back_populates="commission_calculation",
        cascade="all, delete-orphan",
        order_by="CommissionAdjustment.applied_at",
    )

    def __repr__(self) -> str:
        return (
            f"<CommissionCalculation(id={self.id}, transaction={self.sales_transaction_id}, "
            f"amount={self.amount}, status={self.status})>"
        )


class CommissionAdjustment(BaseModel, TenantMixin):
    """Signed post-hoc change to a calculated commission."""

    __tablename__ = "commission_adjustments"

    commission_calculation_id: Mapped[int] = mapped_column(
        ForeignKey("commission_calculations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[AdjustmentType] = mapped_column(_enum(AdjustmentType), nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Negative for deductions",
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Admin-only notes",
    )
    related_transaction_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("sales_transactions.id"),
        nullable=True,
    )
    applied_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )
    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    commission_calculation: Mapped["CommissionCalculation"] = relationship(
        "CommissionCalculation",
        back_populates="adjustments",
    )
    applied_by: Mapped[Optional["User"]] = relationship("User")

    def __repr__(self) -> str:
        return f"<CommissionAdjustment(id={self.id}, type={self.type}, amount={self.amount})>"
