"""
Database models for commtrack.

All models are exported here for convenient imports:
    from commtrack.models import CommissionPlan, CommissionRule, etc.
"""

from commtrack.models.audit import AuditAction, AuditLog
from commtrack.models.base import Base, BaseModel, TenantMixin, TimestampMixin
from commtrack.models.client import (
    Client,
    CustomerTier,
    ProductCategory,
    Project,
    Territory,
)
from commtrack.models.commission import (
    AdjustmentType,
    CalculationStatus,
    CommissionAdjustment,
    CommissionBasis,
    CommissionCalculation,
    CommissionPlan,
    CommissionRule,
    RulePriority,
    RuleScope,
    RuleType,
)
from commtrack.models.organization import Organization, User, UserRole
from commtrack.models.sales import SalesTransaction, TransactionType

__all__ = [
    # Base
    "Base",
    "BaseModel",
    "TenantMixin",
    "TimestampMixin",
    # Tenancy
    "Organization",
    "User",
    "UserRole",
    # Reference data
    "Client",
    "CustomerTier",
    "ProductCategory",
    "Project",
    "Territory",
    # Sales
    "SalesTransaction",
    "TransactionType",
    # Commission
    "AdjustmentType",
    "CalculationStatus",
    "CommissionAdjustment",
    "CommissionBasis",
    "CommissionCalculation",
    "CommissionPlan",
    "CommissionRule",
    "RulePriority",
    "RuleScope",
    "RuleType",
    # Audit
    "AuditLog",
    "AuditAction",
]
