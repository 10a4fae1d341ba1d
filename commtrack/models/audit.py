"""
AuditLog model for tracking user actions.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column

from commtrack.models.base import Base, utcnow


class AuditAction(str, Enum):
    """Types of auditable actions."""
    PLAN_CREATED = "plan_created"
    PLAN_UPDATED = "plan_updated"
    RULE_CREATED = "rule_created"
    RULE_UPDATED = "rule_updated"
    RULE_DELETED = "rule_deleted"
    COMMISSION_CALCULATED = "commission_calculated"
    COMMISSION_RECALCULATED = "commission_recalculated"
    COMMISSION_APPROVED = "commission_approved"
    COMMISSION_REJECTED = "commission_rejected"
    COMMISSION_PAID = "commission_paid"
    ADJUSTMENT_CREATED = "adjustment_created"
    ADJUSTMENT_DELETED = "adjustment_deleted"


class AuditLog(Base):
    """
    Audit log for commission configuration and payout changes.

    Rows are written in the same transaction as the change they describe.
    """

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
        index=True,
        comment="Null for system actions (scheduler, scripts)",
    )
    action: Mapped[AuditAction] = mapped_column(
        SQLAlchemyEnum(
            AuditAction,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        index=True,
    )
    target_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Type of entity affected (rule, plan, commission, etc)",
    )
    target_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="ID of the affected entity",
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    action_metadata: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
        comment="Additional context about the action",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action})>"
