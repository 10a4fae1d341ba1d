"""
SalesTransaction model.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commtrack.models.base import BaseModel, TenantMixin

if TYPE_CHECKING:
    from commtrack.models.client import Client, ProductCategory, Project
    from commtrack.models.commission import CommissionCalculation
    from commtrack.models.organization import User


class TransactionType(str, Enum):
    """Kind of sales transaction."""
    SALE = "SALE"
    RETURN = "RETURN"
    ADJUSTMENT = "ADJUSTMENT"


class SalesTransaction(BaseModel, TenantMixin):
    """
    A sale (or a return / adjustment against one).

    Returns point at the original sale through parent_transaction_id and
    reduce its net amount.
    """

    __tablename__ = "sales_transactions"

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    transaction_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    transaction_type: Mapped[TransactionType] = mapped_column(
        SQLAlchemyEnum(
            TransactionType,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=TransactionType.SALE,
        nullable=False,
        index=True,
    )
    invoice_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
        comment="Salesperson credited with the sale",
    )
    client_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("clients.id"),
        nullable=True,
        index=True,
    )
    project_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("projects.id"),
        nullable=True,
        index=True,
    )
    product_category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("product_categories.id"),
        nullable=True,
    )
    parent_transaction_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("sales_transactions.id"),
        nullable=True,
        index=True,
        comment="Original sale for RETURN transactions",
    )

    # Relationships
    user: Mapped["User"] = relationship("User")
    client: Mapped[Optional["Client"]] = relationship("Client")
    project: Mapped[Optional["Project"]] = relationship("Project")
    product_category: Mapped[Optional["ProductCategory"]] = relationship("ProductCategory")
    parent_transaction: Mapped[Optional["SalesTransaction"]] = relationship(
        "SalesTransaction",
        remote_side="SalesTransaction.id",
        back_populates="returns",
    )
    returns: Mapped[List["SalesTransaction"]] = relationship(
        "SalesTransaction",
        back_populates="parent_transaction",
    )
    commission_calculation: Mapped[Optional["CommissionCalculation"]] = relationship(
        "CommissionCalculation",
        back_populates="sales_transaction",
        uselist=False,
    )

    def __repr__(self) -> str:
        return (
            f"<SalesTransaction(id={self.id}, type={self.transaction_type}, "
            f"amount={self.amount})>"
        )
