"""
Customer-side reference data: clients, territories, product categories
and projects.
"""

from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, ForeignKey, String, Text
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commtrack.models.base import BaseModel, TenantMixin

if TYPE_CHECKING:
    from commtrack.models.commission import CommissionPlan


class CustomerTier(str, Enum):
    """Customer tier used by CUSTOMER_TIER scoped rules."""
    STANDARD = "STANDARD"
    VIP = "VIP"
    NEW = "NEW"
    ENTERPRISE = "ENTERPRISE"


class Territory(BaseModel, TenantMixin):
    """Sales territory."""

    __tablename__ = "territories"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Territory(id={self.id}, name='{self.name}')>"


class ProductCategory(BaseModel, TenantMixin):
    """Product category used by PRODUCT_CATEGORY scoped rules."""

    __tablename__ = "product_categories"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ProductCategory(id={self.id}, name='{self.name}')>"


class Client(BaseModel, TenantMixin):
    """A customer of the organization."""

    __tablename__ = "clients"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    tier: Mapped[CustomerTier] = mapped_column(
        SQLAlchemyEnum(
            CustomerTier,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=CustomerTier.STANDARD,
        nullable=False,
    )
    territory_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("territories.id"),
        nullable=True,
        index=True,
    )

    territory: Mapped[Optional["Territory"]] = relationship("Territory")
    projects: Mapped[List["Project"]] = relationship(
        "Project",
        back_populates="client",
    )

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, name='{self.name}', tier={self.tier})>"


class Project(BaseModel, TenantMixin):
    """A project delivered for a client. Plans may be attached to it."""

    __tablename__ = "projects"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_id: Mapped[int] = mapped_column(
        ForeignKey("clients.id"),
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    client: Mapped["Client"] = relationship("Client", back_populates="projects")
    commission_plans: Mapped[List["CommissionPlan"]] = relationship(
        "CommissionPlan",
        back_populates="project",
    )

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, name='{self.name}')>"
