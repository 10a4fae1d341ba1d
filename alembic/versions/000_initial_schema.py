"""Initial database schema

Revision ID: 000_initial_schema
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "000_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = {
    "userrole": ("ADMIN", "MANAGER", "SALESPERSON"),
    "customertier": ("STANDARD", "VIP", "NEW", "ENTERPRISE"),
    "transactiontype": ("SALE", "RETURN", "ADJUSTMENT"),
    "ruletype": ("PERCENTAGE", "FLAT_AMOUNT", "TIERED"),
    "rulescope": ("GLOBAL", "CUSTOMER_TIER", "PRODUCT_CATEGORY", "TERRITORY", "CUSTOMER_SPECIFIC"),
    "rulepriority": (
        "PROJECT_SPECIFIC", "CUSTOMER_SPECIFIC", "PRODUCT_CATEGORY",
        "TERRITORY", "CUSTOMER_TIER", "DEFAULT",
    ),
    "commissionbasis": ("GROSS_REVENUE", "NET_SALES"),
    "calculationstatus": ("PENDING", "APPROVED", "REJECTED", "PAID"),
    "adjustmenttype": ("RETURN", "CLAWBACK", "OVERRIDE", "SPLIT_CREDIT"),
    "auditaction": (
        "plan_created", "plan_updated", "rule_created", "rule_updated", "rule_deleted",
        "commission_calculated", "commission_recalculated", "commission_approved",
        "commission_rejected", "commission_paid", "adjustment_created", "adjustment_deleted",
    ),
}


def enum(name: str) -> postgresql.ENUM:
    # Types are created once up front; columns only reference them
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def tenant() -> sa.Column:
    return sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False)


def upgrade() -> None:
    """Create all initial tables."""
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # Organizations and users
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("external_id", sa.String(100), unique=True, nullable=True),
        *timestamps(),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("external_id", sa.String(100), unique=True, nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("role", enum("userrole"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *timestamps(),
    )
    op.create_index("ix_users_organization_id", "users", ["organization_id"])

    # Reference data
    for table in ("territories", "product_categories"):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), primary_key=True),
            tenant(),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            *timestamps(),
        )
        op.create_index(f"ix_{table}_organization_id", table, ["organization_id"])

    op.create_table(
        "clients",
        sa.Column("id", sa.Integer(), primary_key=True),
        tenant(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("tier", enum("customertier"), nullable=False),
        sa.Column("territory_id", sa.Integer(), sa.ForeignKey("territories.id"), nullable=True),
        *timestamps(),
    )
    op.create_index("ix_clients_organization_id", "clients", ["organization_id"])
    op.create_index("ix_clients_territory_id", "clients", ["territory_id"])

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), primary_key=True),
        tenant(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *timestamps(),
    )
    op.create_index("ix_projects_organization_id", "projects", ["organization_id"])
    op.create_index("ix_projects_client_id", "projects", ["client_id"])

    # Sales
    op.create_table(
        "sales_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        tenant(),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("transaction_type", enum("transactiontype"), nullable=False),
        sa.Column("invoice_number", sa.String(100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=True),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id"), nullable=True),
        sa.Column("product_category_id", sa.Integer(), sa.ForeignKey("product_categories.id"), nullable=True),
        sa.Column("parent_transaction_id", sa.Integer(), sa.ForeignKey("sales_transactions.id"), nullable=True),
        *timestamps(),
    )
    for column in (
        "organization_id", "transaction_date", "transaction_type",
        "user_id", "client_id", "project_id", "parent_transaction_id",
    ):
        op.create_index(f"ix_sales_transactions_{column}", "sales_transactions", [column])

    # Commission plans and rules
    op.create_table(
        "commission_plans",
        sa.Column("id", sa.Integer(), primary_key=True),
        tenant(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id"), nullable=True),
        sa.Column("commission_basis", enum("commissionbasis"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *timestamps(),
    )
    op.create_index("ix_commission_plans_organization_id", "commission_plans", ["organization_id"])
    op.create_index("ix_commission_plans_project_id", "commission_plans", ["project_id"])
    op.create_index("ix_commission_plans_is_active", "commission_plans", ["is_active"])

    op.create_table(
        "commission_rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "commission_plan_id",
            sa.Integer(),
            sa.ForeignKey("commission_plans.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("rule_type", enum("ruletype"), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("percentage", sa.Numeric(7, 4), nullable=True),
        sa.Column("flat_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("tier_threshold", sa.Numeric(12, 2), nullable=True),
        sa.Column("tier_percentage", sa.Numeric(7, 4), nullable=True),
        sa.Column("min_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("max_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("min_sale_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("max_sale_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("scope", enum("rulescope"), nullable=False),
        sa.Column("priority", enum("rulepriority"), nullable=False),
        sa.Column("customer_tier", enum("customertier"), nullable=True),
        sa.Column("product_category_id", sa.Integer(), sa.ForeignKey("product_categories.id"), nullable=True),
        sa.Column("territory_id", sa.Integer(), sa.ForeignKey("territories.id"), nullable=True),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=True),
        *timestamps(),
    )
    op.create_index("ix_commission_rules_commission_plan_id", "commission_rules", ["commission_plan_id"])

    # Calculations and adjustments
    op.create_table(
        "commission_calculations",
        sa.Column("id", sa.Integer(), primary_key=True),
        tenant(),
        sa.Column("sales_transaction_id", sa.Integer(), sa.ForeignKey("sales_transactions.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("commission_plan_id", sa.Integer(), sa.ForeignKey("commission_plans.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", enum("calculationstatus"), nullable=False),
        sa.Column("trace", sa.JSON(), nullable=True, comment="Serialized calculation trace"),
        sa.Column("calculated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        *timestamps(),
        sa.UniqueConstraint("sales_transaction_id", name="uq_commission_calculations_transaction"),
    )
    for column in ("organization_id", "user_id", "commission_plan_id", "status"):
        op.create_index(f"ix_commission_calculations_{column}", "commission_calculations", [column])

    op.create_table(
        "commission_adjustments",
        sa.Column("id", sa.Integer(), primary_key=True),
        tenant(),
        sa.Column(
            "commission_calculation_id",
            sa.Integer(),
            sa.ForeignKey("commission_calculations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", enum("adjustmenttype"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False, comment="Negative for deductions"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True, comment="Admin-only notes"),
        sa.Column("related_transaction_id", sa.Integer(), sa.ForeignKey("sales_transactions.id"), nullable=True),
        sa.Column("applied_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=False),
        *timestamps(),
    )
    op.create_index("ix_commission_adjustments_organization_id", "commission_adjustments", ["organization_id"])
    op.create_index(
        "ix_commission_adjustments_commission_calculation_id",
        "commission_adjustments",
        ["commission_calculation_id"],
    )

    # Audit log
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("action", enum("auditaction"), nullable=False),
        sa.Column("target_type", sa.String(50), nullable=True),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("action_metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    for column in ("organization_id", "user_id", "action", "created_at"):
        op.create_index(f"ix_audit_logs_{column}", "audit_logs", [column])


def downgrade() -> None:
    """Drop all tables in reverse order."""
    op.drop_table("audit_logs")
    op.drop_table("commission_adjustments")
    op.drop_table("commission_calculations")
    op.drop_table("commission_rules")
    op.drop_table("commission_plans")
    op.drop_table("sales_transactions")
    op.drop_table("projects")
    op.drop_table("clients")
    op.drop_table("product_categories")
    op.drop_table("territories")
    op.drop_table("users")
    op.drop_table("organizations")

    # Drop enums
    for name in reversed(list(ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
