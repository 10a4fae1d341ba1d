"""
Test data builders shared by the database and API tests.
"""

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

from commtrack.models import (
    Client,
    CommissionBasis,
    CommissionPlan,
    CommissionRule,
    CustomerTier,
    Organization,
    ProductCategory,
    Project,
    RulePriority,
    RuleScope,
    RuleType,
    SalesTransaction,
    Territory,
    TransactionType,
    User,
    UserRole,
)

SALE_DATE = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


async def seed_organization(db, name: str = "Acme Corp") -> SimpleNamespace:
    """One organization with users, reference data and a client project."""
    org = Organization(name=name)
    db.add(org)
    await db.flush()

    admin = User(organization_id=org.id, email=f"admin@{org.id}.test", first_name="Ada", last_name="Admin", role=UserRole.ADMIN)
    manager = User(organization_id=org.id, email=f"manager@{org.id}.test", first_name="Max", last_name="Manager", role=UserRole.MANAGER)
    seller = User(organization_id=org.id, email=f"seller@{org.id}.test", first_name="Sam", last_name="Seller", role=UserRole.SALESPERSON)
    other_seller = User(organization_id=org.id, email=f"other@{org.id}.test", first_name="Olive", role=UserRole.SALESPERSON)
    west = Territory(organization_id=org.id, name="West")
    software = ProductCategory(organization_id=org.id, name="Software")
    db.add_all([admin, manager, seller, other_seller, west, software])
    await db.flush()

    vip_client = Client(organization_id=org.id, name="Globex", tier=CustomerTier.VIP, territory_id=west.id)
    standard_client = Client(organization_id=org.id, name="Initech", tier=CustomerTier.STANDARD)
    db.add_all([vip_client, standard_client])
    await db.flush()

    project = Project(organization_id=org.id, name="Globex rollout", client_id=vip_client.id)
    db.add(project)
    await db.flush()

    return SimpleNamespace(
        org=org,
        admin=admin,
        manager=manager,
        seller=seller,
        other_seller=other_seller,
        territory=west,
        category=software,
        vip_client=vip_client,
        standard_client=standard_client,
        project=project,
    )


async def add_plan(db, seed, rules=(), **kwargs) -> CommissionPlan:
    """Plan with rules written straight to the database (no validation)."""
    values = {"name": "Standard plan", "commission_basis": CommissionBasis.GROSS_REVENUE}
    values.update(kwargs)
    plan = CommissionPlan(organization_id=seed.org.id, **values)
    db.add(plan)
    await db.flush()

    for rule in rules:
        rule_values = {"scope": RuleScope.GLOBAL, "priority": RulePriority.DEFAULT}
        rule_values.update(rule)
        db.add(CommissionRule(commission_plan_id=plan.id, **rule_values))
    await db.flush()
    return plan


async def add_sale(db, seed, amount="1000.00", **kwargs) -> SalesTransaction:
    values = {
        "organization_id": seed.org.id,
        "amount": Decimal(amount),
        "transaction_date": SALE_DATE,
        "transaction_type": TransactionType.SALE,
        "user_id": seed.seller.id,
    }
    values.update(kwargs)
    transaction = SalesTransaction(**values)
    db.add(transaction)
    await db.flush()
    return transaction


PERCENT_10 = {"rule_type": RuleType.PERCENTAGE, "percentage": Decimal("10")}


def auth_headers(user) -> dict:
    return {"X-Organization-Id": str(user.organization_id), "X-User-Id": str(user.id)}
