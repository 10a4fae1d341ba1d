"""
API tests: plans and rules, sales, approvals, adjustments and explanations.

Requests carry the caller's identity in the X-Organization-Id / X-User-Id
headers, as they do behind the identity provider.
"""

from decimal import Decimal

import pytest
import pytest_asyncio

from factories import SALE_DATE, auth_headers, seed_organization


@pytest_asyncio.fixture
async def org(database):
    async with database.session() as db:
        return await seed_organization(db)


async def _create_plan(client, org, rules=({"rule_type": "PERCENTAGE", "percentage": "10"},), **kwargs):
    body = {"name": "FY26", **kwargs}
    response = await client.post("/api/plans", json=body, headers=auth_headers(org.admin))
    assert response.status_code == 201
    plan = response.json()

    for rule in rules:
        response = await client.post(
            f"/api/plans/{plan['id']}/rules", json=rule, headers=auth_headers(org.admin)
        )
        assert response.status_code == 201
    return plan


async def _record_sale(client, org, amount="5000.00", user=None, **kwargs):
    body = {
        "amount": amount,
        "transaction_date": SALE_DATE.isoformat(),
        "user_id": (user or org.seller).id,
        **kwargs,
    }
    response = await client.post("/api/sales", json=body, headers=auth_headers(org.manager))
    assert response.status_code == 201
    return response.json()


# ── Identity ─────────────────────────────────────────────


class TestIdentity:
    @pytest.mark.asyncio
    async def test_headers_required(self, client, org):
        response = await client.get("/api/plans")
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_user(self, client, org):
        headers = {"X-Organization-Id": str(org.org.id), "X-User-Id": "9999"}
        response = await client.get("/api/plans", headers=headers)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_user_of_other_organization(self, client, org):
        headers = {"X-Organization-Id": str(org.org.id + 1), "X-User-Id": str(org.admin.id)}
        response = await client.get("/api/plans", headers=headers)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_salesperson_cannot_manage_plans(self, client, org):
        response = await client.post(
            "/api/plans", json={"name": "Mine"}, headers=auth_headers(org.seller)
        )
        assert response.status_code == 403


# ── Plans and rules ──────────────────────────────────────


class TestPlansApi:
    @pytest.mark.asyncio
    async def test_rules_listed_in_precedence_order(self, client, org):
        plan = await _create_plan(client, org, rules=[
            {"rule_type": "PERCENTAGE", "percentage": "5"},
            {
                "rule_type": "PERCENTAGE",
                "percentage": "12",
                "scope": "CUSTOMER_SPECIFIC",
                "client_id": org.vip_client.id,
            },
            {
                "rule_type": "FLAT_AMOUNT",
                "flat_amount": "100",
                "scope": "TERRITORY",
                "territory_id": org.territory.id,
            },
        ])

        response = await client.get(f"/api/plans/{plan['id']}/rules", headers=auth_headers(org.seller))

        assert response.status_code == 200
        rules = response.json()
        assert [r["priority"] for r in rules] == ["CUSTOMER_SPECIFIC", "TERRITORY", "DEFAULT"]
        assert rules[1]["display"] == "$100.00 per sale"

        detail = await client.get(f"/api/plans/{plan['id']}", headers=auth_headers(org.seller))
        assert [r["id"] for r in detail.json()["rules"]] == [r["id"] for r in rules]

    @pytest.mark.asyncio
    async def test_invalid_rule_returns_field_errors(self, client, org):
        plan = await _create_plan(client, org, rules=[])

        response = await client.post(
            f"/api/plans/{plan['id']}/rules",
            json={"rule_type": "PERCENTAGE", "percentage": "10", "scope": "TERRITORY", "customer_tier": "VIP"},
            headers=auth_headers(org.admin),
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["message"] == "Invalid commission rule"
        assert sorted(e["field"] for e in detail["errors"]) == ["customer_tier", "territory_id"]

        rules = await client.get(f"/api/plans/{plan['id']}/rules", headers=auth_headers(org.admin))
        assert rules.json() == []

    @pytest.mark.asyncio
    async def test_duplicate_rule_is_flagged(self, client, org):
        plan = await _create_plan(client, org)

        response = await client.post(
            f"/api/plans/{plan['id']}/rules",
            json={"rule_type": "PERCENTAGE", "percentage": "8"},
            headers=auth_headers(org.admin),
        )

        assert response.status_code == 201
        assert len(response.json()["conflicts"]) == 1

    @pytest.mark.asyncio
    async def test_validate_without_saving(self, client, org):
        response = await client.post(
            "/api/rules/validate",
            json={"rule_type": "TIERED", "percentage": "5", "tier_threshold": "10000"},
            headers=auth_headers(org.seller),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is False
        assert [e["field"] for e in body["errors"]] == ["tier_percentage"]

    @pytest.mark.asyncio
    async def test_update_and_delete_rule(self, client, org):
        plan = await _create_plan(client, org)
        rules = (await client.get(f"/api/plans/{plan['id']}/rules", headers=auth_headers(org.admin))).json()
        rule_id = rules[0]["id"]

        response = await client.patch(
            f"/api/rules/{rule_id}",
            json={"max_amount": "250"},
            headers=auth_headers(org.admin),
        )
        assert response.status_code == 200
        assert Decimal(response.json()["rule"]["max_amount"]) == Decimal("250")

        response = await client.delete(f"/api/rules/{rule_id}", headers=auth_headers(org.admin))
        assert response.status_code == 204

        response = await client.patch(
            f"/api/rules/{rule_id}", json={"percentage": "3"}, headers=auth_headers(org.admin)
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_preview(self, client, org):
        plan = await _create_plan(client, org, rules=[
            {
                "rule_type": "TIERED",
                "percentage": "5",
                "tier_threshold": "10000",
                "tier_percentage": "8",
            },
        ])

        response = await client.post(
            f"/api/plans/{plan['id']}/preview",
            json={"gross_amount": "15000"},
            headers=auth_headers(org.seller),
        )

        assert response.status_code == 200
        assert Decimal(response.json()["total_commission"]) == Decimal("900")

    @pytest.mark.asyncio
    async def test_plan_from_other_organization(self, client, org, database):
        plan = await _create_plan(client, org)
        async with database.session() as db:
            other = await seed_organization(db, "Umbrella")

        response = await client.get(f"/api/plans/{plan['id']}", headers=auth_headers(other.admin))
        assert response.status_code == 404


# ── Sales ────────────────────────────────────────────────


class TestSalesApi:
    @pytest.mark.asyncio
    async def test_sale_gets_commission(self, client, org):
        await _create_plan(client, org)

        body = await _record_sale(client, org, "5000.00", client_id=org.vip_client.id)

        assert body["commission_outcome"] == "calculated"
        assert Decimal(body["commission"]["amount"]) == Decimal("500.00")
        assert body["commission"]["status"] == "PENDING"

    @pytest.mark.asyncio
    async def test_sale_without_plan_is_flagged(self, client, org):
        body = await _record_sale(client, org)

        assert body["commission_outcome"] == "skipped_no_plan"
        assert body["commission"] is None
        assert body["message"]

    @pytest.mark.asyncio
    async def test_sale_without_matching_rule_is_flagged(self, client, org):
        await _create_plan(client, org, rules=[{
            "rule_type": "PERCENTAGE",
            "percentage": "10",
            "scope": "CUSTOMER_SPECIFIC",
            "client_id": org.vip_client.id,
        }])

        body = await _record_sale(client, org, client_id=org.standard_client.id)

        assert body["commission_outcome"] == "skipped_no_rule"

    @pytest.mark.asyncio
    async def test_return_reduces_original_commission(self, client, org):
        await _create_plan(client, org)
        sale = await _record_sale(client, org, "2000.00")

        body = await _record_sale(
            client, org, "500.00",
            transaction_type="RETURN",
            parent_transaction_id=sale["transaction"]["id"],
        )

        assert body["commission_outcome"] == "return_linked"
        calculation_id = body["commission"]["id"]
        net = await client.get(f"/api/commissions/{calculation_id}/net", headers=auth_headers(org.seller))
        assert Decimal(net.json()["net_amount"]) == Decimal("150.00")

    @pytest.mark.asyncio
    async def test_unknown_client_rejected(self, client, org):
        response = await client.post(
            "/api/sales",
            json={
                "amount": "100",
                "transaction_date": SALE_DATE.isoformat(),
                "user_id": org.seller.id,
                "client_id": 9999,
            },
            headers=auth_headers(org.manager),
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_recalculate(self, client, org):
        plan = await _create_plan(client, org)
        sale = await _record_sale(client, org, "1000.00", client_id=org.vip_client.id)
        await client.post(
            f"/api/plans/{plan['id']}/rules",
            json={
                "rule_type": "PERCENTAGE",
                "percentage": "25",
                "scope": "CUSTOMER_TIER",
                "customer_tier": "VIP",
            },
            headers=auth_headers(org.admin),
        )

        response = await client.post(
            f"/api/sales/{sale['transaction']['id']}/recalculate", headers=auth_headers(org.manager)
        )

        assert response.status_code == 200
        assert Decimal(response.json()["amount"]) == Decimal("250.00")

        response = await client.post(
            f"/api/sales/{sale['transaction']['id']}/recalculate", headers=auth_headers(org.seller)
        )
        assert response.status_code == 403


# ── Commissions ──────────────────────────────────────────


class TestCommissionsApi:
    @pytest.mark.asyncio
    async def test_approval_flow(self, client, org):
        await _create_plan(client, org)
        calculation_id = (await _record_sale(client, org))["commission"]["id"]
        url = f"/api/commissions/{calculation_id}"

        assert (await client.post(f"{url}/pay", headers=auth_headers(org.manager))).status_code == 409
        assert (await client.post(f"{url}/approve", headers=auth_headers(org.seller))).status_code == 403

        approved = await client.post(f"{url}/approve", headers=auth_headers(org.manager))
        assert approved.json()["status"] == "APPROVED"

        paid = await client.post(f"{url}/pay", headers=auth_headers(org.manager))
        assert paid.json()["status"] == "PAID"

        rejected = await client.post(
            f"{url}/reject", json={"reason": "Too late"}, headers=auth_headers(org.manager)
        )
        assert rejected.status_code == 409

    @pytest.mark.asyncio
    async def test_bulk_approve(self, client, org):
        await _create_plan(client, org)
        first = (await _record_sale(client, org))["commission"]["id"]
        second = (await _record_sale(client, org))["commission"]["id"]

        response = await client.post(
            "/api/commissions/bulk-approve",
            json={"calculation_ids": [first, second, 9999]},
            headers=auth_headers(org.manager),
        )

        body = response.json()
        assert body["approved"] == [first, second]
        assert [f["id"] for f in body["failed"]] == [9999]

    @pytest.mark.asyncio
    async def test_salesperson_sees_only_own_commissions(self, client, org):
        await _create_plan(client, org)
        own = (await _record_sale(client, org))["commission"]["id"]
        other = (await _record_sale(client, org, user=org.other_seller))["commission"]["id"]

        listed = await client.get("/api/commissions", headers=auth_headers(org.seller))
        assert [c["id"] for c in listed.json()] == [own]

        response = await client.get(f"/api/commissions/{other}", headers=auth_headers(org.seller))
        assert response.status_code == 403

        everything = await client.get("/api/commissions", headers=auth_headers(org.manager))
        assert sorted(c["id"] for c in everything.json()) == sorted([own, other])

    @pytest.mark.asyncio
    async def test_missing_commission(self, client, org):
        response = await client.get("/api/commissions/9999", headers=auth_headers(org.admin))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_adjustments(self, client, org):
        await _create_plan(client, org)
        calculation_id = (await _record_sale(client, org, "1000.00"))["commission"]["id"]
        url = f"/api/commissions/{calculation_id}"

        created = await client.post(
            f"{url}/adjustments",
            json={"type": "CLAWBACK", "amount": "-40", "reason": "Churned"},
            headers=auth_headers(org.manager),
        )
        assert created.status_code == 201

        listed = await client.get(f"{url}/adjustments", headers=auth_headers(org.seller))
        assert [a["type"] for a in listed.json()] == ["CLAWBACK"]

        net = (await client.get(f"{url}/net", headers=auth_headers(org.seller))).json()
        assert Decimal(net["net_amount"]) == Decimal("60.00")
        assert net["adjustment_count"] == 1

        deleted = await client.delete(
            f"/api/commissions/adjustments/{created.json()['id']}", headers=auth_headers(org.manager)
        )
        assert deleted.status_code == 204

        net = (await client.get(f"{url}/net", headers=auth_headers(org.seller))).json()
        assert Decimal(net["net_amount"]) == Decimal("100.00")


# ── Explanations ─────────────────────────────────────────


class TestExplainApi:
    @pytest.mark.asyncio
    async def test_salesperson_gets_summary_only(self, client, org):
        await _create_plan(client, org)
        calculation_id = (await _record_sale(client, org, "5000.00", client_id=org.vip_client.id))["commission"]["id"]

        response = await client.get(
            f"/api/commissions/{calculation_id}/explain", headers=auth_headers(org.seller)
        )

        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["summary"]["commission_amount"]) == Decimal("500.00")
        assert Decimal(body["summary"]["effective_rate"]) == Decimal("10")
        assert body["summary"]["plan_name"] == "FY26"
        assert body["transaction"]["client_name"] == "Globex"
        assert body["applied_rule"]["rule_type"] == "PERCENTAGE"
        assert Decimal(body["applied_rule"]["rate"]) == Decimal("10")
        assert body["admin_details"] is None

    @pytest.mark.asyncio
    async def test_admin_gets_full_trace(self, client, org):
        await _create_plan(client, org, rules=[
            {"rule_type": "PERCENTAGE", "percentage": "10"},
            {"rule_type": "PERCENTAGE", "percentage": "15", "scope": "TERRITORY", "territory_id": org.territory.id},
        ])
        calculation_id = (await _record_sale(client, org, client_id=org.vip_client.id))["commission"]["id"]

        response = await client.get(
            f"/api/commissions/{calculation_id}/explain", headers=auth_headers(org.admin)
        )

        details = response.json()["admin_details"]
        assert details["engine_version"]
        assert details["plan_version"]["name"] == "FY26"
        assert [r["selected"] for r in details["full_rule_trace"]] == [True, False]
        assert details["input_snapshot"]["client"]["tier"] == "VIP"

    @pytest.mark.asyncio
    async def test_other_salesperson_is_refused(self, client, org):
        await _create_plan(client, org)
        calculation_id = (await _record_sale(client, org))["commission"]["id"]

        response = await client.get(
            f"/api/commissions/{calculation_id}/explain", headers=auth_headers(org.other_seller)
        )
        assert response.status_code == 403
