"""
Tests for the commission approval workflow.
"""

import pytest
from sqlalchemy import select

from commtrack.models import AuditAction, AuditLog, CalculationStatus
from commtrack.services.approvals import (
    approve_calculation,
    bulk_approve_calculations,
    mark_calculation_paid,
    reject_calculation,
)
from commtrack.services.commission_service import calculate_for_transaction, get_transaction
from commtrack.services.errors import CommissionStateError
from factories import PERCENT_10, add_plan, add_sale


async def _pending(db, seed, count=1):
    await add_plan(db, seed, [PERCENT_10])
    calculations = []
    for _ in range(count):
        sale = await add_sale(db, seed)
        sale = await get_transaction(db, seed.org.id, sale.id)
        calculations.append(await calculate_for_transaction(db, sale))
    return calculations


class TestApprovalWorkflow:
    @pytest.mark.asyncio
    async def test_approve_then_pay(self, db_session, seed):
        (calculation,) = await _pending(db_session, seed)

        await approve_calculation(db_session, calculation, seed.manager.id)
        assert calculation.status == CalculationStatus.APPROVED
        assert calculation.approved_at is not None

        await mark_calculation_paid(db_session, calculation, seed.manager.id)
        assert calculation.status == CalculationStatus.PAID
        assert calculation.paid_at is not None

        await db_session.flush()
        result = await db_session.execute(
            select(AuditLog.action).where(AuditLog.target_id == calculation.id)
        )
        actions = set(result.scalars().all())
        assert {AuditAction.COMMISSION_APPROVED, AuditAction.COMMISSION_PAID} <= actions

    @pytest.mark.asyncio
    async def test_pending_cannot_be_paid(self, db_session, seed):
        (calculation,) = await _pending(db_session, seed)
        with pytest.raises(CommissionStateError):
            await mark_calculation_paid(db_session, calculation)

    @pytest.mark.asyncio
    async def test_reject_and_reapprove(self, db_session, seed):
        (calculation,) = await _pending(db_session, seed)

        await reject_calculation(db_session, calculation, "Duplicate invoice")
        assert calculation.status == CalculationStatus.REJECTED
        assert calculation.rejection_reason == "Duplicate invoice"

        await approve_calculation(db_session, calculation)
        assert calculation.status == CalculationStatus.APPROVED
        assert calculation.rejection_reason is None

    @pytest.mark.asyncio
    async def test_paid_is_final(self, db_session, seed):
        (calculation,) = await _pending(db_session, seed)
        await approve_calculation(db_session, calculation)
        await mark_calculation_paid(db_session, calculation)

        with pytest.raises(CommissionStateError):
            await approve_calculation(db_session, calculation)
        with pytest.raises(CommissionStateError):
            await reject_calculation(db_session, calculation, "Too late")

    @pytest.mark.asyncio
    async def test_approving_twice_is_a_no_op(self, db_session, seed):
        (calculation,) = await _pending(db_session, seed)
        await approve_calculation(db_session, calculation)
        approved_at = calculation.approved_at

        await approve_calculation(db_session, calculation)
        assert calculation.approved_at == approved_at


class TestBulkApprove:
    @pytest.mark.asyncio
    async def test_failures_do_not_stop_the_batch(self, db_session, seed):
        first, second, paid = await _pending(db_session, seed, count=3)
        await approve_calculation(db_session, paid)
        await mark_calculation_paid(db_session, paid)

        result = await bulk_approve_calculations(
            db_session, seed.org.id, [first.id, paid.id, 9999, second.id], seed.manager.id
        )

        assert result.approved == [first.id, second.id]
        assert [f["id"] for f in result.failed] == [paid.id, 9999]
        assert "already paid" in result.failed[0]["error"]
        assert first.status == CalculationStatus.APPROVED
