"""Tests for database-backed hours tracking."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from clientdesk.billing.tracker import (
    can_submit_change_request,
    deduct_hours,
    expire_hour_packs,
    expire_rollover_records,
    get_hours_balance,
    process_monthly_rollover,
    record_change_request,
    reset_billing_period,
)
from clientdesk.models.db import ChangeRequest, HourPack, MaintenanceLog, RolloverRecord


def _pack(plan, hours, now, days=30, **kw):
    return HourPack(
        plan_id=plan.id,
        pack_type="SMALL",
        hours=hours,
        hours_remaining=hours,
        cost=35000,
        expires_at=now + timedelta(days=days),
        **kw,
    )


class TestGetHoursBalance:
    """Tests for get_hours_balance."""

    @pytest.mark.asyncio
    async def test_sums_logs_in_current_period(self, db_session, seed_client, now):
        account = await seed_client()
        plan = account.plan
        db_session.add_all(
            [
                MaintenanceLog(plan_id=plan.id, hours_spent=2.0, performed_at=now - timedelta(days=1)),
                MaintenanceLog(plan_id=plan.id, hours_spent=1.0, performed_at=now - timedelta(days=2)),
                # Previous period
                MaintenanceLog(plan_id=plan.id, hours_spent=5.0, performed_at=now - timedelta(days=40)),
                MaintenanceLog(
                    plan_id=plan.id, hours_spent=4.0, billable=False, performed_at=now - timedelta(days=1)
                ),
                _pack(plan, 2.0, now),
            ]
        )
        await db_session.flush()

        balance = await get_hours_balance(db_session, plan, now=now)
        assert balance.monthly_used == 3
        assert balance.monthly_remaining == 5
        assert balance.total_available == 7

    @pytest.mark.asyncio
    async def test_pending_change_requests_counted(self, db_session, seed_client, now):
        account = await seed_client()
        db_session.add(
            ChangeRequest(project_id=account.project.id, title="New page", estimated_hours=3.0)
        )
        await db_session.flush()

        balance = await get_hours_balance(db_session, account.plan, now=now)
        assert balance.estimated_hours_pending == 3
        assert balance.estimated_remaining == 5

    @pytest.mark.asyncio
    async def test_unlimited_plan(self, db_session, seed_client, now):
        account = await seed_client(tier="COO")
        balance = await get_hours_balance(db_session, account.plan, now=now)
        assert balance.is_unlimited
        assert balance.total_available == -1

    @pytest.mark.asyncio
    async def test_log_sum_failure_falls_back_to_stored_usage(self, db_session, seed_client, now):
        account = await seed_client()
        account.plan.support_hours_used = 2.5
        db_session.add(_pack(account.plan, 1.0, now))
        await db_session.flush()
        failing = AsyncMock(side_effect=OperationalError("select sum", {}, Exception("timeout")))

        with patch("clientdesk.billing.tracker.billable_hours_in_period", failing):
            balance = await get_hours_balance(db_session, account.plan, now=now)

        assert balance.monthly_used == 2.5
        assert balance.monthly_remaining == 5.5
        assert balance.pack_hours_total == 1
        # The session is still usable afterwards.
        packs = (await db_session.execute(select(HourPack))).scalars().all()
        assert len(packs) == 1

    @pytest.mark.asyncio
    async def test_pending_estimate_failure_assumes_nothing_pending(self, db_session, seed_client, now):
        account = await seed_client()
        failing = AsyncMock(side_effect=OperationalError("select", {}, Exception("timeout")))

        with patch("clientdesk.billing.tracker.pending_hours_for", failing):
            balance = await get_hours_balance(db_session, account.plan, user_id=account.user.id, now=now)

        assert balance.estimated_hours_pending == 0
        assert balance.estimated_remaining == balance.total_available == 8

    @pytest.mark.asyncio
    async def test_unknown_tier_billed_as_essentials(self, db_session, seed_client, now):
        account = await seed_client()
        account.plan.tier = "STANDARD"

        balance = await get_hours_balance(db_session, account.plan, now=now)

        assert balance.monthly_included == 8
        assert not balance.is_unlimited


class TestDeductHours:
    """Tests for deduct_hours."""

    @pytest.mark.asyncio
    async def test_monthly_then_pack(self, db_session, seed_client, now):
        account = await seed_client()
        plan = account.plan
        plan.support_hours_used = 7.0
        pack = _pack(plan, 2.0, now)
        db_session.add(pack)
        await db_session.flush()

        result = await deduct_hours(db_session, plan, 2.0, "Plugin updates", "Dev", now=now)

        assert result.success
        assert result.from_monthly == 1
        assert result.from_packs == 1
        assert plan.support_hours_used == 8
        assert pack.hours_remaining == 1
        assert pack.is_active

        logs = (await db_session.execute(select(MaintenanceLog))).scalars().all()
        assert len(logs) == 1
        assert logs[0].hours_spent == 2.0
        assert logs[0].source == "pack"

    @pytest.mark.asyncio
    async def test_exhausted_pack_is_deactivated(self, db_session, seed_client, now):
        account = await seed_client()
        plan = account.plan
        plan.support_hours_used = 8.0
        pack = _pack(plan, 1.0, now)
        db_session.add(pack)
        await db_session.flush()

        result = await deduct_hours(db_session, plan, 1.0, "Fix form", now=now)

        assert result.success
        assert pack.hours_remaining == 0
        assert not pack.is_active
        assert pack.used_at is not None

    @pytest.mark.asyncio
    async def test_rollover_used_first(self, db_session, seed_client, now):
        account = await seed_client()
        plan = account.plan
        plan.rollover_hours = 1.5
        record = RolloverRecord(
            plan_id=plan.id,
            hours=1.5,
            hours_remaining=1.5,
            source_month="2026-09",
            expires_at=now + timedelta(days=30),
        )
        db_session.add(record)
        await db_session.flush()

        result = await deduct_hours(db_session, plan, 2.0, "Content edits", now=now)

        assert result.from_rollover == 1.5
        assert result.from_monthly == 0.5
        assert record.hours_remaining == 0
        assert record.used_at is not None
        assert plan.rollover_hours == 0

    @pytest.mark.asyncio
    async def test_refused_when_out_of_hours(self, db_session, seed_client, now):
        account = await seed_client()
        plan = account.plan
        plan.support_hours_used = 8.0
        plan.grace_period_used = True

        result = await deduct_hours(db_session, plan, 2.0, "Redesign", now=now)

        assert not result.success
        assert result.error
        assert plan.support_hours_used == 8.0
        logs = (await db_session.execute(select(MaintenanceLog))).scalars().all()
        assert logs == []

    @pytest.mark.asyncio
    async def test_grace_period_marks_plan(self, db_session, seed_client, now):
        account = await seed_client()
        plan = account.plan
        plan.support_hours_used = 8.0

        result = await deduct_hours(db_session, plan, 0.5, "Small fix", now=now)

        assert result.success
        assert result.used_grace_period
        assert plan.grace_period_used
        assert plan.support_hours_used == 8.5

    @pytest.mark.asyncio
    async def test_rejects_non_positive_hours(self, db_session, seed_client, now):
        account = await seed_client()
        result = await deduct_hours(db_session, account.plan, 0, "Nothing", now=now)
        assert not result.success


class TestBillingPeriod:
    """Tests for rollover, reset and expiry."""

    @pytest.mark.asyncio
    async def test_rollover_carries_unused_hours(self, db_session, seed_client, now):
        account = await seed_client()
        plan = account.plan
        plan.support_hours_used = 3.0

        result = await process_monthly_rollover(db_session, plan, now)

        assert result.rolled_over == 5
        assert plan.rollover_hours == 5
        record = (await db_session.execute(select(RolloverRecord))).scalar_one()
        assert record.hours_remaining == 5
        assert record.expires_at == now + timedelta(days=60)

    @pytest.mark.asyncio
    async def test_rollover_respects_cap(self, db_session, seed_client, now):
        account = await seed_client()
        plan = account.plan
        db_session.add(
            RolloverRecord(
                plan_id=plan.id,
                hours=14,
                hours_remaining=14,
                source_month="2026-08",
                expires_at=now + timedelta(days=20),
            )
        )
        await db_session.flush()

        result = await process_monthly_rollover(db_session, plan, now)

        assert result.rolled_over == 2
        assert plan.rollover_hours == 16

    @pytest.mark.asyncio
    async def test_unlimited_tier_skips_rollover(self, db_session, seed_client, now):
        account = await seed_client(tier="COO")
        result = await process_monthly_rollover(db_session, account.plan, now)
        assert result.rolled_over == 0

    def test_reset_billing_period(self, now):
        from types import SimpleNamespace

        plan = SimpleNamespace(support_hours_used=5, change_requests_used=2, requests_today=1)
        reset_billing_period(plan, now)
        assert plan.support_hours_used == 0
        assert plan.change_requests_used == 0
        assert plan.current_period_start == now
        assert plan.current_period_end > now

    @pytest.mark.asyncio
    async def test_expire_hour_packs(self, db_session, seed_client, now):
        account = await seed_client()
        plan = account.plan
        stale = _pack(plan, 3.0, now, days=-1)
        fresh = _pack(plan, 3.0, now, days=5)
        forever = HourPack(
            plan_id=plan.id, pack_type="PREMIUM", hours=10, hours_remaining=10, never_expires=True
        )
        db_session.add_all([stale, fresh, forever])
        await db_session.flush()

        assert await expire_hour_packs(db_session, now) == 1
        await db_session.refresh(stale)
        assert not stale.is_active

    @pytest.mark.asyncio
    async def test_expire_rollover_records(self, db_session, seed_client, now):
        account = await seed_client()
        db_session.add(
            RolloverRecord(
                plan_id=account.plan.id,
                hours=2,
                hours_remaining=2,
                source_month="2026-07",
                expires_at=now - timedelta(days=1),
            )
        )
        await db_session.flush()
        assert await expire_rollover_records(db_session, now) == 1


class TestChangeRequestGate:
    """Tests for can_submit_change_request."""

    @pytest.mark.asyncio
    async def test_quota_exhausted_requires_payment(self, db_session, seed_client, now):
        account = await seed_client()
        plan = account.plan
        plan.change_requests_used = 3
        balance = await get_hours_balance(db_session, plan, now=now)

        check = can_submit_change_request(plan, balance, now)
        assert not check.allowed
        assert check.requires_payment

    @pytest.mark.asyncio
    async def test_out_of_hours_uses_grace_once(self, db_session, seed_client, now):
        account = await seed_client()
        plan = account.plan
        plan.support_hours_used = 8.0
        db_session.add(MaintenanceLog(plan_id=plan.id, hours_spent=8.0, performed_at=now))
        await db_session.flush()
        balance = await get_hours_balance(db_session, plan, now=now)

        check = can_submit_change_request(plan, balance, now)
        assert check.allowed
        assert check.requires_approval

        plan.grace_period_used = True
        check = can_submit_change_request(plan, balance, now)
        assert not check.allowed

    @pytest.mark.asyncio
    async def test_daily_limit_with_on_demand(self, db_session, seed_client, now):
        account = await seed_client()
        plan = account.plan
        plan.on_demand_enabled = True
        plan.daily_request_limit = 2
        for _ in range(2):
            record_change_request(plan, now)
        balance = await get_hours_balance(db_session, plan, now=now)

        check = can_submit_change_request(plan, balance, now)
        assert not check.allowed
        assert "Daily request limit" in check.reason
        assert plan.change_requests_used == 2
