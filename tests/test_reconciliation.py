"""Tests for commission reconciliation."""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from revsplit.models import LedgerEntry
from revsplit.services.ledger_service import LedgerService
from revsplit.services.payout_service import PayoutService
from revsplit.services.reconciliation_service import ReconciliationService, ReconciliationStatus


def window():
    now = datetime.now(timezone.utc)
    return now - timedelta(days=1), now + timedelta(days=1)


def raw_entry(organization_id, entry_type, amount, status="CLEARED", order_item_id=None, currency="USD"):
    return LedgerEntry(
        organization_id=organization_id,
        order_id=uuid.uuid4(),
        order_item_id=order_item_id,
        entry_type=entry_type,
        amount=Decimal(amount),
        currency=currency,
        status=status,
        entry_metadata={},
        created_at=datetime.now(timezone.utc),
    )


@pytest.mark.asyncio
async def test_balanced_ledger(db, organization_id, creator_id, make_rule, make_order, record_order):
    rule = await make_rule()
    ledger = LedgerService(db)
    paid_order = await make_order("100.00")
    await record_order(paid_order, rule)
    await ledger.clear(paid_order.id)
    payouts = PayoutService(db)
    payout = (await payouts.process_creator(creator_id))[0]
    await payouts.confirm_payout(payout.id, succeeded=True)

    cleared_order = await make_order("200.00")
    await record_order(cleared_order, rule)
    await ledger.clear(cleared_order.id)
    reserved_order = await make_order("300.00")
    await record_order(reserved_order, rule)
    cancelled_order = await make_order("400.00")
    await record_order(cancelled_order, rule)
    await ledger.cancel(cancelled_order.id, "Refunded")

    start, end = window()
    result = await ReconciliationService(db).reconcile(organization_id, start, end)

    assert result.status == ReconciliationStatus.BALANCED
    assert result.total_commissions == Decimal("60.00")
    assert result.total_paid == Decimal("10.00")
    assert result.total_pending == Decimal("50.00")
    assert result.discrepancy_amount is None
    assert result.split_violations == []


@pytest.mark.asyncio
async def test_empty_window_is_balanced(db, organization_id, make_rule, make_order, record_order):
    rule = await make_rule()
    await record_order(await make_order("100.00"), rule)

    long_ago = datetime.now(timezone.utc) - timedelta(days=365)
    result = await ReconciliationService(db).reconcile(organization_id, long_ago, long_ago + timedelta(days=1))

    assert result.status == ReconciliationStatus.BALANCED
    assert result.total_commissions == Decimal("0")


@pytest.mark.asyncio
async def test_unknown_status_reported_as_discrepancy(db, organization_id, caplog):
    db.add_all([
        raw_entry(organization_id, "COMMISSION", "25.00", status="CLEARED"),
        raw_entry(organization_id, "COMMISSION", "7.50", status="ON_HOLD"),
    ])
    await db.commit()

    start, end = window()
    with caplog.at_level(logging.WARNING, logger="revsplit.services.reconciliation_service"):
        result = await ReconciliationService(db).reconcile(organization_id, start, end)

    assert result.status == ReconciliationStatus.DISCREPANCY
    assert result.total_commissions == Decimal("32.50")
    assert result.total_pending == Decimal("25.00")
    assert result.discrepancy_amount == Decimal("7.50")
    assert "discrepancy" in caplog.text


@pytest.mark.asyncio
async def test_per_currency_breakdown(db, organization_id, make_rule, make_order, record_order):
    rule = await make_rule()
    await record_order(await make_order("100.00"), rule)
    await record_order(await make_order("300.00", currency="EUR"), rule)

    start, end = window()
    result = await ReconciliationService(db).reconcile(organization_id, start, end)

    assert result.by_currency["USD"].total_commissions == Decimal("10.00")
    assert result.by_currency["EUR"].total_pending == Decimal("30.00")


@pytest.mark.asyncio
async def test_other_organizations_excluded(db, organization_id):
    db.add(raw_entry(uuid.uuid4(), "COMMISSION", "99.00", status="ON_HOLD"))
    await db.commit()

    start, end = window()
    result = await ReconciliationService(db).reconcile(organization_id, start, end)

    assert result.status == ReconciliationStatus.BALANCED
    assert result.total_commissions == Decimal("0")


@pytest.mark.asyncio
async def test_split_violations_found_in_chunks(db, organization_id):
    broken_items = [uuid.uuid4() for _ in range(3)]
    healthy_item = uuid.uuid4()
    for item_id in broken_items:
        db.add_all([
            raw_entry(organization_id, "SALE", "10.00", order_item_id=item_id),
            raw_entry(organization_id, "PLATFORM_FEE", "5.00", order_item_id=item_id),
            raw_entry(organization_id, "COMMISSION", "6.00", order_item_id=item_id),
        ])
    db.add_all([
        raw_entry(organization_id, "SALE", "10.00", order_item_id=healthy_item),
        raw_entry(organization_id, "COMMISSION", "1.00", order_item_id=healthy_item),
        # Cancelled fees do not count against the sale
        raw_entry(organization_id, "PLATFORM_FEE", "50.00", status="CANCELLED", order_item_id=healthy_item),
    ])
    await db.commit()

    start, end = window()
    result = await ReconciliationService(db, chunk_size=2).reconcile(organization_id, start, end)

    assert sorted(result.split_violations) == sorted(broken_items)
    assert healthy_item not in result.split_violations
