"""Tests for creator payout processing and settlement."""
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select

from revsplit.core.exceptions import ConflictError, ExternalServiceError, InternalServerError, NotFoundError
from revsplit.models import LedgerEntry, LedgerEntryStatus, Payout, PayoutStatus
from revsplit.services.interfaces import PayoutEventType
from revsplit.services.ledger_service import LedgerService
from revsplit.services.payout_service import PayoutService


async def cleared_commissions(db, make_rule, make_order, record_order, *subtotals, currency="USD"):
    """One order per subtotal, journaled at 10% commission and cleared."""
    rule = await make_rule()
    ledger = LedgerService(db)
    orders = []
    for subtotal in subtotals:
        order = await make_order(subtotal, currency=currency)
        await record_order(order, rule)
        await ledger.clear(order.id)
        orders.append(order)
    return orders


async def load_commissions(session_factory, creator_id):
    async with session_factory() as session:
        result = await session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.creator_id == creator_id)
            .order_by(LedgerEntry.created_at)
        )
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_process_creator_bundles_cleared_commissions(db, session_factory, creator_id, make_rule, make_order, record_order):
    await cleared_commissions(db, make_rule, make_order, record_order, "100.00", "200.00", "300.00")

    payouts = await PayoutService(db).process_creator(creator_id)

    assert len(payouts) == 1
    payout = payouts[0]
    assert payout.amount == Decimal("60.00")
    assert payout.fee == Decimal("0.60")
    assert payout.net_amount == Decimal("59.40")
    assert payout.status == PayoutStatus.PROCESSING.value
    assert payout.recipient_id == creator_id
    assert payout.payout_metadata["entry_count"] == 3

    # Claimed, not yet paid
    commissions = await load_commissions(session_factory, creator_id)
    assert {entry.payout_id for entry in commissions} == {payout.id}
    assert {entry.status for entry in commissions} == {LedgerEntryStatus.CLEARED.value}


@pytest.mark.asyncio
async def test_confirmed_payout_marks_entries_paid(db, session_factory, creator_id, make_rule, make_order, record_order, notifier):
    await cleared_commissions(db, make_rule, make_order, record_order, "100.00", "200.00", "300.00")
    service = PayoutService(db, notifier=notifier)
    payout = (await service.process_creator(creator_id))[0]

    confirmed = await service.confirm_payout(payout.id, succeeded=True, provider_reference="tr_0001")

    assert confirmed.status == PayoutStatus.SUCCEEDED.value
    assert confirmed.processed_date is not None
    assert confirmed.provider_reference == "tr_0001"

    commissions = await load_commissions(session_factory, creator_id)
    assert len(commissions) == 3
    assert {entry.status for entry in commissions} == {LedgerEntryStatus.PAID.value}
    assert {entry.payout_id for entry in commissions} == {payout.id}
    assert all(entry.paid_at is not None for entry in commissions)

    assert [event.event_type for event in notifier.events] == [PayoutEventType.PAYOUT_SUCCEEDED]
    assert notifier.events[0].recipient_id == creator_id
    assert notifier.events[0].amount == Decimal("59.40")


@pytest.mark.asyncio
async def test_confirmation_is_idempotent(db, creator_id, make_rule, make_order, record_order, notifier):
    await cleared_commissions(db, make_rule, make_order, record_order, "100.00")
    service = PayoutService(db, notifier=notifier)
    payout = (await service.process_creator(creator_id))[0]
    await service.confirm_payout(payout.id, succeeded=True)

    again = await service.confirm_payout(payout.id, succeeded=True)

    assert again.status == PayoutStatus.SUCCEEDED.value
    assert len(notifier.events) == 1

    with pytest.raises(ConflictError) as exc_info:
        await service.confirm_payout(payout.id, succeeded=False, failure_reason="late failure")
    assert exc_info.value.error_code == "PAYOUT_ALREADY_FINALIZED"


@pytest.mark.asyncio
async def test_failed_payout_releases_entries(db, session_factory, creator_id, make_rule, make_order, record_order, notifier):
    await cleared_commissions(db, make_rule, make_order, record_order, "100.00", "200.00")
    service = PayoutService(db, notifier=notifier)
    payout = (await service.process_creator(creator_id))[0]

    failed = await service.confirm_payout(payout.id, succeeded=False, failure_reason="Account closed")

    assert failed.status == PayoutStatus.FAILED.value
    assert failed.failure_reason == "Account closed"
    commissions = await load_commissions(session_factory, creator_id)
    assert {entry.payout_id for entry in commissions} == {None}
    assert {entry.status for entry in commissions} == {LedgerEntryStatus.CLEARED.value}
    assert notifier.events[0].event_type == PayoutEventType.PAYOUT_FAILED
    assert notifier.events[0].reason == "Account closed"

    # Released entries are picked up by the next run
    retry = await service.process_creator(creator_id)
    assert len(retry) == 1
    assert retry[0].amount == Decimal("30.00")


@pytest.mark.asyncio
async def test_claimed_entries_not_paid_out_twice(db, creator_id, make_rule, make_order, record_order):
    await cleared_commissions(db, make_rule, make_order, record_order, "100.00")
    service = PayoutService(db)
    await service.process_creator(creator_id)

    assert await service.process_creator(creator_id) == []


@pytest.mark.asyncio
async def test_concurrent_claim_conflict(db, session_factory, creator_id, make_rule, make_order, record_order, make_payout, monkeypatch):
    await cleared_commissions(db, make_rule, make_order, record_order, "100.00", "200.00")
    ledger = LedgerService(db)
    stale = await ledger.find_cleared_commissions_for_creator(creator_id)

    # Another run claims one of the entries between selection and claim
    rival_id = (await make_payout("10.00")).id
    async with session_factory() as other:
        entry = await other.get(LedgerEntry, stale[0].id)
        entry.payout_id = rival_id
        await other.commit()

    async def stale_selection(*args, **kwargs):
        return stale

    monkeypatch.setattr(ledger, "find_cleared_commissions_for_creator", stale_selection)

    with pytest.raises(ConflictError) as exc_info:
        await PayoutService(db, ledger=ledger).process_creator(creator_id)

    assert exc_info.value.error_code == "PAYOUT_CLAIM_CONFLICT"
    async with session_factory() as check:
        payouts = (await check.execute(select(Payout))).scalars().all()
        assert [p.id for p in payouts] == [rival_id]


@pytest.mark.asyncio
async def test_payouts_split_by_currency(db, creator_id, make_rule, make_order, record_order):
    await cleared_commissions(db, make_rule, make_order, record_order, "100.00", "50.00")
    await cleared_commissions(db, make_rule, make_order, record_order, "300.00", currency="EUR")

    payouts = await PayoutService(db).process_creator(creator_id)

    amounts = {payout.currency: payout.amount for payout in payouts}
    assert amounts == {"USD": Decimal("15.00"), "EUR": Decimal("30.00")}


@pytest.mark.asyncio
async def test_no_cleared_commissions(db, creator_id, make_rule, make_order, record_order):
    rule = await make_rule()
    order = await make_order("100.00")
    await record_order(order, rule)

    assert await PayoutService(db).process_creator(creator_id) == []


@pytest.mark.asyncio
async def test_initiate_payout(db, creator_id, make_rule, make_order, record_order, payment_provider):
    await cleared_commissions(db, make_rule, make_order, record_order, "100.00")
    service = PayoutService(db, provider=payment_provider)
    payout = (await service.process_creator(creator_id))[0]
    bank = {"account_number": "000123456789", "routing_number": "110000000"}

    initiated = await service.initiate_payout(payout.id, bank)

    assert initiated.provider_reference == "tr_0001"
    assert initiated.status == PayoutStatus.PROCESSING.value
    assert payment_provider.transfers == [
        {"amount": Decimal("9.90"), "currency": "USD", "recipient_bank_details": bank}
    ]

    with pytest.raises(ConflictError) as exc_info:
        await service.initiate_payout(payout.id, bank)
    assert exc_info.value.error_code == "PAYOUT_ALREADY_INITIATED"
    assert len(payment_provider.transfers) == 1


@pytest.mark.asyncio
async def test_initiate_payout_provider_failure(db, session_factory, creator_id, make_rule, make_order, record_order, failing_payment_provider):
    await cleared_commissions(db, make_rule, make_order, record_order, "100.00")
    service = PayoutService(db, provider=failing_payment_provider)
    payout_id = (await service.process_creator(creator_id))[0].id

    with pytest.raises(ExternalServiceError) as exc_info:
        await service.initiate_payout(payout_id, {"account_number": "1"})

    assert exc_info.value.error_code == "PAYOUT_INITIATION_FAILED"
    async with session_factory() as check:
        payout = await check.get(Payout, payout_id)
        assert payout.status == PayoutStatus.PROCESSING.value
        assert payout.provider_reference is None


@pytest.mark.asyncio
async def test_initiate_without_provider(db, make_payout):
    payout = await make_payout("10.00")

    with pytest.raises(InternalServerError) as exc_info:
        await PayoutService(db).initiate_payout(payout.id, {})

    assert exc_info.value.error_code == "PAYMENT_PROVIDER_NOT_CONFIGURED"


@pytest.mark.asyncio
async def test_get_and_list_payouts(db, creator_id, make_rule, make_order, record_order):
    await cleared_commissions(db, make_rule, make_order, record_order, "100.00")
    service = PayoutService(db)
    payout = (await service.process_creator(creator_id))[0]

    assert (await service.get_payout(payout.id)).id == payout.id
    assert [p.id for p in await service.list_payouts(recipient_id=creator_id)] == [payout.id]
    assert await service.list_payouts(status=PayoutStatus.SUCCEEDED.value) == []

    with pytest.raises(NotFoundError):
        await service.get_payout(uuid.uuid4())
