import os

# Settings are read at import time; point them at SQLite before importing revsplit
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RECONCILIATION_ENABLED", "false")

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from revsplit import models  # noqa: F401
from revsplit.database import Base, custom_json_dumps
from revsplit.models import (
    Campaign, CommissionRule, CommissionRuleType, Order, OrderItem, Payout, Sku,
)
from revsplit.services.commission_calculator import calculate
from revsplit.services.interfaces import LoggingNotificationPublisher, PaymentProvider
from revsplit.services.ledger_service import LedgerService


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        json_serializer=custom_json_dumps,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def organization_id():
    return uuid.uuid4()


@pytest.fixture
def creator_id():
    return uuid.uuid4()


@pytest_asyncio.fixture
async def sku(db, organization_id):
    sku = Sku(organization_id=organization_id, product_id=uuid.uuid4(), sku_code="SKU-001")
    db.add(sku)
    await db.commit()
    return sku


@pytest_asyncio.fixture
async def campaign(db, organization_id, creator_id):
    campaign = Campaign(organization_id=organization_id, creator_id=creator_id, name="Spring drop")
    db.add(campaign)
    await db.commit()
    return campaign


@pytest.fixture
def make_rule(db, organization_id):
    """Create and commit a commission rule. Defaults to an open-ended DEFAULT rule."""
    async def _make(
        scope_type: CommissionRuleType = CommissionRuleType.DEFAULT,
        scope_id=None,
        creator_percent="10",
        platform_fee_percent="5",
        **overrides,
    ) -> CommissionRule:
        values = dict(
            organization_id=organization_id,
            name=f"{scope_type.value.title()} rule",
            scope_type=scope_type.value,
            scope_id=scope_id,
            creator_percent=Decimal(creator_percent),
            platform_fee_percent=Decimal(platform_fee_percent),
            currency="USD",
            is_active=True,
            start_date=datetime.now(timezone.utc) - timedelta(days=30),
        )
        values.update(overrides)
        rule = CommissionRule(**values)
        db.add(rule)
        await db.commit()
        return rule
    return _make


@pytest.fixture
def make_order(db, organization_id, sku):
    """Create and commit an order with one item per subtotal given."""
    async def _make(*subtotals: str, currency: str = "USD") -> Order:
        now = datetime.now(timezone.utc)
        order = Order(
            organization_id=organization_id,
            currency=currency,
            items=[
                OrderItem(
                    sku_id=sku.id,
                    subtotal=Decimal(subtotal),
                    created_at=now + timedelta(microseconds=index),
                )
                for index, subtotal in enumerate(subtotals)
            ],
        )
        db.add(order)
        await db.commit()
        return order
    return _make


class FakePaymentProvider(PaymentProvider):
    """Records transfer requests; optionally fails."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.transfers: List[dict] = []

    async def initiate_transfer(self, amount, currency, recipient_bank_details) -> str:
        if self.fail:
            raise RuntimeError("bank unavailable")
        self.transfers.append({
            "amount": amount,
            "currency": currency,
            "recipient_bank_details": recipient_bank_details,
        })
        return f"tr_{len(self.transfers):04d}"


@pytest.fixture
def payment_provider():
    return FakePaymentProvider()


@pytest.fixture
def notifier():
    return LoggingNotificationPublisher()


@pytest.fixture
def record_order(db, creator_id):
    """Journal every item of an order under one rule, bypassing resolution."""
    async def _record(order, rule, creator=None):
        ledger = LedgerService(db)
        entries = []
        for item in order.items:
            calculation = calculate(item, rule, currency=order.currency)
            entries.extend(await ledger.record_sale_split(calculation, order, creator or creator_id))
        return entries
    return _record


@pytest.fixture
def make_payout(db, organization_id, creator_id):
    async def _make(amount="0.00", currency="USD", **overrides):
        values = dict(
            organization_id=organization_id,
            recipient_id=creator_id,
            recipient_type="CREATOR",
            amount=Decimal(amount),
            fee=Decimal("0.00"),
            net_amount=Decimal(amount),
            currency=currency,
            status="PROCESSING",
            scheduled_date=datetime.now(timezone.utc).date(),
            payout_metadata={"entry_count": 0},
        )
        values.update(overrides)
        payout = Payout(**values)
        db.add(payout)
        await db.commit()
        return payout
    return _make


@pytest.fixture
def failing_payment_provider():
    return FakePaymentProvider(fail=True)
