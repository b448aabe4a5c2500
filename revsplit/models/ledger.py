"""Ledger journal and payout models.

Ledger entries are append-mostly: amount and currency are written once, and
only status, its timestamps, payout_id and metadata additions change through
the ledger state machine (see revsplit.services.ledger_state_machine).
"""
import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import Optional
from decimal import Decimal

from sqlalchemy import String, DateTime, Date, ForeignKey, Index, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from revsplit.database import Base
from revsplit.db_types import UUIDType, JSONType, MoneyType


class LedgerEntryType(str, Enum):
    """Kind of money movement recorded by an entry."""
    SALE = "SALE"                   # Gross sale revenue (credit to seller)
    PLATFORM_FEE = "PLATFORM_FEE"   # Seller -> platform
    COMMISSION = "COMMISSION"       # Seller -> creator
    PAYMENT_FEE = "PAYMENT_FEE"     # Seller -> payment processor
    PAYOUT = "PAYOUT"
    REFUND = "REFUND"
    ADJUSTMENT = "ADJUSTMENT"


class LedgerEntryStatus(str, Enum):
    """Ledger entry lifecycle status."""
    RESERVED = "RESERVED"     # Recorded, order not yet paid
    CLEARED = "CLEARED"       # Order paid, eligible for payout
    PAID = "PAID"             # Settled by a confirmed payout
    CANCELLED = "CANCELLED"   # Voided (refund/cancellation)


class PayoutStatus(str, Enum):
    """Payout status, driven by payment provider confirmation."""
    PROCESSING = "PROCESSING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class RecipientType(str, Enum):
    CREATOR = "CREATOR"
    SELLER = "SELLER"


class Payout(Base):
    """
    Settlement request to one recipient in one currency.

    The ledger entries it settles point back to it through payout_id.
    """
    __tablename__ = "payouts"
    __table_args__ = (
        Index("ix_payouts_recipient_status", "recipient_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)

    # Recipient
    recipient_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    recipient_type: Mapped[str] = mapped_column(String(50), nullable=False, default="CREATOR")

    # Amounts
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False, comment="Gross sum of settled entries")
    fee: Mapped[Decimal] = mapped_column(MoneyType, nullable=False, default=Decimal("0"))
    net_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Status
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="PROCESSING")
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    processed_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    provider_reference: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    payout_metadata: Mapped[Optional[dict]] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
        comment="entry_count, period_start, period_end"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Payout(id={self.id}, amount={self.amount} {self.currency}, status='{self.status}')>"


class LedgerEntry(Base):
    """One journal line: an immutable amount with a mutable lifecycle status."""
    __tablename__ = "ledger_entries"
    __table_args__ = (
        Index("ix_ledger_entries_order_status", "order_id", "status"),
        Index("ix_ledger_entries_type_status", "entry_type", "status"),
        Index("ix_ledger_entries_org_created", "organization_id", "created_at"),
        # At most one live entry of each type per order item
        Index(
            "uq_ledger_entries_live_split",
            "order_item_id",
            "entry_type",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    order_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    order_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True, index=True)
    payout_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("payouts.id"),
        nullable=True,
        index=True,
        comment="Claiming/settling payout"
    )

    entry_type: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(50), nullable=False, default="RESERVED")
    creator_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        nullable=True,
        index=True,
        comment="Set on COMMISSION entries"
    )
    entry_metadata: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    cleared_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<LedgerEntry(type='{self.entry_type}', amount={self.amount}, status='{self.status}')>"
