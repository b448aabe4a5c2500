"""Pydantic schemas for ledger entries, payouts and reconciliation."""
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from revsplit.models.ledger import PayoutStatus
from revsplit.schemas.base import BaseResponseSchema, BaseCreateSchema
from revsplit.schemas.commission import CommissionCalculation


# ==================== LedgerEntry Schemas ====================

class LedgerEntryResponse(BaseResponseSchema):
    """Response schema for a ledger entry."""
    id: UUID
    organization_id: UUID
    order_id: UUID
    order_item_id: Optional[UUID] = None
    payout_id: Optional[UUID] = None
    entry_type: str
    amount: Decimal
    currency: str
    description: Optional[str] = None
    status: str
    creator_id: Optional[UUID] = None
    metadata: dict = Field(
        default_factory=dict,
        validation_alias=AliasChoices("entry_metadata", "metadata"),
    )
    created_at: datetime
    cleared_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None


class LedgerEntryListResponse(BaseModel):
    items: List[LedgerEntryResponse]
    total: int
    skip: int = 0
    limit: int = 50


class ProcessOrderResponse(BaseModel):
    """Result of commission processing for an order."""
    calculations: List[CommissionCalculation]
    ledger_entries: List[LedgerEntryResponse]


class CancelEntriesRequest(BaseCreateSchema):
    reason: str = Field(..., min_length=1, max_length=500)


class PendingCommissions(BaseModel):
    """Cleared, unclaimed commission totals for a creator."""
    creator_id: UUID
    totals_by_currency: Dict[str, Decimal]
    entry_count: int
    currency: Optional[str] = None
    total_amount: Optional[Decimal] = None
    commissions: List[LedgerEntryResponse] = Field(default_factory=list)


# ==================== Payout Schemas ====================

class PayoutResponse(BaseResponseSchema):
    """Response schema for a payout."""
    id: UUID
    organization_id: UUID
    recipient_id: UUID
    recipient_type: str
    amount: Decimal
    fee: Decimal
    net_amount: Decimal
    currency: str
    status: str
    scheduled_date: date
    processed_date: Optional[datetime] = None
    provider_reference: Optional[str] = None
    failure_reason: Optional[str] = None
    metadata: Optional[dict] = Field(
        default=None,
        validation_alias=AliasChoices("payout_metadata", "metadata"),
    )
    created_at: datetime


class PayoutInitiateRequest(BaseCreateSchema):
    """Recipient bank details are passed through to the payment provider untouched."""
    recipient_bank_details: Dict[str, str]


class PayoutConfirmRequest(BaseCreateSchema):
    """Asynchronous settlement confirmation from the payment provider."""
    status: PayoutStatus
    provider_reference: Optional[str] = None
    failure_reason: Optional[str] = None


# ==================== Reconciliation Schemas ====================

class ReconciliationTotals(BaseModel):
    total_commissions: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")
    total_pending: Decimal = Decimal("0")


class ReconciliationResult(BaseModel):
    """Read-only audit result. A DISCREPANCY is data, never an exception."""
    organization_id: UUID
    start_date: datetime
    end_date: datetime
    total_commissions: Decimal
    total_paid: Decimal
    total_pending: Decimal
    status: str
    discrepancy_amount: Optional[Decimal] = None
    by_currency: Dict[str, ReconciliationTotals] = Field(default_factory=dict)
    split_violations: List[UUID] = Field(default_factory=list)
