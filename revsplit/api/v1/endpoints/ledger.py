"""API endpoints for the commission ledger journal."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query

from revsplit.api.deps import DB, Converter
from revsplit.core.enum_utils import get_enum_value
from revsplit.models.ledger import LedgerEntryStatus, LedgerEntryType
from revsplit.schemas.ledger import (
    CancelEntriesRequest, LedgerEntryListResponse, LedgerEntryResponse, PendingCommissions,
)
from revsplit.services.ledger_service import LedgerService


router = APIRouter()


@router.post("/orders/{order_id}/clear", response_model=List[LedgerEntryResponse])
async def clear_order_entries(order_id: UUID, db: DB):
    """Clear the order's RESERVED entries once its payment is confirmed."""
    service = LedgerService(db)
    return await service.clear(order_id)


@router.post("/orders/{order_id}/cancel", response_model=List[LedgerEntryResponse])
async def cancel_order_entries(order_id: UUID, request: CancelEntriesRequest, db: DB):
    """Cancel the order's entries after a refund or cancellation."""
    service = LedgerService(db)
    return await service.cancel(order_id, request.reason)


@router.get("/orders/{order_id}/entries", response_model=List[LedgerEntryResponse])
async def get_order_entries(order_id: UUID, db: DB):
    service = LedgerService(db)
    return await service.get_entries_for_order(order_id)


@router.get("/entries", response_model=LedgerEntryListResponse)
async def list_ledger_entries(
    db: DB,
    organization_id: Optional[UUID] = None,
    creator_id: Optional[UUID] = None,
    payout_id: Optional[UUID] = None,
    entry_type: Optional[LedgerEntryType] = None,
    status: Optional[LedgerEntryStatus] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
):
    """List ledger entries with filters."""
    service = LedgerService(db)
    items, total = await service.list_entries(
        organization_id=organization_id,
        creator_id=creator_id,
        payout_id=payout_id,
        entry_type=get_enum_value(entry_type),
        status=get_enum_value(status),
        skip=skip,
        limit=limit,
    )
    return LedgerEntryListResponse(
        items=[LedgerEntryResponse.model_validate(e) for e in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/creators/{creator_id}/pending", response_model=PendingCommissions)
async def get_pending_commissions(
    creator_id: UUID,
    db: DB,
    converter: Converter,
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
):
    """Cleared commissions of a creator not yet claimed by a payout."""
    service = LedgerService(db)
    return await service.get_pending_creator_commissions(creator_id, currency, converter)
