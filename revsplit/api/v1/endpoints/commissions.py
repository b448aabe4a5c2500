"""API endpoints for commission processing of ingested orders."""
from uuid import UUID

from fastapi import APIRouter, status

from revsplit.api.deps import DB
from revsplit.schemas.commission import CommissionCalculation, PreviewRequest, ProcessOrderRequest
from revsplit.schemas.ledger import LedgerEntryResponse, ProcessOrderResponse
from revsplit.services.commission_service import CommissionService


router = APIRouter()


@router.post(
    "/orders/{order_id}/process",
    response_model=ProcessOrderResponse,
    status_code=status.HTTP_201_CREATED,
)
async def process_order(order_id: UUID, request: ProcessOrderRequest, db: DB):
    """
    Calculate commissions for every item of the order and journal them as
    RESERVED ledger entries.
    """
    service = CommissionService(db)
    calculations, entries = await service.process_order_commissions(
        order_id,
        campaign_id=request.campaign_id,
        creator_id=request.creator_id,
    )
    return ProcessOrderResponse(
        calculations=calculations,
        ledger_entries=[LedgerEntryResponse.model_validate(e) for e in entries],
    )


@router.post("/order-items/{item_id}/preview", response_model=CommissionCalculation)
async def preview_order_item(item_id: UUID, request: PreviewRequest, db: DB):
    """Calculate the split for one order item without writing anything."""
    service = CommissionService(db)
    return await service.preview_order_item(item_id, campaign_id=request.campaign_id)
