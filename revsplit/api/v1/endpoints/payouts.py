"""API endpoints for creator payouts."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from revsplit.api.deps import DB, Notifier, Provider
from revsplit.core.enum_utils import get_enum_value
from revsplit.core.exceptions import ValidationError
from revsplit.models.ledger import PayoutStatus
from revsplit.schemas.ledger import PayoutConfirmRequest, PayoutInitiateRequest, PayoutResponse
from revsplit.services.payout_service import PayoutService


router = APIRouter()


@router.post(
    "/creators/{creator_id}/process",
    response_model=List[PayoutResponse],
    status_code=status.HTTP_201_CREATED,
)
async def process_creator_payouts(creator_id: UUID, db: DB, notifier: Notifier):
    """Bundle the creator's cleared commissions into payouts, one per organization and currency."""
    service = PayoutService(db, notifier=notifier)
    return await service.process_creator(creator_id)


@router.get("", response_model=List[PayoutResponse])
async def list_payouts(
    db: DB,
    recipient_id: Optional[UUID] = None,
    payout_status: Optional[PayoutStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    service = PayoutService(db)
    return await service.list_payouts(
        recipient_id=recipient_id,
        status=get_enum_value(payout_status),
        skip=skip,
        limit=limit,
    )


@router.get("/{payout_id}", response_model=PayoutResponse)
async def get_payout(payout_id: UUID, db: DB):
    service = PayoutService(db)
    return await service.get_payout(payout_id)


@router.post("/{payout_id}/initiate", response_model=PayoutResponse)
async def initiate_payout(
    payout_id: UUID,
    request: PayoutInitiateRequest,
    db: DB,
    provider: Provider,
):
    """Request the bank transfer for a PROCESSING payout."""
    service = PayoutService(db, provider=provider)
    return await service.initiate_payout(payout_id, request.recipient_bank_details)


@router.post("/{payout_id}/confirm", response_model=PayoutResponse)
async def confirm_payout(
    payout_id: UUID,
    request: PayoutConfirmRequest,
    db: DB,
    notifier: Notifier,
):
    """
    Settlement callback from the payment provider.

    SUCCEEDED marks the payout's entries PAID; FAILED releases them for the
    next payout run. Repeating a delivered outcome is accepted.
    """
    if request.status == PayoutStatus.PROCESSING:
        raise ValidationError(
            "Confirmation status must be SUCCEEDED or FAILED",
            "INVALID_PAYOUT_CONFIRMATION",
            {"payout_id": payout_id},
        )

    service = PayoutService(db, notifier=notifier)
    return await service.confirm_payout(
        payout_id,
        succeeded=request.status == PayoutStatus.SUCCEEDED,
        provider_reference=request.provider_reference,
        failure_reason=request.failure_reason,
    )
