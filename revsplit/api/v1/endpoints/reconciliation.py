"""API endpoints for commission reconciliation."""
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter

from revsplit.api.deps import DB
from revsplit.config import settings
from revsplit.core.exceptions import ValidationError
from revsplit.schemas.ledger import ReconciliationResult
from revsplit.services.reconciliation_service import ReconciliationService


router = APIRouter()


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


@router.get("/organizations/{organization_id}", response_model=ReconciliationResult)
async def reconcile_organization(
    organization_id: UUID,
    db: DB,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
):
    """
    Audit commission totals for an organization.

    Defaults to the last RECONCILIATION_LOOKBACK_DAYS days.
    """
    end_date = _as_utc(end_date) if end_date else datetime.now(timezone.utc)
    start_date = _as_utc(start_date) if start_date else end_date - timedelta(days=settings.RECONCILIATION_LOOKBACK_DAYS)
    if start_date > end_date:
        raise ValidationError(
            "start_date must not be after end_date",
            "INVALID_DATE_RANGE",
            {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )

    service = ReconciliationService(db)
    return await service.reconcile(organization_id, start_date, end_date)
