"""
Periodic commission reconciliation.

Runs ReconciliationService for every organization with ledger activity in the
lookback window. Each organization gets its own session so a failure in one
does not affect the others.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select

from revsplit.config import settings
from revsplit.database import get_db_session
from revsplit.models.ledger import LedgerEntry
from revsplit.services.reconciliation_service import ReconciliationService, ReconciliationStatus


logger = logging.getLogger(__name__)


async def get_active_organization_ids(since: datetime) -> List[UUID]:
    async with get_db_session() as session:
        result = await session.execute(
            select(LedgerEntry.organization_id)
            .where(LedgerEntry.created_at >= since)
            .distinct()
        )
        return list(result.scalars().all())


async def reconcile_active_organizations(now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Reconcile every organization with ledger activity over the last
    RECONCILIATION_LOOKBACK_DAYS days.

    Returns a summary with balanced/discrepancy/failed counts.
    """
    end_date = now or datetime.now(timezone.utc)
    start_date = end_date - timedelta(days=settings.RECONCILIATION_LOOKBACK_DAYS)

    organization_ids = await get_active_organization_ids(start_date)
    summary = {
        "organization_count": len(organization_ids),
        "balanced": 0,
        "discrepancies": 0,
        "failed": 0,
        "started_at": end_date.isoformat(),
    }

    for organization_id in organization_ids:
        try:
            async with get_db_session() as session:
                result = await ReconciliationService(session).reconcile(
                    organization_id, start_date, end_date
                )
        except Exception as e:
            summary["failed"] += 1
            logger.error(f"Reconciliation failed for organization {organization_id}: {e}")
            continue

        if result.status == ReconciliationStatus.BALANCED:
            summary["balanced"] += 1
        else:
            summary["discrepancies"] += 1

    logger.info(
        f"Reconciliation run finished: {summary['balanced']} balanced, "
        f"{summary['discrepancies']} with discrepancies, {summary['failed']} failed "
        f"of {summary['organization_count']} organizations"
    )
    return summary
