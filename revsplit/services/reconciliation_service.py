"""
Reconciliation Service

Read-only audit of commission entries over a time window. Results are data:
a DISCREPANCY is logged and returned, never raised and never corrected here.
"""
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from revsplit.config import settings
from revsplit.models.ledger import LedgerEntry, LedgerEntryStatus, LedgerEntryType
from revsplit.schemas.ledger import ReconciliationResult, ReconciliationTotals


logger = logging.getLogger(__name__)


class ReconciliationStatus:
    BALANCED = "BALANCED"
    DISCREPANCY = "DISCREPANCY"


PENDING_STATUSES = (LedgerEntryStatus.RESERVED.value, LedgerEntryStatus.CLEARED.value)

SPLIT_FEE_TYPES = (
    LedgerEntryType.PLATFORM_FEE.value,
    LedgerEntryType.COMMISSION.value,
    LedgerEntryType.PAYMENT_FEE.value,
)


class ReconciliationService:
    """Service for commission reconciliation."""

    def __init__(self, db: AsyncSession, chunk_size: Optional[int] = None):
        self.db = db
        self.chunk_size = chunk_size or settings.LEDGER_BULK_CHUNK_SIZE

    async def reconcile(
        self,
        organization_id: uuid.UUID,
        start_date: datetime,
        end_date: datetime,
    ) -> ReconciliationResult:
        """
        Compare commission totals for entries created in [start_date, end_date].

        BALANCED iff total_commissions == total_paid + total_pending, where
        pending is RESERVED + CLEARED. Cancelled entries are excluded.
        """
        result = await self.db.execute(
            select(
                LedgerEntry.currency,
                LedgerEntry.status,
                func.coalesce(func.sum(LedgerEntry.amount), 0),
            )
            .where(
                LedgerEntry.organization_id == organization_id,
                LedgerEntry.entry_type == LedgerEntryType.COMMISSION.value,
                LedgerEntry.status != LedgerEntryStatus.CANCELLED.value,
                LedgerEntry.created_at >= start_date,
                LedgerEntry.created_at <= end_date,
            )
            .group_by(LedgerEntry.currency, LedgerEntry.status)
        )

        by_currency: Dict[str, ReconciliationTotals] = {}
        for currency, status, amount in result.all():
            amount = Decimal(amount)
            totals = by_currency.setdefault(currency, ReconciliationTotals())
            totals.total_commissions += amount
            if status == LedgerEntryStatus.PAID.value:
                totals.total_paid += amount
            elif status in PENDING_STATUSES:
                totals.total_pending += amount

        total_commissions = sum((t.total_commissions for t in by_currency.values()), Decimal("0"))
        total_paid = sum((t.total_paid for t in by_currency.values()), Decimal("0"))
        total_pending = sum((t.total_pending for t in by_currency.values()), Decimal("0"))

        difference = total_commissions - (total_paid + total_pending)
        status = ReconciliationStatus.BALANCED if difference == 0 else ReconciliationStatus.DISCREPANCY

        split_violations = await self._find_split_violations(organization_id, start_date, end_date)

        reconciliation = ReconciliationResult(
            organization_id=organization_id,
            start_date=start_date,
            end_date=end_date,
            total_commissions=total_commissions,
            total_paid=total_paid,
            total_pending=total_pending,
            status=status,
            discrepancy_amount=difference if difference != 0 else None,
            by_currency=by_currency,
            split_violations=split_violations,
        )

        if status == ReconciliationStatus.DISCREPANCY:
            logger.warning(
                f"Reconciliation discrepancy for organization {organization_id} "
                f"({start_date.isoformat()} - {end_date.isoformat()}): "
                f"commissions={total_commissions} paid={total_paid} "
                f"pending={total_pending} difference={difference}"
            )
        else:
            logger.info(
                f"Reconciliation balanced for organization {organization_id}: "
                f"commissions={total_commissions}"
            )
        if split_violations:
            logger.warning(
                f"{len(split_violations)} order items in organization {organization_id} "
                f"have fees exceeding their sale amount"
            )
        return reconciliation

    async def _find_split_violations(
        self,
        organization_id: uuid.UUID,
        start_date: datetime,
        end_date: datetime,
    ) -> List[uuid.UUID]:
        """Order items whose live fee entries exceed the SALE entry."""
        implied_seller_take = func.sum(
            case(
                (LedgerEntry.entry_type == LedgerEntryType.SALE.value, LedgerEntry.amount),
                else_=-LedgerEntry.amount,
            )
        )
        query = (
            select(LedgerEntry.order_item_id)
            .where(
                LedgerEntry.organization_id == organization_id,
                LedgerEntry.order_item_id.is_not(None),
                LedgerEntry.status != LedgerEntryStatus.CANCELLED.value,
                LedgerEntry.entry_type.in_((LedgerEntryType.SALE.value,) + SPLIT_FEE_TYPES),
                LedgerEntry.created_at >= start_date,
                LedgerEntry.created_at <= end_date,
            )
            .group_by(LedgerEntry.order_item_id)
            .having(implied_seller_take < 0)
            .order_by(LedgerEntry.order_item_id)
        )

        violations: List[uuid.UUID] = []
        offset = 0
        while True:
            result = await self.db.execute(query.offset(offset).limit(self.chunk_size))
            chunk = list(result.scalars().all())
            violations.extend(chunk)
            if len(chunk) < self.chunk_size:
                break
            offset += self.chunk_size
        return violations
