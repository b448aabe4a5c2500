"""
Payout Service

Aggregates CLEARED commission entries into creator payouts and settles them
once the payment provider confirms.

Lifecycle:
    process_creator()  -> Payout PROCESSING, entries claimed (payout_id set), still CLEARED
    initiate_payout()  -> provider transfer requested, reference stored
    confirm_payout()   -> SUCCEEDED: claimed entries PAID
                          FAILED: claims released, entries payable again

Entries are never marked PAID when a payout is created, only on confirmation.
"""
import logging
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, update, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from revsplit.config import settings
from revsplit.core.exceptions import (
    AppError, ConflictError, ExternalServiceError, InternalServerError, NotFoundError,
)
from revsplit.models.ledger import (
    LedgerEntry, LedgerEntryStatus, Payout, PayoutStatus, RecipientType,
)
from revsplit.services.commission_calculator import to_cents
from revsplit.services.interfaces import (
    LoggingNotificationPublisher, NotificationPublisher, PaymentProvider,
    PayoutEvent, PayoutEventType,
)
from revsplit.services.ledger_service import LedgerService


logger = logging.getLogger(__name__)


class PayoutService:
    """Service for creator payout processing."""

    def __init__(
        self,
        db: AsyncSession,
        provider: Optional[PaymentProvider] = None,
        notifier: Optional[NotificationPublisher] = None,
        fee_rate: Optional[Decimal] = None,
        ledger: Optional[LedgerService] = None,
    ):
        self.db = db
        self.provider = provider
        self.notifier = notifier or LoggingNotificationPublisher()
        self.fee_rate = fee_rate if fee_rate is not None else settings.PAYOUT_FEE_RATE
        self.ledger = ledger or LedgerService(db)

    # ========================================================================
    # Payout creation
    # ========================================================================

    async def process_creator(self, creator_id: uuid.UUID) -> List[Payout]:
        """
        Create one PROCESSING payout per (organization, currency) group of the
        creator's cleared, unclaimed commission entries.

        Entries are claimed with a conditional UPDATE on payout_id IS NULL. If a
        concurrent run claimed any of them first, everything is rolled back.

        Raises:
            ConflictError: entries were claimed concurrently
            InternalServerError: persistence failure
        """
        entries = await self.ledger.find_cleared_commissions_for_creator(creator_id, for_update=True)
        if not entries:
            logger.info(f"No cleared commissions to pay out for creator {creator_id}")
            return []

        groups: Dict[Tuple[uuid.UUID, str], List[LedgerEntry]] = OrderedDict()
        for entry in entries:
            groups.setdefault((entry.organization_id, entry.currency), []).append(entry)

        today = datetime.now(timezone.utc).date()
        payouts: List[Payout] = []

        try:
            for (organization_id, currency), group in groups.items():
                entry_ids = [entry.id for entry in group]
                total_amount = sum((entry.amount for entry in group), Decimal("0"))
                fee = to_cents(total_amount * self.fee_rate)

                payout = Payout(
                    id=uuid.uuid4(),
                    organization_id=organization_id,
                    recipient_id=creator_id,
                    recipient_type=RecipientType.CREATOR.value,
                    amount=total_amount,
                    fee=fee,
                    net_amount=total_amount - fee,
                    currency=currency,
                    status=PayoutStatus.PROCESSING.value,
                    scheduled_date=today,
                    payout_metadata={
                        "entry_count": len(group),
                        "period_start": min(entry.created_at for entry in group).isoformat(),
                        "period_end": max(entry.created_at for entry in group).isoformat(),
                    },
                )
                self.db.add(payout)
                await self.db.flush()

                claim = await self.db.execute(
                    update(LedgerEntry)
                    .where(
                        LedgerEntry.id.in_(entry_ids),
                        LedgerEntry.payout_id.is_(None),
                        LedgerEntry.status == LedgerEntryStatus.CLEARED.value,
                    )
                    .values(payout_id=payout.id)
                )
                if claim.rowcount != len(entry_ids):
                    raise ConflictError(
                        "Commission entries were claimed by a concurrent payout run",
                        "PAYOUT_CLAIM_CONFLICT",
                        {
                            "creator_id": creator_id,
                            "currency": currency,
                            "expected": len(entry_ids),
                            "claimed": claim.rowcount,
                        },
                    )
                payouts.append(payout)

            await self.db.commit()
        except AppError:
            await self.db.rollback()
            raise
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to create payouts for creator {creator_id}")
            raise InternalServerError(
                "Failed to create payouts",
                "PAYOUT_CREATION_FAILED",
                {"creator_id": creator_id},
            )

        for payout in payouts:
            logger.info(
                f"Created payout {payout.id} for creator {creator_id}: "
                f"{payout.amount} {payout.currency} (fee {payout.fee}, "
                f"{payout.payout_metadata['entry_count']} entries)"
            )
        return payouts

    # ========================================================================
    # Provider interaction
    # ========================================================================

    async def _get_payout_for_update(self, payout_id: uuid.UUID) -> Payout:
        result = await self.db.execute(
            select(Payout)
            .where(Payout.id == payout_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        payout = result.scalar_one_or_none()
        if not payout:
            raise NotFoundError("Payout not found", "PAYOUT_NOT_FOUND", {"payout_id": payout_id})
        return payout

    async def initiate_payout(
        self,
        payout_id: uuid.UUID,
        recipient_bank_details: Dict[str, str],
    ) -> Payout:
        """
        Ask the payment provider to transfer the net amount.

        The payout stays PROCESSING; only confirm_payout() settles it.
        """
        if self.provider is None:
            raise InternalServerError(
                "No payment provider configured",
                "PAYMENT_PROVIDER_NOT_CONFIGURED",
                {"payout_id": payout_id},
            )

        payout = await self._get_payout_for_update(payout_id)
        current, existing_reference = payout.status, payout.provider_reference
        if current != PayoutStatus.PROCESSING.value:
            await self.db.rollback()
            raise ConflictError(
                f"Payout in '{current}' status cannot be initiated",
                "PAYOUT_ALREADY_FINALIZED",
                {"payout_id": payout_id},
            )
        if existing_reference:
            await self.db.rollback()
            raise ConflictError(
                "Payout transfer was already initiated",
                "PAYOUT_ALREADY_INITIATED",
                {"payout_id": payout_id, "provider_reference": existing_reference},
            )

        try:
            reference = await self.provider.initiate_transfer(
                payout.net_amount,
                payout.currency,
                recipient_bank_details,
            )
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"Payment provider failed to initiate payout {payout_id}")
            raise ExternalServiceError(
                "Payment provider failed to initiate transfer",
                "PAYOUT_INITIATION_FAILED",
                {"payout_id": payout_id},
            ) from e

        payout.provider_reference = reference
        await self.db.commit()
        logger.info(f"Initiated payout {payout_id} with provider reference {reference}")
        return payout

    async def confirm_payout(
        self,
        payout_id: uuid.UUID,
        succeeded: bool,
        provider_reference: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> Payout:
        """
        Apply the provider's asynchronous settlement confirmation.

        Idempotent: repeating the outcome a payout already has is a no-op.
        Reporting the opposite outcome for a finalized payout is a conflict.
        """
        target = PayoutStatus.SUCCEEDED.value if succeeded else PayoutStatus.FAILED.value
        payout = await self._get_payout_for_update(payout_id)

        if payout.status == target:
            await self.db.commit()
            logger.info(f"Payout {payout_id} already {target}; ignoring repeated confirmation")
            return payout
        if payout.status != PayoutStatus.PROCESSING.value:
            current = payout.status
            await self.db.rollback()
            raise ConflictError(
                f"Payout already finalized as '{current}'",
                "PAYOUT_ALREADY_FINALIZED",
                {"payout_id": payout_id, "current_status": current, "requested_status": target},
            )

        now = datetime.now(timezone.utc)
        try:
            if succeeded:
                claimed = await self.db.execute(
                    select(LedgerEntry.id).where(LedgerEntry.payout_id == payout_id)
                )
                entry_ids = list(claimed.scalars().all())
                expected = (payout.payout_metadata or {}).get("entry_count", len(entry_ids))
                if len(entry_ids) != expected:
                    raise ConflictError(
                        "Payout entry set changed since creation",
                        "PAYOUT_ENTRY_MISMATCH",
                        {"payout_id": payout_id, "expected": expected, "found": len(entry_ids)},
                    )
                await self.ledger.mark_paid(entry_ids, payout_id, commit=False)
                payout.status = PayoutStatus.SUCCEEDED.value
            else:
                await self.db.execute(
                    update(LedgerEntry)
                    .where(and_(
                        LedgerEntry.payout_id == payout_id,
                        LedgerEntry.status == LedgerEntryStatus.CLEARED.value,
                    ))
                    .values(payout_id=None)
                )
                payout.status = PayoutStatus.FAILED.value
                payout.failure_reason = failure_reason

            payout.processed_date = now
            if provider_reference:
                payout.provider_reference = provider_reference
            await self.db.commit()
        except AppError:
            await self.db.rollback()
            raise
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to confirm payout {payout_id}")
            raise InternalServerError(
                "Failed to confirm payout",
                "PAYOUT_CONFIRMATION_FAILED",
                {"payout_id": payout_id},
            )

        logger.info(f"Payout {payout_id} confirmed as {payout.status}")
        await self._notify(payout)
        return payout

    async def _notify(self, payout: Payout) -> None:
        succeeded = payout.status == PayoutStatus.SUCCEEDED.value
        event = PayoutEvent(
            event_type=PayoutEventType.PAYOUT_SUCCEEDED if succeeded else PayoutEventType.PAYOUT_FAILED,
            recipient_id=payout.recipient_id,
            payout_id=payout.id,
            amount=payout.net_amount,
            currency=payout.currency,
            reason=payout.failure_reason or "",
        )
        try:
            await self.notifier.publish(event)
        except Exception:
            # Settlement is already committed; delivery is the notifier's concern
            logger.exception(f"Failed to publish {event.event_type.value} for payout {payout.id}")

    # ========================================================================
    # Queries
    # ========================================================================

    async def get_payout(self, payout_id: uuid.UUID) -> Payout:
        result = await self.db.execute(select(Payout).where(Payout.id == payout_id))
        payout = result.scalar_one_or_none()
        if not payout:
            raise NotFoundError("Payout not found", "PAYOUT_NOT_FOUND", {"payout_id": payout_id})
        return payout

    async def list_payouts(
        self,
        recipient_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Payout]:
        query = select(Payout)
        if recipient_id:
            query = query.where(Payout.recipient_id == recipient_id)
        if status:
            query = query.where(Payout.status == status)
        result = await self.db.execute(
            query.order_by(Payout.created_at.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all())
