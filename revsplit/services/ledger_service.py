"""
Ledger Entry Store

Durable, append-mostly journal of commission splits.

- record_sale_split(): four entries per order item in one transaction
- clear(): order-level bulk transition, locked and committed in chunks
- cancel(): order-level, all or nothing under row locks
- find_cleared_commissions_for_creator(): FIFO feed for payouts
- mark_paid(): settlement of exactly the entries of a confirmed payout

Status changes only go through revsplit.services.ledger_state_machine.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from revsplit.config import settings
from revsplit.core.exceptions import (
    AppError, ConflictError, InternalServerError, NotFoundError, ValidationError,
)
from revsplit.models.commerce import Order
from revsplit.models.ledger import LedgerEntry, LedgerEntryStatus, LedgerEntryType
from revsplit.schemas.commission import CommissionCalculation
from revsplit.schemas.ledger import LedgerEntryResponse, PendingCommissions
from revsplit.services.interfaces import CurrencyConverter
from revsplit.services.ledger_state_machine import transition_entry, validate_transition


logger = logging.getLogger(__name__)


# One sale split = these four entries, in this order.
# (entry type, calculation field holding the amount, description prefix)
SPLIT_COMPONENTS: Tuple[Tuple[LedgerEntryType, str, str], ...] = (
    (LedgerEntryType.SALE, "subtotal", "Sale revenue"),
    (LedgerEntryType.PLATFORM_FEE, "platform_fee", "Platform fee"),
    (LedgerEntryType.COMMISSION, "creator_commission", "Creator commission"),
    (LedgerEntryType.PAYMENT_FEE, "payment_fee", "Payment processing fee"),
)


def chunked(items: Sequence, size: int) -> Iterator[Sequence]:
    """Yield consecutive slices of at most `size` items."""
    for start in range(0, len(items), size):
        yield items[start:start + size]


class LedgerService:
    """Service for ledger journal operations."""

    def __init__(self, db: AsyncSession, chunk_size: Optional[int] = None):
        self.db = db
        self.chunk_size = chunk_size or settings.LEDGER_BULK_CHUNK_SIZE

    # ========================================================================
    # Split recording
    # ========================================================================

    async def record_sale_split(
        self,
        calculation: CommissionCalculation,
        order: Order,
        creator_id: uuid.UUID,
    ) -> List[LedgerEntry]:
        """
        Journal a commission calculation as SALE, PLATFORM_FEE, COMMISSION and
        PAYMENT_FEE entries, all RESERVED, in a single transaction.

        Raises:
            ValidationError: the calculation does not sum to its subtotal
            ConflictError: the order item already has a live split
            InternalServerError: the write failed; nothing was committed
        """
        order_id = order.id
        organization_id = order.organization_id
        correlation = {"order_id": order_id, "order_item_id": calculation.order_item_id}

        parts = (
            calculation.platform_fee
            + calculation.creator_commission
            + calculation.payment_fee
            + calculation.seller_take
        )
        if parts != calculation.subtotal or calculation.seller_take < 0:
            raise ValidationError(
                "Commission calculation is not balanced",
                "SPLIT_NOT_BALANCED",
                correlation,
            )

        if await self._live_split_exists(calculation.order_item_id):
            raise ConflictError(
                "Commission split already recorded for this order item",
                "SPLIT_ALREADY_RECORDED",
                correlation,
            )

        now = datetime.now(timezone.utc)
        base_metadata = {
            "calculation_id": f"calc_{uuid.uuid4().hex[:16]}",
            "applied_rule_id": str(calculation.applied_rule_id),
            "applied_rule_type": calculation.applied_rule_type,
        }

        entries = []
        for entry_type, amount_field, description in SPLIT_COMPONENTS:
            metadata = dict(base_metadata)
            is_commission = entry_type == LedgerEntryType.COMMISSION
            if is_commission:
                metadata["creator_id"] = str(creator_id)

            entries.append(LedgerEntry(
                id=uuid.uuid4(),
                organization_id=organization_id,
                order_id=order_id,
                order_item_id=calculation.order_item_id,
                entry_type=entry_type.value,
                amount=getattr(calculation, amount_field),
                currency=calculation.currency,
                description=f"{description} for order item {calculation.order_item_id}",
                status=LedgerEntryStatus.RESERVED.value,
                creator_id=creator_id if is_commission else None,
                entry_metadata=metadata,
                created_at=now,
                updated_at=now,
            ))

        try:
            self.db.add_all(entries)
            await self.db.flush()
            await self.db.commit()
        except IntegrityError:
            # A concurrent writer committed a live split for the same item
            await self.db.rollback()
            logger.warning(f"Duplicate split rejected for order item {correlation['order_item_id']}")
            raise ConflictError(
                "Commission split already recorded for this order item",
                "SPLIT_ALREADY_RECORDED",
                correlation,
            )
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(
                f"Failed to create ledger entries for order {order_id} "
                f"item {calculation.order_item_id}"
            )
            raise InternalServerError(
                "Failed to create ledger entries",
                "LEDGER_ENTRY_CREATION_FAILED",
                correlation,
            )

        logger.info(
            f"Recorded split for order item {calculation.order_item_id}: "
            f"subtotal={calculation.subtotal} commission={calculation.creator_commission} "
            f"{calculation.currency}"
        )
        return entries

    async def _live_split_exists(self, order_item_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(func.count(LedgerEntry.id)).where(
                LedgerEntry.order_item_id == order_item_id,
                LedgerEntry.entry_type == LedgerEntryType.SALE.value,
                LedgerEntry.status != LedgerEntryStatus.CANCELLED.value,
            )
        )
        return bool(result.scalar())

    # ========================================================================
    # Bulk transitions
    # ========================================================================

    async def _select_entry_ids(self, *criteria) -> List[uuid.UUID]:
        result = await self.db.execute(
            select(LedgerEntry.id)
            .where(*criteria)
            .order_by(LedgerEntry.created_at.asc(), LedgerEntry.id.asc())
        )
        return list(result.scalars().all())

    async def _lock_entries(self, entry_ids: Iterable[uuid.UUID]) -> List[LedgerEntry]:
        """Load entries with a row lock (SELECT ... FOR UPDATE)."""
        result = await self.db.execute(
            select(LedgerEntry)
            .where(LedgerEntry.id.in_(list(entry_ids)))
            .order_by(LedgerEntry.created_at.asc(), LedgerEntry.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _run_chunked(
        self,
        entry_ids: Sequence[uuid.UUID],
        target_status: str,
        apply: Callable[[LedgerEntry], None],
        error_code: str,
        correlation: Dict,
    ) -> List[LedgerEntry]:
        """Lock, transition and commit entries chunk by chunk."""
        updated: List[LedgerEntry] = []
        try:
            for chunk in chunked(entry_ids, self.chunk_size):
                entries = await self._lock_entries(chunk)
                for entry in entries:
                    validate_transition(entry, target_status)
                for entry in entries:
                    apply(entry)
                await self.db.flush()
                await self.db.commit()
                updated.extend(entries)
        except AppError:
            await self.db.rollback()
            raise
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Ledger bulk transition failed ({error_code}) {correlation}")
            raise InternalServerError(
                "Failed to update ledger entries",
                error_code,
                {**correlation, "updated_before_failure": len(updated)},
            )
        return updated

    async def clear(self, order_id: uuid.UUID) -> List[LedgerEntry]:
        """
        Move every RESERVED entry of the order to CLEARED.

        All entries share one cleared_at reading. Returns [] when nothing is
        RESERVED.
        """
        entry_ids = await self._select_entry_ids(
            LedgerEntry.order_id == order_id,
            LedgerEntry.status == LedgerEntryStatus.RESERVED.value,
        )
        if not entry_ids:
            logger.info(f"No reserved ledger entries found to clear for order {order_id}")
            return []

        cleared_at = datetime.now(timezone.utc)

        def apply(entry: LedgerEntry) -> None:
            transition_entry(entry, LedgerEntryStatus.CLEARED.value, cleared_at)
        cleared = await self._run_chunked(
            entry_ids, LedgerEntryStatus.CLEARED.value, apply, "LEDGER_ENTRY_CLEARING_FAILED", {"order_id": order_id}
        )
        logger.info(f"Cleared {len(cleared)} ledger entries for order {order_id}")
        return cleared

    async def cancel(self, order_id: uuid.UUID, reason: str) -> List[LedgerEntry]:
        """
        Move every non-CANCELLED entry of the order to CANCELLED, keeping prior
        metadata and adding the reason and cancellation time.

        Raises:
            ConflictError: an entry is PAID or claimed by an in-flight payout;
                nothing is cancelled in that case.
        """
        entry_ids = await self._select_entry_ids(
            LedgerEntry.order_id == order_id,
            LedgerEntry.status != LedgerEntryStatus.CANCELLED.value,
        )
        if not entry_ids:
            logger.info(f"No active ledger entries found to cancel for order {order_id}")
            return []

        # Claim check and transition share one transaction and its row locks
        cancelled_at = datetime.now(timezone.utc)
        try:
            entries: List[LedgerEntry] = []
            for chunk in chunked(entry_ids, self.chunk_size):
                entries.extend(await self._lock_entries(chunk))
            entries = [e for e in entries if e.status != LedgerEntryStatus.CANCELLED.value]

            for entry in entries:
                if entry.payout_id is not None:
                    raise ConflictError(
                        "Order has ledger entries that are paid or being paid out",
                        "INVALID_LEDGER_TRANSITION",
                        {
                            "order_id": order_id,
                            "entry_id": entry.id,
                            "current_status": entry.status,
                            "payout_id": entry.payout_id,
                        },
                    )
                validate_transition(entry, LedgerEntryStatus.CANCELLED.value)

            for entry in entries:
                transition_entry(entry, LedgerEntryStatus.CANCELLED.value, cancelled_at)
                entry.entry_metadata = {**entry.entry_metadata, "cancellation_reason": reason}
            await self.db.flush()
            await self.db.commit()
        except AppError:
            await self.db.rollback()
            raise
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to cancel ledger entries for order {order_id}")
            raise InternalServerError(
                "Failed to update ledger entries",
                "LEDGER_ENTRY_CANCELLATION_FAILED",
                {"order_id": order_id},
            )

        logger.info(f"Cancelled {len(entries)} ledger entries for order {order_id}: {reason}")
        return entries

    async def mark_paid(
        self,
        entry_ids: Sequence[uuid.UUID],
        payout_id: uuid.UUID,
        commit: bool = True,
    ) -> List[LedgerEntry]:
        """
        Move the given CLEARED entries to PAID and stamp payout_id and paid_at.

        Entries must be unclaimed or claimed by this payout. Either every entry
        is updated or none is.

        Raises:
            NotFoundError: an entry id does not exist
            ConflictError: an entry is not CLEARED or belongs to another payout
        """
        wanted = list(dict.fromkeys(entry_ids))
        if not wanted:
            return []

        try:
            entries = await self._lock_entries(wanted)
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to load entries for payout {payout_id}")
            raise InternalServerError(
                "Failed to mark commissions as paid",
                "COMMISSION_PAYMENT_UPDATE_FAILED",
                {"payout_id": payout_id},
            )

        try:
            found = {entry.id for entry in entries}
            missing = [entry_id for entry_id in wanted if entry_id not in found]
            if missing:
                raise NotFoundError(
                    "Ledger entries not found",
                    "LEDGER_ENTRY_NOT_FOUND",
                    {"payout_id": payout_id, "entry_ids": ",".join(str(m) for m in missing)},
                )

            for entry in entries:
                if entry.payout_id is not None and entry.payout_id != payout_id:
                    raise ConflictError(
                        "Ledger entry is claimed by another payout",
                        "PAYOUT_CLAIM_CONFLICT",
                        {"entry_id": entry.id, "payout_id": payout_id, "claimed_by": entry.payout_id},
                    )
                validate_transition(entry, LedgerEntryStatus.PAID.value)
        except AppError:
            # Release the row locks taken above
            await self.db.rollback()
            raise

        paid_at = datetime.now(timezone.utc)
        for entry in entries:
            transition_entry(entry, LedgerEntryStatus.PAID.value, paid_at)
            entry.payout_id = payout_id

        try:
            await self.db.flush()
            if commit:
                await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to mark entries paid for payout {payout_id}")
            raise InternalServerError(
                "Failed to mark commissions as paid",
                "COMMISSION_PAYMENT_UPDATE_FAILED",
                {"payout_id": payout_id},
            )

        logger.info(f"Marked {len(entries)} commission entries paid for payout {payout_id}")
        return entries

    # ========================================================================
    # Queries
    # ========================================================================

    async def find_cleared_commissions_for_creator(
        self,
        creator_id: uuid.UUID,
        currency: Optional[str] = None,
        include_claimed: bool = False,
        for_update: bool = False,
    ) -> List[LedgerEntry]:
        """
        CLEARED commission entries of a creator, oldest first.

        Claimed entries (payout_id set by an in-flight payout) are excluded
        unless include_claimed is True. With for_update the rows are locked and
        rows locked by a concurrent payout run are skipped.
        """
        query = select(LedgerEntry).where(
            LedgerEntry.entry_type == LedgerEntryType.COMMISSION.value,
            LedgerEntry.status == LedgerEntryStatus.CLEARED.value,
            LedgerEntry.creator_id == creator_id,
        )
        if currency:
            query = query.where(LedgerEntry.currency == currency.upper())
        if not include_claimed:
            query = query.where(LedgerEntry.payout_id.is_(None))

        query = query.order_by(LedgerEntry.created_at.asc(), LedgerEntry.id.asc())
        if for_update:
            query = query.with_for_update(skip_locked=True)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_entries_for_order(self, order_id: uuid.UUID) -> List[LedgerEntry]:
        result = await self.db.execute(
            select(LedgerEntry)
            .where(LedgerEntry.order_id == order_id)
            .order_by(LedgerEntry.created_at.asc(), LedgerEntry.id.asc())
        )
        return list(result.scalars().all())

    async def list_entries(
        self,
        organization_id: Optional[uuid.UUID] = None,
        creator_id: Optional[uuid.UUID] = None,
        payout_id: Optional[uuid.UUID] = None,
        entry_type: Optional[str] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[LedgerEntry], int]:
        """Read-only listing for reporting collaborators."""
        filters = []
        if organization_id:
            filters.append(LedgerEntry.organization_id == organization_id)
        if creator_id:
            filters.append(LedgerEntry.creator_id == creator_id)
        if payout_id:
            filters.append(LedgerEntry.payout_id == payout_id)
        if entry_type:
            filters.append(LedgerEntry.entry_type == entry_type)
        if status:
            filters.append(LedgerEntry.status == status)

        count_query = select(func.count(LedgerEntry.id))
        query = select(LedgerEntry)
        if filters:
            count_query = count_query.where(and_(*filters))
            query = query.where(and_(*filters))

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.asc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_pending_creator_commissions(
        self,
        creator_id: uuid.UUID,
        currency: Optional[str] = None,
        converter: Optional[CurrencyConverter] = None,
    ) -> PendingCommissions:
        """
        Cleared, unclaimed commissions of a creator with totals per currency.

        total_amount is expressed in the requested currency, or in the currency
        of the oldest pending entry when none is requested. With a converter
        every other currency group is converted and added; without one only
        the target currency counts. `commissions` lists the entries behind
        total_amount. A creator with nothing pending and no requested currency
        gets no total.
        """
        entries = await self.find_cleared_commissions_for_creator(creator_id)

        totals: Dict[str, Decimal] = {}
        for entry in entries:
            totals[entry.currency] = totals.get(entry.currency, Decimal("0")) + entry.amount

        pending = PendingCommissions(
            creator_id=creator_id,
            totals_by_currency=totals,
            entry_count=len(entries),
        )
        if currency:
            target = currency.upper()
        elif entries:
            target = entries[0].currency
        else:
            return pending

        total = totals.get(target, Decimal("0"))
        included = [entry for entry in entries if entry.currency == target]
        if converter:
            for group_currency, amount in totals.items():
                if group_currency != target:
                    total += await converter.convert(amount, group_currency, target)
            included = entries

        pending.currency = target
        pending.total_amount = total
        pending.commissions = [LedgerEntryResponse.model_validate(entry) for entry in included]
        return pending
