"""
Commission Service

Entry point used by order ingestion once an order and its items exist:
resolve a rule per item, calculate the split and journal it.

Each order item is its own atomic unit. Processing stops at the first item
that fails; items recorded before it stay committed and a retry skips nothing
silently, because re-recording a live split is rejected by the ledger.
"""
import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from revsplit.config import settings
from revsplit.core.exceptions import AppError, NotFoundError, ValidationError
from revsplit.models.commerce import Campaign, Order, OrderItem
from revsplit.models.ledger import LedgerEntry
from revsplit.schemas.commission import CommissionCalculation
from revsplit.services import commission_calculator
from revsplit.services.ledger_service import LedgerService
from revsplit.services.rule_resolver import RuleResolver


logger = logging.getLogger(__name__)


class CommissionService:
    """Service for commission processing of ingested orders."""

    def __init__(
        self,
        db: AsyncSession,
        payment_fee_rate: Optional[Decimal] = None,
        ledger: Optional[LedgerService] = None,
    ):
        self.db = db
        self.payment_fee_rate = payment_fee_rate if payment_fee_rate is not None else settings.PAYMENT_FEE_RATE
        self.resolver = RuleResolver(db)
        self.ledger = ledger or LedgerService(db)

    async def _get_order(self, order_id: uuid.UUID) -> Order:
        result = await self.db.execute(
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.id == order_id)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise NotFoundError("Order not found", "ORDER_NOT_FOUND", {"order_id": order_id})
        return order

    async def _creator_for_campaign(self, campaign_id: uuid.UUID) -> Optional[uuid.UUID]:
        result = await self.db.execute(
            select(Campaign.creator_id).where(Campaign.id == campaign_id)
        )
        return result.scalar_one_or_none()

    async def calculate_commission(
        self,
        order_item: OrderItem,
        order: Order,
        campaign_id: Optional[uuid.UUID] = None,
    ) -> CommissionCalculation:
        """Resolve the rule and calculate the split for one item. Writes nothing."""
        rule = await self.resolver.resolve(order_item, order.organization_id, campaign_id)
        if rule.currency != order.currency:
            logger.warning(
                f"Rule {rule.id} is defined in {rule.currency} but order {order.id} "
                f"is in {order.currency}; commission caps are applied as-is"
            )
        return commission_calculator.calculate(
            order_item,
            rule,
            payment_fee_rate=self.payment_fee_rate,
            currency=order.currency,
        )

    async def preview_order_item(
        self,
        order_item_id: uuid.UUID,
        campaign_id: Optional[uuid.UUID] = None,
    ) -> CommissionCalculation:
        result = await self.db.execute(
            select(OrderItem)
            .options(selectinload(OrderItem.order))
            .where(OrderItem.id == order_item_id)
        )
        order_item = result.scalar_one_or_none()
        if not order_item:
            raise NotFoundError(
                "Order item not found", "ORDER_ITEM_NOT_FOUND", {"order_item_id": order_item_id}
            )
        return await self.calculate_commission(order_item, order_item.order, campaign_id)

    async def process_order_commissions(
        self,
        order_id: uuid.UUID,
        campaign_id: Optional[uuid.UUID] = None,
        creator_id: Optional[uuid.UUID] = None,
    ) -> Tuple[List[CommissionCalculation], List[LedgerEntry]]:
        """
        Calculate and journal commissions for every item of an order.

        Flow:
        1. Load the order with its items
        2. Derive the creator from the campaign when not supplied
        3. Per item: resolve rule, calculate, record four RESERVED entries

        Raises:
            NotFoundError: unknown order, or no rule for an item
            ValidationError: no creator could be determined
        """
        order = await self._get_order(order_id)

        if not creator_id and campaign_id:
            creator_id = await self._creator_for_campaign(campaign_id)

        if not creator_id:
            raise ValidationError(
                "Creator ID is required for commission processing",
                "CREATOR_ID_REQUIRED",
                {"order_id": order_id, "campaign_id": campaign_id},
            )

        calculations: List[CommissionCalculation] = []
        ledger_entries: List[LedgerEntry] = []

        for item in order.items:
            item_id = item.id
            try:
                calculation = await self.calculate_commission(item, order, campaign_id)
                entries = await self.ledger.record_sale_split(calculation, order, creator_id)
            except AppError as e:
                logger.error(
                    f"Commission processing halted for order {order_id} at item {item_id}: "
                    f"{e.error_code} {e.message}"
                )
                raise

            calculations.append(calculation)
            ledger_entries.extend(entries)

        logger.info(
            f"Processed commissions for order {order_id}: "
            f"{len(calculations)} items, {len(ledger_entries)} ledger entries"
        )
        return calculations, ledger_entries
