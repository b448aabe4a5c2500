"""
Commission Rule Resolver

Selects the one CommissionRule governing an order item. Tiers are evaluated
in a fixed order and the first match wins:

    CAMPAIGN (only when a campaign id is supplied) > SKU > PRODUCT > DEFAULT

Each tier is an entry of RESOLUTION_TIERS: the scope type it queries and a
function extracting the scope id from the resolution context (None skips the
tier). Reordering tiers means reordering that tuple.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from revsplit.core.exceptions import NotFoundError
from revsplit.models.commerce import OrderItem, Sku
from revsplit.models.commission import CommissionRule, CommissionRuleType


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolutionContext:
    """Everything a tier needs to build its query."""
    organization_id: uuid.UUID
    sku_id: uuid.UUID
    product_id: Optional[uuid.UUID]
    campaign_id: Optional[uuid.UUID]
    at: datetime


# Sentinel for tiers that match on the organization alone
ORGANIZATION_WIDE = object()

ScopeExtractor = Callable[[ResolutionContext], Optional[object]]

RESOLUTION_TIERS: Tuple[Tuple[CommissionRuleType, ScopeExtractor], ...] = (
    (CommissionRuleType.CAMPAIGN, lambda ctx: ctx.campaign_id),
    (CommissionRuleType.SKU, lambda ctx: ctx.sku_id),
    (CommissionRuleType.PRODUCT, lambda ctx: ctx.product_id),
    (CommissionRuleType.DEFAULT, lambda ctx: ORGANIZATION_WIDE),
)


class RuleResolver:
    """Resolves the applicable commission rule for an order item."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _product_id_for(self, sku_id: uuid.UUID) -> Optional[uuid.UUID]:
        result = await self.db.execute(
            select(Sku.product_id).where(Sku.id == sku_id)
        )
        return result.scalar_one_or_none()

    async def find_tier_rule(
        self,
        scope_type: CommissionRuleType,
        scope_id: object,
        ctx: ResolutionContext,
    ) -> Optional[CommissionRule]:
        """Find the active, in-window rule of one tier, or None."""
        query = select(CommissionRule).where(
            CommissionRule.organization_id == ctx.organization_id,
            CommissionRule.scope_type == scope_type.value,
            CommissionRule.is_active == True,  # noqa: E712
            CommissionRule.start_date <= ctx.at,
            or_(CommissionRule.end_date.is_(None), CommissionRule.end_date >= ctx.at),
        )
        if scope_id is ORGANIZATION_WIDE:
            query = query.where(CommissionRule.scope_id.is_(None))
        else:
            query = query.where(CommissionRule.scope_id == scope_id)

        # Overlapping windows are a configuration error; pick deterministically
        query = query.order_by(CommissionRule.start_date.asc(), CommissionRule.created_at.asc()).limit(1)

        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def resolve(
        self,
        order_item: OrderItem,
        organization_id: uuid.UUID,
        campaign_id: Optional[uuid.UUID] = None,
        at: Optional[datetime] = None,
    ) -> CommissionRule:
        """
        Return the rule governing this order item.

        Raises:
            NotFoundError: no tier matched, DEFAULT included. This is a
                misconfiguration and is never turned into a zero split.
        """
        ctx = ResolutionContext(
            organization_id=organization_id,
            sku_id=order_item.sku_id,
            product_id=await self._product_id_for(order_item.sku_id),
            campaign_id=campaign_id,
            at=at or datetime.now(timezone.utc),
        )

        for scope_type, extract_scope in RESOLUTION_TIERS:
            scope_id = extract_scope(ctx)
            if scope_id is None:
                continue

            rule = await self.find_tier_rule(scope_type, scope_id, ctx)
            if rule:
                logger.debug(
                    f"Resolved commission rule {rule.id} ({scope_type.value}) "
                    f"for order item {order_item.id}"
                )
                return rule

        raise NotFoundError(
            "No applicable commission rule found",
            "COMMISSION_RULE_NOT_FOUND",
            {
                "organization_id": organization_id,
                "order_item_id": order_item.id,
                "sku_id": ctx.sku_id,
                "product_id": ctx.product_id,
                "campaign_id": campaign_id,
            },
        )
