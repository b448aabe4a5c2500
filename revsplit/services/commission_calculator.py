"""
Commission Calculator

Pure, synchronous split of an order item subtotal:

    platform_fee       = subtotal * platform_fee_percent / 100
    creator_commission = subtotal * creator_percent / 100, clamped to [min, max]
    payment_fee        = subtotal * payment_fee_rate
    seller_take        = subtotal - platform_fee - creator_commission - payment_fee

All arithmetic is Decimal. Components are rounded to the cent and the seller
take is the exact remainder, so the four parts always sum to the subtotal.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from revsplit.core.exceptions import ValidationError
from revsplit.models.commerce import OrderItem
from revsplit.models.commission import CommissionRule
from revsplit.schemas.commission import CommissionCalculation


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")
DEFAULT_PAYMENT_FEE_RATE = Decimal("0.029")


def to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate(
    order_item: OrderItem,
    rule: CommissionRule,
    payment_fee_rate: Decimal = DEFAULT_PAYMENT_FEE_RATE,
    currency: Optional[str] = None,
) -> CommissionCalculation:
    """
    Compute the four-way split for one order item under one rule.

    Args:
        order_item: Item whose subtotal is split
        rule: Resolved commission rule
        payment_fee_rate: Processor fee as a fraction (0.029 = 2.9%)
        currency: Order currency (defaults to the rule currency)

    A negative seller take is not an error: the creator commission is reduced
    so the seller take lands at zero and a warning is logged, since it means
    the rule is misconfigured.
    """
    subtotal = Decimal(order_item.subtotal)
    if subtotal < ZERO:
        raise ValidationError(
            "Order item subtotal cannot be negative",
            "NEGATIVE_SUBTOTAL",
            {"order_item_id": order_item.id, "subtotal": subtotal},
        )
    payment_fee_rate = Decimal(payment_fee_rate)

    platform_fee = to_cents(subtotal * Decimal(rule.platform_fee_percent) / HUNDRED)

    creator_commission = to_cents(subtotal * Decimal(rule.creator_percent) / HUNDRED)
    if rule.min_commission is not None and creator_commission < rule.min_commission:
        creator_commission = Decimal(rule.min_commission)
    if rule.max_commission is not None and creator_commission > rule.max_commission:
        creator_commission = Decimal(rule.max_commission)

    payment_fee = to_cents(subtotal * payment_fee_rate)

    seller_take = subtotal - platform_fee - creator_commission - payment_fee
    clamped = False

    if seller_take < ZERO:
        logger.warning(
            f"Negative seller take for order item {order_item.id} under rule {rule.id}: "
            f"subtotal={subtotal} platform_fee={platform_fee} "
            f"creator_commission={creator_commission} payment_fee={payment_fee} "
            f"seller_take={seller_take}; adjusting commission"
        )
        clamped = True
        creator_commission = max(ZERO, subtotal - platform_fee - payment_fee)
        seller_take = subtotal - platform_fee - creator_commission - payment_fee

        if seller_take < ZERO:
            # Fees alone exceed the subtotal: cap them so the split still sums exactly
            payment_fee = min(payment_fee, subtotal)
            platform_fee = subtotal - payment_fee
            seller_take = ZERO

    return CommissionCalculation(
        order_item_id=order_item.id,
        subtotal=subtotal,
        platform_fee=platform_fee,
        creator_commission=creator_commission,
        payment_fee=payment_fee,
        seller_take=seller_take,
        currency=currency or rule.currency,
        applied_rule_id=rule.id,
        applied_rule_type=rule.scope_type,
        clamped=clamped,
    )
