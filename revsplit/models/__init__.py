from revsplit.models.commerce import Order, OrderItem, Sku, Campaign
from revsplit.models.commission import CommissionRule, CommissionRuleType
from revsplit.models.ledger import (
    LedgerEntry,
    LedgerEntryType,
    LedgerEntryStatus,
    Payout,
    PayoutStatus,
    RecipientType,
)

__all__ = [
    "Order",
    "OrderItem",
    "Sku",
    "Campaign",
    "CommissionRule",
    "CommissionRuleType",
    "LedgerEntry",
    "LedgerEntryType",
    "LedgerEntryStatus",
    "Payout",
    "PayoutStatus",
    "RecipientType",
]
