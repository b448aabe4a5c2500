"""Commission rule model.

A rule fixes the creator and platform percentages for sales in its scope.
Scopes are ordered by specificity: CAMPAIGN > SKU > PRODUCT > DEFAULT.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from revsplit.database import Base
from revsplit.db_types import UUIDType, MoneyType, PercentType


class CommissionRuleType(str, Enum):
    """Scope of a commission rule."""
    CAMPAIGN = "CAMPAIGN"   # Scoped to one campaign
    SKU = "SKU"             # Scoped to one SKU
    PRODUCT = "PRODUCT"     # Scoped to one product (all its SKUs)
    DEFAULT = "DEFAULT"     # Organization-wide fallback


class CommissionRule(Base):
    """
    Organization-scoped commission policy.

    Percentages are percent of the order item subtotal (10 means 10%).
    scope_id holds the campaign, SKU or product id and is NULL for DEFAULT rules.
    """
    __tablename__ = "commission_rules"
    __table_args__ = (
        Index("ix_commission_rules_lookup", "organization_id", "scope_type", "scope_id", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    # Scope
    scope_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="DEFAULT",
        comment="CAMPAIGN, SKU, PRODUCT, DEFAULT"
    )
    scope_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        nullable=True,
        comment="Campaign/SKU/product id, NULL for DEFAULT"
    )

    # Rates
    creator_percent: Mapped[Decimal] = mapped_column(PercentType, nullable=False)
    platform_fee_percent: Mapped[Decimal] = mapped_column(PercentType, nullable=False)
    min_commission: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)
    max_commission: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Validity
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="NULL = open ended"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<CommissionRule(id={self.id}, scope='{self.scope_type}', scope_id={self.scope_id})>"
