"""Order, SKU and campaign tables owned by the ingestion and catalog collaborators.

The engine only reads these rows; they are modelled here so that commission
processing can load an order with its items and resolve products and creators.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import String, DateTime, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from revsplit.database import Base
from revsplit.db_types import UUIDType, MoneyType


class Sku(Base):
    """Sellable stock keeping unit. Belongs to exactly one product."""
    __tablename__ = "skus"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    product_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    sku_code: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return f"<Sku(code='{self.sku_code}', product={self.product_id})>"


class Campaign(Base):
    """Creator campaign. The engine only needs its creator."""
    __tablename__ = "campaigns"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    creator_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)


class Order(Base):
    """Marketplace order as handed over by order ingestion."""
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="PENDING")
    external_created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.created_at",
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, currency='{self.currency}')>"


class OrderItem(Base):
    """One line of an order. Subtotal is post item-level discount and pre-tax."""
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sku_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("skus.id"),
        nullable=False,
        index=True
    )
    subtotal: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    order: Mapped["Order"] = relationship("Order", back_populates="items")
    sku: Mapped["Sku"] = relationship("Sku")

    def __repr__(self) -> str:
        return f"<OrderItem(id={self.id}, subtotal={self.subtotal})>"
