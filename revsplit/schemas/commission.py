"""Pydantic schemas for commission rules and calculations."""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from revsplit.models.commission import CommissionRuleType
from revsplit.schemas.base import BaseResponseSchema, BaseCreateSchema


# ==================== CommissionRule Schemas ====================

class CommissionRuleCreate(BaseCreateSchema):
    """Schema for creating a commission rule."""
    organization_id: UUID
    name: str = Field("", max_length=200)
    scope_type: CommissionRuleType
    scope_id: Optional[UUID] = None
    creator_percent: Decimal = Field(..., ge=0, le=100)
    platform_fee_percent: Decimal = Field(..., ge=0, le=100)
    min_commission: Optional[Decimal] = Field(None, ge=0)
    max_commission: Optional[Decimal] = Field(None, ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    is_active: bool = True
    start_date: datetime
    end_date: Optional[datetime] = None

    @model_validator(mode="after")
    def check_scope_and_bounds(self):
        if self.scope_type == CommissionRuleType.DEFAULT and self.scope_id is not None:
            raise ValueError("DEFAULT rules must not carry a scope_id")
        if self.scope_type != CommissionRuleType.DEFAULT and self.scope_id is None:
            raise ValueError(f"{self.scope_type.value} rules require a scope_id")
        if (
            self.min_commission is not None
            and self.max_commission is not None
            and self.min_commission > self.max_commission
        ):
            raise ValueError("min_commission cannot exceed max_commission")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        self.currency = self.currency.upper()
        return self


class CommissionRuleResponse(BaseResponseSchema):
    """Response schema for a commission rule."""
    id: UUID
    organization_id: UUID
    name: str
    scope_type: str
    scope_id: Optional[UUID] = None
    creator_percent: Decimal
    platform_fee_percent: Decimal
    min_commission: Optional[Decimal] = None
    max_commission: Optional[Decimal] = None
    currency: str
    is_active: bool
    start_date: datetime
    end_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class CommissionRuleListResponse(BaseModel):
    items: List[CommissionRuleResponse]
    total: int
    skip: int = 0
    limit: int = 50


# ==================== Calculation Schemas ====================

class CommissionCalculation(BaseModel):
    """
    Four-way split of one order item subtotal.

    subtotal == platform_fee + creator_commission + payment_fee + seller_take
    holds exactly for every instance produced by the calculator.
    """
    order_item_id: UUID
    subtotal: Decimal
    platform_fee: Decimal
    creator_commission: Decimal
    payment_fee: Decimal
    seller_take: Decimal
    currency: str
    applied_rule_id: UUID
    applied_rule_type: str
    clamped: bool = False


class ProcessOrderRequest(BaseCreateSchema):
    """Body for processing commissions of an ingested order."""
    campaign_id: Optional[UUID] = None
    creator_id: Optional[UUID] = None


class PreviewRequest(BaseCreateSchema):
    campaign_id: Optional[UUID] = None
