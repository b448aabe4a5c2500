"""API endpoints for commission rule configuration."""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status
from sqlalchemy import select, func, and_

from revsplit.api.deps import DB
from revsplit.core.enum_utils import get_enum_value
from revsplit.core.exceptions import NotFoundError
from revsplit.models.commission import CommissionRule, CommissionRuleType
from revsplit.schemas.commission import (
    CommissionRuleCreate, CommissionRuleResponse, CommissionRuleListResponse,
)


logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=CommissionRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_commission_rule(rule_in: CommissionRuleCreate, db: DB):
    """Create a commission rule for a campaign, SKU, product or organization default."""
    rule = CommissionRule(**rule_in.model_dump(exclude={"scope_type"}))
    rule.scope_type = get_enum_value(rule_in.scope_type)
    db.add(rule)
    await db.commit()
    await db.refresh(rule)

    logger.info(
        f"Created {rule.scope_type} commission rule {rule.id} for organization "
        f"{rule.organization_id}: creator {rule.creator_percent}%, platform {rule.platform_fee_percent}%"
    )
    return rule


@router.get("", response_model=CommissionRuleListResponse)
async def list_commission_rules(
    db: DB,
    organization_id: Optional[UUID] = None,
    scope_type: Optional[CommissionRuleType] = None,
    scope_id: Optional[UUID] = None,
    is_active: Optional[bool] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    """List commission rules."""
    filters = []
    if organization_id:
        filters.append(CommissionRule.organization_id == organization_id)
    if scope_type:
        filters.append(CommissionRule.scope_type == get_enum_value(scope_type))
    if scope_id:
        filters.append(CommissionRule.scope_id == scope_id)
    if is_active is not None:
        filters.append(CommissionRule.is_active == is_active)

    query = select(CommissionRule)
    count_query = select(func.count(CommissionRule.id))
    if filters:
        query = query.where(and_(*filters))
        count_query = count_query.where(and_(*filters))

    total = (await db.execute(count_query)).scalar() or 0
    result = await db.execute(
        query.order_by(CommissionRule.created_at.desc()).offset(skip).limit(limit)
    )
    return CommissionRuleListResponse(
        items=[CommissionRuleResponse.model_validate(r) for r in result.scalars().all()],
        total=total,
        skip=skip,
        limit=limit,
    )


async def _get_rule(db, rule_id: UUID) -> CommissionRule:
    result = await db.execute(select(CommissionRule).where(CommissionRule.id == rule_id))
    rule = result.scalar_one_or_none()
    if not rule:
        raise NotFoundError("Commission rule not found", "COMMISSION_RULE_NOT_FOUND", {"rule_id": rule_id})
    return rule


@router.get("/{rule_id}", response_model=CommissionRuleResponse)
async def get_commission_rule(rule_id: UUID, db: DB):
    """Get commission rule by ID."""
    return await _get_rule(db, rule_id)


@router.patch("/{rule_id}/deactivate", response_model=CommissionRuleResponse)
async def deactivate_commission_rule(rule_id: UUID, db: DB):
    """Deactivate a rule. Rules are never deleted so past splits keep their reference."""
    rule = await _get_rule(db, rule_id)
    rule.is_active = False
    rule.updated_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(rule)

    logger.info(f"Deactivated commission rule {rule_id}")
    return rule
