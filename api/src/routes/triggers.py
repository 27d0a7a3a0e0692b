"""
Trigger rule management.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.src.db.database import get_db
from api.src.models.pipeline import TriggerRuleCreate, TriggerRuleResponse
from controller.src.models.db import TriggerRule

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/triggers", tags=["triggers"])

async def _get_rule(trigger_id: str, db: AsyncSession) -> TriggerRule:
    rule = await db.get(TriggerRule, trigger_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Trigger not found")
    return rule

@router.post("", response_model=TriggerRuleResponse, status_code=201)
async def create_trigger(body: TriggerRuleCreate, db: AsyncSession = Depends(get_db)):
    """Register a trigger rule."""
    existing = await db.execute(select(TriggerRule).where(TriggerRule.name == body.name))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail=f"Trigger '{body.name}' already exists")

    rule = TriggerRule(**body.model_dump())
    db.add(rule)
    await db.commit()
    await db.refresh(rule)

    logger.info(f"Created trigger {rule.name} ({rule.branch_pattern} -> {rule.pipeline_ref})")
    return rule

@router.get("", response_model=List[TriggerRuleResponse])
async def list_triggers(db: AsyncSession = Depends(get_db)):
    """List trigger rules in matching order."""
    result = await db.execute(select(TriggerRule).order_by(TriggerRule.created_at))
    return result.scalars().all()

@router.get("/{trigger_id}", response_model=TriggerRuleResponse)
async def describe_trigger(trigger_id: str, db: AsyncSession = Depends(get_db)):
    return await _get_rule(trigger_id, db)

@router.delete("/{trigger_id}", status_code=204)
async def delete_trigger(trigger_id: str, db: AsyncSession = Depends(get_db)):
    rule = await _get_rule(trigger_id, db)
    await db.delete(rule)
    await db.commit()
    logger.info(f"Deleted trigger {rule.name}")
