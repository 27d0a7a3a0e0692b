"""
GitHub webhook endpoints.
"""

from fastapi import APIRouter, Request, HTTPException, Header, Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional
import logging

from api.src.config import Settings, get_settings
from api.src.db.database import get_db
from api.src.services.dispatch import get_dispatcher
from api.src.services.github import parse_webhook_payload, push_event_from_payload, verify_signature
from api.src.services.trigger import TriggerListener
from controller.src.models.db import TriggerRule
from controller.src.worker import RunDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

async def process_push_event(
    payload: dict,
    db: AsyncSession,
    dispatcher: RunDispatcher,
):
    """Process GitHub push event and start a pipeline run if a trigger matches."""

    data = parse_webhook_payload(payload)

    if data["deleted"]:
        return {"status": "skipped", "reason": "Branch deleted"}

    # Tag pushes never start runs
    if not data["is_branch"]:
        return {"status": "skipped", "reason": f"Not a branch push: {payload.get('ref', '')}"}

    event = push_event_from_payload(payload)

    if not event.commit_sha:
        logger.warning("No commit SHA in webhook payload")
        return {"status": "skipped", "reason": "No commit SHA"}

    result = await db.execute(select(TriggerRule).order_by(TriggerRule.created_at))
    rules = result.scalars().all()

    listener = TriggerListener(dispatcher)
    # Creating the run record touches the database synchronously
    run_id = await run_in_threadpool(listener.handle_push, event, rules)

    if run_id is None:
        return {"status": "skipped", "reason": f"No trigger matches branch '{event.branch}'"}

    return {"status": "queued", "run_id": run_id}

@router.post("/github")
async def github_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    dispatcher: RunDispatcher = Depends(get_dispatcher),
    x_hub_signature_256: Optional[str] = Header(None),
    x_github_event: Optional[str] = Header(None),
):
    """
    Receive GitHub webhook events.
    """
    # Get raw body for signature verification
    body = await request.body()

    if not verify_signature(body, x_hub_signature_256, settings.github_webhook_secret):
        raise HTTPException(status_code=401, detail="Invalid signature")

    # Parse JSON payload
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    # Handle different event types
    if x_github_event == "ping":
        return {"status": "pong", "message": "Webhook configured successfully"}

    if x_github_event == "push":
        return await process_push_event(payload, db, dispatcher)

    # Ignore other events
    return {
        "status": "ignored",
        "event": x_github_event,
        "message": f"Event type '{x_github_event}' not handled"
    }
