from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload
from typing import List, Optional

from api.src.db.database import get_db
from api.src.models.run import ManualRunRequest, PipelineRunResponse
from api.src.services.dispatch import get_dispatcher
from controller.src.models.db import PipelineRun, PipelineStep, TriggerRule
from controller.src.worker import RunDispatcher, RunRequest

router = APIRouter(prefix="/pipelines", tags=["pipelines"])

async def _load_run(run_id: str, db: AsyncSession) -> PipelineRun:
    query = (
        select(PipelineRun)
        .options(selectinload(PipelineRun.steps))
        .where(PipelineRun.id == run_id)
    )
    result = await db.execute(query)
    run = result.scalar_one_or_none()

    if not run:
        raise HTTPException(status_code=404, detail="Pipeline run not found")

    return run

@router.get("/runs", response_model=List[PipelineRunResponse])
async def list_runs(
    limit: int = 20,
    offset: int = 0,
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """List pipeline runs, most recent first."""
    query = (
        select(PipelineRun)
        .options(selectinload(PipelineRun.steps))
        .order_by(PipelineRun.created_at.desc())
    )

    if status:
        query = query.where(PipelineRun.status == status)

    query = query.limit(limit).offset(offset)

    result = await db.execute(query)
    return result.scalars().all()

@router.post("/runs", status_code=202)
async def start_run(body: ManualRunRequest, dispatcher: RunDispatcher = Depends(get_dispatcher)):
    """Start a run by hand with explicit substitution overrides."""
    request = RunRequest(
        pipeline_ref=body.pipeline_ref,
        overrides=dict(body.substitutions),
        workdir=body.workdir,
    )
    run_id = await run_in_threadpool(dispatcher.submit, request)
    return {"status": "queued", "run_id": run_id}

@router.get("/runs/{run_id}", response_model=PipelineRunResponse)
async def get_run(run_id: str, db: AsyncSession = Depends(get_db)):
    """Get a specific pipeline run."""
    return await _load_run(run_id, db)

@router.get("/runs/{run_id}/status")
async def get_run_status(
    run_id: str,
    db: AsyncSession = Depends(get_db),
    dispatcher: RunDispatcher = Depends(get_dispatcher),
):
    """Get the status of a pipeline run and its steps."""
    run = await _load_run(run_id, db)

    return {
        "run_id": run_id,
        "status": run.status,
        "active": run_id in dispatcher.active_runs(),
        "failed_step": run.failed_step,
        "steps": [
            {
                "name": step.name,
                "status": step.status,
                "order": step.step_order,
            }
            for step in sorted(run.steps, key=lambda s: s.step_order)
        ]
    }

@router.get("/runs/{run_id}/logs")
async def get_run_logs(run_id: str, db: AsyncSession = Depends(get_db)):
    """Get captured output for all steps in a pipeline run."""
    run = await _load_run(run_id, db)

    return {
        "run_id": run_id,
        "status": run.status,
        "error": run.error,
        "steps": [
            {
                "name": step.name,
                "status": step.status,
                "exit_code": step.exit_code,
                "stdout": step.stdout,
                "stderr": step.stderr,
                "started_at": step.started_at,
                "finished_at": step.finished_at,
            }
            for step in sorted(run.steps, key=lambda s: s.step_order)
        ]
    }

@router.post("/runs/{run_id}/cancel")
async def cancel_run(
    run_id: str,
    db: AsyncSession = Depends(get_db),
    dispatcher: RunDispatcher = Depends(get_dispatcher),
):
    """Cancel a run before its next step. Completed steps are not undone."""
    run = await _load_run(run_id, db)

    if not dispatcher.cancel(run_id):
        raise HTTPException(status_code=409, detail=f"Run is not active (status: {run.status})")

    return {"run_id": run_id, "status": "cancelling"}

@router.get("/stats")
async def get_pipeline_stats(db: AsyncSession = Depends(get_db)):
    """Get pipeline statistics."""
    # Count runs by status
    status_query = (
        select(PipelineRun.status, func.count(PipelineRun.id))
        .group_by(PipelineRun.status)
    )
    result = await db.execute(status_query)
    status_counts = {row[0]: row[1] for row in result.all()}

    trigger_count = (await db.execute(select(func.count(TriggerRule.id)))).scalar()
    step_count = (await db.execute(select(func.count(PipelineStep.id)))).scalar()

    return {
        "triggers": trigger_count,
        "runs": status_counts,
        "total_runs": sum(status_counts.values()),
        "total_steps": step_count,
    }
