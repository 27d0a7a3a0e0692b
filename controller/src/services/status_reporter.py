"""
Report pipeline and step status to database.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from sqlalchemy import create_engine, update, select
from sqlalchemy.orm import sessionmaker, selectinload

from controller.src.models import PipelineRun, StepResult, StepSpec
from controller.src.models.db import Base, PipelineRun as RunRow, PipelineStep as StepRow

logger = logging.getLogger(__name__)

def _now() -> datetime:
    return datetime.now(timezone.utc)

class StatusReporter:
    """Persists run and step transitions. Used synchronously from run threads."""

    def __init__(self, session_factory: sessionmaker):
        self.SessionLocal = session_factory

    @classmethod
    def from_url(cls, database_url: str) -> "StatusReporter":
        connect_args = {}
        if database_url.startswith("sqlite"):
            # Runs report from dispatcher threads
            connect_args["check_same_thread"] = False
        engine = create_engine(database_url, connect_args=connect_args)
        Base.metadata.create_all(engine)
        return cls(sessionmaker(bind=engine))

    def run_created(
        self,
        run: PipelineRun,
        trigger_id: Optional[str] = None,
        commit_sha: Optional[str] = None,
        branch: Optional[str] = None,
    ):
        with self.SessionLocal() as session:
            session.add(RunRow(
                id=run.run_id,
                trigger_id=trigger_id,
                pipeline_name=run.pipeline_name,
                status=run.status.value,
                commit_sha=commit_sha,
                branch=branch,
                substitutions=dict(run.substitutions),
                workdir=run.workdir,
            ))
            session.commit()
        logger.debug(f"Recorded run {run.run_id}")

    def update_run(self, run: PipelineRun):
        """Write the run's current status, context and failure details."""
        with self.SessionLocal() as session:
            values = {
                "status": run.status.value,
                "pipeline_name": run.pipeline_name,
                "substitutions": dict(run.substitutions),
                "workdir": run.workdir,
                "error_kind": run.error_kind,
                "error": run.error,
                "failed_step": run.failed_step,
                "updated_at": _now(),
            }

            if run.started_at:
                values["started_at"] = run.started_at
            if run.finished_at:
                values["finished_at"] = run.finished_at

            session.execute(
                update(RunRow)
                .where(RunRow.id == run.run_id)
                .values(**values)
            )
            session.commit()
            logger.info(f"Updated run {run.run_id} status to {run.status.value}")

    def step_started(self, run_id: str, step_index: int, step: StepSpec, args: List[str]):
        with self.SessionLocal() as session:
            session.add(StepRow(
                run_id=run_id,
                name=step.name,
                tool=step.tool,
                args=list(args),
                status="running",
                step_order=step_index,
                allow_failure=step.allow_failure,
                started_at=_now(),
            ))
            session.commit()

    def step_finished(self, run_id: str, result: StepResult):
        with self.SessionLocal() as session:
            session.execute(
                update(StepRow)
                .where(StepRow.run_id == run_id)
                .where(StepRow.step_order == result.step_index)
                .values(
                    status=result.status.value,
                    exit_code=result.exit_code,
                    stdout=result.stdout,
                    stderr=result.stderr,
                    duration=result.duration,
                    finished_at=result.finished_at,
                )
            )
            session.commit()
            logger.debug(f"Updated step {result.step_index} of run {run_id} to {result.status.value}")

    def list_runs(self, limit: int = 20, status: Optional[str] = None) -> List[Dict[str, Any]]:
        """Most recent runs first."""
        with self.SessionLocal() as session:
            query = select(RunRow).order_by(RunRow.created_at.desc(), RunRow.started_at.desc())
            if status:
                query = query.where(RunRow.status == status)
            runs = session.execute(query.limit(limit)).scalars().all()

            return [
                {
                    "id": r.id,
                    "pipeline_name": r.pipeline_name,
                    "status": r.status,
                    "branch": r.branch,
                    "commit_sha": r.commit_sha,
                    "error_kind": r.error_kind,
                    "failed_step": r.failed_step,
                    "started_at": r.started_at,
                    "finished_at": r.finished_at,
                }
                for r in runs
            ]

    def get_run_steps(self, run_id: str) -> List[Dict[str, Any]]:
        """Get all steps for a run."""
        with self.SessionLocal() as session:
            run = session.execute(
                select(RunRow)
                .options(selectinload(RunRow.steps))
                .where(RunRow.id == run_id)
            ).scalar_one_or_none()
            if run is None:
                return []

            return [
                {
                    "order": s.step_order,
                    "name": s.name,
                    "tool": s.tool,
                    "args": s.args,
                    "status": s.status,
                    "exit_code": s.exit_code,
                }
                for s in run.steps
            ]
