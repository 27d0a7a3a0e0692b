"""
Pipeline engine - runs pipeline steps in order with fail-fast semantics.
"""

import logging
import os
import threading
import time
from datetime import datetime, timezone
from typing import Mapping, Optional

from controller.src.config import Settings
from controller.src.errors import (
    PipelineError,
    RunCancelled,
    SourceError,
    StepFailed,
    StepTimeout,
    UnresolvedVariable,
)
from controller.src.models import PipelineRun, PipelineSpec, RunStatus, StepResult, StepStatus
from controller.src.services.executor import OutputCallback, build_step_env, execute_step
from controller.src.services.status_reporter import StatusReporter
from controller.src.services.substitution import resolve_step

logger = logging.getLogger(__name__)

def _now() -> datetime:
    return datetime.now(timezone.utc)

def _step_error(result: StepResult) -> StepFailed:
    output = (result.stderr or result.stdout).strip()
    if result.status == StepStatus.TIMED_OUT:
        return StepTimeout(
            f"Step {result.step_index} ({result.name}) timed out: {result.command}",
            result.step_index,
            exit_code=result.exit_code,
            output=output,
        )
    return StepFailed(
        f"Step {result.step_index} ({result.name}) failed: {result.command} (exit={result.exit_code})",
        result.step_index,
        exit_code=result.exit_code,
        output=output,
    )

class PipelineEngine:
    """
    Executes a PipelineSpec against one working directory.

    State machine for a run: pending -> running -> succeeded | failed.
    Every variable is resolved before the first step starts, so an
    unresolved variable fails the run with zero steps executed.
    """

    def __init__(self, settings: Settings, reporter: Optional[StatusReporter] = None):
        self.settings = settings
        self.reporter = reporter

    def run(
        self,
        spec: PipelineSpec,
        context: Mapping[str, str],
        workdir: str,
        run: Optional[PipelineRun] = None,
        cancel_event: Optional[threading.Event] = None,
        echo: Optional[OutputCallback] = None,
    ) -> PipelineRun:
        """
        Execute a pipeline run.

        Pass `run` to continue a pending run created by the caller (the
        dispatcher creates runs before the source is fetched). The returned
        run is always finished; call raise_for_status() to turn a failure
        back into an exception.
        """
        created = run is None
        if created:
            run = PipelineRun()

        run.pipeline_name = spec.name
        run.substitutions = dict(context)
        run.workdir = workdir
        if created and self.reporter:
            self.reporter.run_created(run)

        logger.info(f"Starting pipeline run {run.run_id} ({spec.name}) with {len(spec.steps)} steps")

        try:
            resolved = [resolve_step(step, context, i) for i, step in enumerate(spec.steps)]
        except UnresolvedVariable as e:
            return self.fail(run, e)

        if not os.path.isdir(workdir):
            return self.fail(run, SourceError(f"Working directory does not exist: {workdir}"))

        run.status = RunStatus.RUNNING
        run.started_at = _now()
        self._report(run)

        deadline = None
        if spec.timeout is not None:
            deadline = time.monotonic() + spec.timeout

        for i, step in enumerate(spec.steps):
            if cancel_event is not None and cancel_event.is_set():
                return self.fail(run, RunCancelled(f"Run cancelled before step {i} ({step.name})", i))

            timeout = step.timeout or self.settings.step_timeout
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return self.fail(run, StepTimeout(
                        f"Pipeline timeout of {spec.timeout}s exhausted before step {i} ({step.name})", i
                    ))
                timeout = min(timeout, remaining)

            args, env = resolved[i]
            if self.reporter:
                self.reporter.step_started(run.run_id, i, step, args)

            result = execute_step(
                step_index=i,
                step=step,
                args=args,
                workdir=workdir,
                timeout=timeout,
                env=build_step_env(run.run_id, i, step.name, env),
                echo=echo,
                tail_lines=self.settings.log_tail_lines,
            )
            run.results.append(result)
            if self.reporter:
                self.reporter.step_finished(run.run_id, result)

            if result.succeeded:
                logger.info(f"Step {i} ({step.name}) succeeded in {result.duration:.1f}s")
                continue

            if step.allow_failure:
                logger.warning(
                    f"Step {i} ({step.name}) {result.status.value} (exit={result.exit_code}), "
                    f"continuing because allow_failure is set"
                )
                continue

            logger.error(f"Step {i} ({step.name}) {result.status.value} (exit={result.exit_code})")
            return self.fail(run, _step_error(result))

        run.status = RunStatus.SUCCEEDED
        run.finished_at = _now()
        self._report(run)

        logger.info(f"Pipeline run {run.run_id} finished with status: {run.status.value}")
        return run

    def fail(self, run: PipelineRun, exc: PipelineError) -> PipelineRun:
        """Finish a run as failed. Also used for errors raised before the engine starts."""
        run.mark_failed(exc, _now())
        self._report(run)
        logger.error(f"Pipeline run {run.run_id} failed: {exc}")
        return run

    def _report(self, run: PipelineRun):
        if self.reporter:
            self.reporter.update_run(run)
