"""
Run dispatcher - executes pipeline runs on a bounded pool of threads.

Each run gets its own working directory, so concurrent runs never share
files. There is no persistent queue: a run that cannot start waits in the
pool until a thread frees up.
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from controller.src.config import Settings
from controller.src.errors import InternalError, PipelineError, RunCancelled
from controller.src.models import PipelineRun
from controller.src.services.engine import PipelineEngine
from controller.src.services.pipeline_parser import load_pipeline_file
from controller.src.services.source import clone_repository
from controller.src.services.status_reporter import StatusReporter
from controller.src.services.substitution import build_context
from controller.src.services.workspace import claimed, create_workspace

logger = logging.getLogger(__name__)

@dataclass
class RunRequest:
    pipeline_ref: str
    overrides: Dict[str, str] = field(default_factory=dict)
    clone_url: Optional[str] = None
    commit_sha: Optional[str] = None
    branch: Optional[str] = None
    trigger_id: Optional[str] = None
    workdir: Optional[str] = None  # explicit directory instead of a fresh workspace

class RunDispatcher:
    def __init__(self, settings: Settings, reporter: Optional[StatusReporter] = None):
        self.settings = settings
        self.reporter = reporter
        self.engine = PipelineEngine(settings, reporter)
        self._pool = ThreadPoolExecutor(
            max_workers=settings.max_concurrent_runs,
            thread_name_prefix="pushdeploy-run",
        )
        self._lock = threading.Lock()
        self._cancel_events: Dict[str, threading.Event] = {}

    def submit(self, request: RunRequest) -> str:
        """Create a pending run and schedule it. Returns the run id."""
        run = PipelineRun()
        if self.reporter:
            self.reporter.run_created(
                run,
                trigger_id=request.trigger_id,
                commit_sha=request.commit_sha,
                branch=request.branch,
            )

        cancel_event = threading.Event()
        with self._lock:
            self._cancel_events[run.run_id] = cancel_event

        self._pool.submit(self._execute, run, request, cancel_event)
        logger.info(f"Pipeline run {run.run_id} created and queued")
        return run.run_id

    def cancel(self, run_id: str) -> bool:
        """Request cancellation. Takes effect before the run's next step."""
        with self._lock:
            event = self._cancel_events.get(run_id)
        if event is None:
            return False
        event.set()
        logger.info(f"Cancellation requested for run {run_id}")
        return True

    def active_runs(self) -> List[str]:
        with self._lock:
            return list(self._cancel_events)

    def shutdown(self, wait: bool = True):
        self._pool.shutdown(wait=wait)

    def execute(self, run: PipelineRun, request: RunRequest, cancel_event: threading.Event) -> PipelineRun:
        """Prepare the workspace, load the pipeline and run it. Blocks."""
        try:
            workdir = request.workdir or create_workspace(self.settings.workspace_root, run.run_id)
            run.workdir = os.path.abspath(workdir)

            with claimed(workdir):
                if cancel_event.is_set():
                    raise RunCancelled("Run cancelled before it started")

                if request.clone_url:
                    clone_repository(
                        request.clone_url,
                        request.commit_sha,
                        workdir,
                        timeout=self.settings.git_timeout,
                    )

                spec = load_pipeline_file(self._pipeline_path(request, workdir))
                context = build_context(spec.substitutions, request.overrides)
                return self.engine.run(spec, context, workdir, run=run, cancel_event=cancel_event)
        except PipelineError as e:
            return self.engine.fail(run, e)

    def _execute(self, run: PipelineRun, request: RunRequest, cancel_event: threading.Event) -> PipelineRun:
        logger.info(f"Received job for run {run.run_id}")
        try:
            return self.execute(run, request, cancel_event)
        except Exception as e:
            logger.exception(f"Failed to execute pipeline {run.run_id}: {e}")
            # The run row must not stay pending
            return self.engine.fail(run, InternalError(f"{type(e).__name__}: {e}"))
        finally:
            with self._lock:
                self._cancel_events.pop(run.run_id, None)

    @staticmethod
    def _pipeline_path(request: RunRequest, workdir: str) -> str:
        # Relative references point into the checked-out source when there is one
        if os.path.isabs(request.pipeline_ref) or not request.clone_url:
            return request.pipeline_ref
        return os.path.join(workdir, request.pipeline_ref)
