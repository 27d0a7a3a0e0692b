"""
Aggregate step output into a single run log.
"""

from typing import Iterable

from controller.src.models import PipelineRun, StepResult

def format_step_log(result: StepResult) -> str:
    """Render one step's captured output with a header line."""
    exit_code = "-" if result.exit_code is None else result.exit_code
    header = (
        f"--- step {result.step_index} ({result.name}): {result.status.value} "
        f"exit={exit_code} duration={result.duration:.1f}s"
    )
    if result.allow_failure:
        header += " [allow_failure]"

    lines = [header, f"$ {result.command}"]
    if result.stdout:
        lines.append(result.stdout.rstrip("\n"))
    if result.stderr:
        lines.append("[stderr]")
        lines.append(result.stderr.rstrip("\n"))
    return "\n".join(lines)

def collect_logs(results: Iterable[StepResult]) -> str:
    return "\n".join(format_step_log(r) for r in results)

def format_run_log(run: PipelineRun) -> str:
    """Full diagnostic log for a run, failed or not."""
    lines = [f"=== run {run.run_id} ({run.pipeline_name}): {run.status.value}"]
    if run.workdir:
        lines.append(f"workdir: {run.workdir}")

    body = collect_logs(run.results)
    if body:
        lines.append(body)

    if run.error:
        where = f" at step {run.failed_step}" if run.failed_step is not None else ""
        lines.append(f"error ({run.error_kind}{where}): {run.error}")

    return "\n".join(lines)
