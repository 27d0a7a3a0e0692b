"""
pushdeploy command line - validate and run pipelines, list past runs.
"""

import logging
import sys
import threading
from typing import Dict, Optional, Tuple

import click

from controller.src.config import get_settings
from controller.src.errors import RunCancelled, SpecParseError, UnresolvedVariable, WorkspaceBusy
from controller.src.models import PipelineRun, RunStatus
from controller.src.services.engine import PipelineEngine
from controller.src.services.log_collector import format_step_log
from controller.src.services.pipeline_parser import load_pipeline_file
from controller.src.services.status_reporter import StatusReporter
from controller.src.services.substitution import build_context, referenced_variables
from controller.src.services.workspace import claimed

logger = logging.getLogger(__name__)

EXIT_SUCCEEDED = 0
EXIT_FAILED = 1
EXIT_SPEC_PARSE_ERROR = 3
EXIT_UNRESOLVED_VARIABLE = 4

def setup_logging(verbosity: int = 0):
    logging.basicConfig(
        level=logging.DEBUG if verbosity >= 1 else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

def exit_code_for(run: PipelineRun) -> int:
    if run.status == RunStatus.SUCCEEDED:
        return EXIT_SUCCEEDED
    if isinstance(run.exception, UnresolvedVariable):
        return EXIT_UNRESOLVED_VARIABLE
    if isinstance(run.exception, SpecParseError):
        return EXIT_SPEC_PARSE_ERROR
    return EXIT_FAILED

def _parse_overrides(values: Tuple[str, ...]) -> Dict[str, str]:
    overrides = {}
    for value in values:
        name, sep, sub = value.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=VALUE, got {value!r}", param_hint="--substitution")
        overrides[name] = sub
    return overrides

def _load(path: str):
    try:
        return load_pipeline_file(path)
    except SpecParseError as e:
        click.echo(f"[ERROR] {e}", err=True)
        sys.exit(EXIT_SPEC_PARSE_ERROR)

@click.group()
@click.option("-v", "--verbose", count=True, help="Raise log level to DEBUG.")
def cli(verbose: int):
    """pushdeploy - run build-and-deploy pipelines."""
    setup_logging(verbose)

@cli.command()
@click.argument("pipeline_file", type=click.Path(dir_okay=False))
def validate(pipeline_file: str):
    """Load a pipeline file and report its steps and variables."""
    spec = _load(pipeline_file)

    click.echo(f"# {spec.name}")
    for i, step in enumerate(spec.steps):
        flags = " [allow_failure]" if step.allow_failure else ""
        click.echo(f"- step {i}: {step.name} -> {step.tool}{flags}")

    referenced = referenced_variables(spec)
    click.echo("## Substitutions")
    if not referenced and not spec.substitutions:
        click.echo("- (none)")
    for name in sorted(referenced | set(spec.substitutions)):
        if name in spec.substitutions:
            click.echo(f"- {name}={spec.substitutions[name]}")
        else:
            click.echo(f"- {name} (no default, must be supplied)")

@cli.command()
@click.argument("pipeline_file", type=click.Path(dir_okay=False))
@click.option(
    "-s",
    "--substitution",
    "substitutions",
    multiple=True,
    metavar="NAME=VALUE",
    help="Override a substitution variable. Repeatable.",
)
@click.option(
    "-w",
    "--workdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help="Working directory shared by the steps (default: current directory).",
)
@click.option("--stream/--no-stream", default=False, help="Echo step output while it runs.")
@click.option("--record/--no-record", default=True, help="Record the run in the run history database.")
@click.option("--step-timeout", type=float, default=None, help="Default per-step timeout in seconds.")
def run(
    pipeline_file: str,
    substitutions: Tuple[str, ...],
    workdir: str,
    stream: bool,
    record: bool,
    step_timeout: Optional[float],
):
    """Run a pipeline once with explicit substitution overrides."""
    overrides = _parse_overrides(substitutions)
    spec = _load(pipeline_file)

    settings = get_settings()
    if step_timeout is not None:
        settings = settings.model_copy(update={"step_timeout": step_timeout})

    reporter = StatusReporter.from_url(settings.database_url) if record else None
    engine = PipelineEngine(settings, reporter)

    pipeline_run = PipelineRun()
    overrides.setdefault("BUILD_ID", pipeline_run.run_id)
    context = build_context(spec.substitutions, overrides)
    if reporter:
        reporter.run_created(pipeline_run)

    echo = None
    if stream:
        def echo(stream_name: str, line: str):
            click.echo(line, nl=False, err=(stream_name == "stderr"))

    try:
        with claimed(workdir):
            pipeline_run = engine.run(
                spec, context, workdir, run=pipeline_run, cancel_event=threading.Event(), echo=echo
            )
    except WorkspaceBusy as e:
        pipeline_run = engine.fail(pipeline_run, e)
    except KeyboardInterrupt:
        step = len(pipeline_run.results)
        pipeline_run = engine.fail(pipeline_run, RunCancelled(f"Interrupted during step {step}", step))

    for result in pipeline_run.results:
        click.echo(f"[{result.status.value}] step {result.step_index} {result.name} ({result.duration:.1f}s)")

    if pipeline_run.status == RunStatus.FAILED:
        if pipeline_run.failed_step is not None and pipeline_run.failed_step < len(pipeline_run.results):
            click.echo(format_step_log(pipeline_run.results[pipeline_run.failed_step]), err=True)
        click.echo(f"[ERROR] {pipeline_run.error}", err=True)

    click.echo(f"Run {pipeline_run.run_id}: {pipeline_run.status.value}")
    sys.exit(exit_code_for(pipeline_run))

@cli.command()
@click.option("-n", "--limit", type=int, default=20, show_default=True)
@click.option("--status", type=click.Choice([s.value for s in RunStatus]), default=None)
def runs(limit: int, status: Optional[str]):
    """List past runs, most recent first."""
    reporter = StatusReporter.from_url(get_settings().database_url)
    rows = reporter.list_runs(limit=limit, status=status)
    if not rows:
        click.echo("(no runs)")
        return

    for r in rows:
        where = f" step={r['failed_step']}" if r["failed_step"] is not None else ""
        error = f" {r['error_kind']}{where}" if r["error_kind"] else ""
        branch = f" {r['branch']}@{(r['commit_sha'] or '')[:7]}" if r["branch"] else ""
        click.echo(f"{r['id']}  {r['status']:<9} {r['pipeline_name'] or '-'}{branch}{error}")

@cli.command()
@click.option("--host", default=None, help="Bind address (default from API_HOST).")
@click.option("--port", type=int, default=None, help="Port (default from API_PORT).")
def serve(host: Optional[str], port: Optional[int]):
    """Start the webhook and trigger management service."""
    import uvicorn

    from api.src.config import get_settings as get_api_settings

    api_settings = get_api_settings()
    uvicorn.run(
        "api.src.main:app",
        host=host or api_settings.api_host,
        port=port or api_settings.api_port,
    )

if __name__ == "__main__":
    cli()
