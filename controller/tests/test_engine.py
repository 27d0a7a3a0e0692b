import threading

import pytest

from controller.src.errors import RunCancelled, StepFailed, StepTimeout, UnresolvedVariable
from controller.src.models import PipelineRun, PipelineSpec, RunStatus, StepStatus
from controller.src.services.engine import PipelineEngine
from controller.src.services.substitution import build_context

PRINT_ARG = "import sys; print(sys.argv[1])"

def test_all_steps_succeed(settings, workdir, reporter, py_step):
    spec = PipelineSpec(name="hello", steps=(
        py_step("print('one')", name="one"),
        py_step("print('two')", name="two"),
    ))

    run = PipelineEngine(settings, reporter).run(spec, build_context({}), workdir)

    assert run.status == RunStatus.SUCCEEDED
    assert [r.stdout for r in run.results] == ["one\n", "two\n"]
    assert run.error is None
    assert run.started_at is not None and run.finished_at is not None
    assert reporter.calls == [
        ("run_created", run.run_id),
        ("update_run", "running"),
        ("step_started", 0),
        ("step_finished", 0),
        ("step_started", 1),
        ("step_finished", 1),
        ("update_run", "succeeded"),
    ]

@pytest.mark.parametrize("failing", [0, 1, 3])
def test_fail_fast_at_step(settings, workdir, py_step, failing):
    steps = tuple(
        py_step("import sys; sys.exit(3)" if i == failing else "print('ok')", name=f"s{i}")
        for i in range(4)
    )

    run = PipelineEngine(settings).run(PipelineSpec(steps=steps), build_context({}), workdir)

    assert run.status == RunStatus.FAILED
    assert len(run.results) == failing + 1
    assert run.results[-1].exit_code == 3
    assert run.failed_step == failing
    assert run.error_kind == "step_failed"

    with pytest.raises(StepFailed) as excinfo:
        run.raise_for_status()
    assert excinfo.value.exit_code == 3

def test_failed_step_output_is_kept(settings, workdir, py_step):
    spec = PipelineSpec(steps=(
        py_step("import sys; sys.stderr.write('bad config\\n'); sys.exit(1)"),
    ))

    run = PipelineEngine(settings).run(spec, build_context({}), workdir)

    assert run.results[0].stderr == "bad config\n"
    assert run.exception.output == "bad config"

def test_unresolved_variable_runs_no_steps(settings, workdir, reporter, py_step):
    spec = PipelineSpec(steps=(
        py_step("print('fetch')"),
        py_step(PRINT_ARG, args=["${PROJECT_ID}"]),
    ))

    run = PipelineEngine(settings, reporter).run(spec, build_context({}), workdir)

    assert run.status == RunStatus.FAILED
    assert run.results == []
    assert run.error_kind == "unresolved_variable"
    assert run.failed_step == 1
    assert ("step_started", 0) not in reporter.calls
    with pytest.raises(UnresolvedVariable):
        run.raise_for_status()

def test_override_reaches_step_args(settings, workdir, py_step):
    spec = PipelineSpec(
        substitutions={"_HUGO_VERSION": "0.90.0"},
        steps=(py_step(PRINT_ARG, args=["v${_HUGO_VERSION}"]),),
    )
    context = build_context(spec.substitutions, {"_HUGO_VERSION": "0.96.0"})

    run = PipelineEngine(settings).run(spec, context, workdir)

    assert run.status == RunStatus.SUCCEEDED
    assert run.results[0].stdout == "v0.96.0\n"
    assert run.results[0].args[-1] == "v0.96.0"
    assert run.substitutions["_HUGO_VERSION"] == "0.96.0"

def test_allow_failure_continues(settings, workdir, py_step):
    spec = PipelineSpec(steps=(
        py_step("import sys; sys.exit(1)", name="lint", allow_failure=True),
        py_step("print('deployed')", name="deploy"),
    ))

    run = PipelineEngine(settings).run(spec, build_context({}), workdir)

    assert run.status == RunStatus.SUCCEEDED
    assert run.results[0].status == StepStatus.FAILED
    assert run.results[1].stdout == "deployed\n"

def test_step_timeout(settings, workdir, py_step):
    spec = PipelineSpec(steps=(
        py_step("import time; time.sleep(30)", name="hang", timeout=0.5),
        py_step("print('never')"),
    ))

    run = PipelineEngine(settings).run(spec, build_context({}), workdir)

    assert run.status == RunStatus.FAILED
    assert run.error_kind == "step_timeout"
    assert len(run.results) == 1
    assert run.results[0].status == StepStatus.TIMED_OUT
    assert run.results[0].duration < 10
    with pytest.raises(StepTimeout):
        run.raise_for_status()

def test_pipeline_timeout_caps_steps(settings, workdir, py_step):
    spec = PipelineSpec(timeout=0.5, steps=(
        py_step("import time; time.sleep(30)"),
    ))

    run = PipelineEngine(settings).run(spec, build_context({}), workdir)

    assert run.error_kind == "step_timeout"
    assert run.results[0].duration < 10

def test_cancel_before_start(settings, workdir, py_step):
    cancel = threading.Event()
    cancel.set()
    spec = PipelineSpec(steps=(py_step("print('x')"),))

    run = PipelineEngine(settings).run(spec, build_context({}), workdir, cancel_event=cancel)

    assert run.status == RunStatus.FAILED
    assert run.error_kind == "cancelled"
    assert run.results == []

def test_cancel_between_steps(settings, workdir, reporter, py_step):
    cancel = threading.Event()

    class CancellingReporter(type(reporter)):
        def step_finished(self, run_id, result):
            super().step_finished(run_id, result)
            cancel.set()

    spec = PipelineSpec(steps=(py_step("print('a')"), py_step("print('b')")))

    run = PipelineEngine(settings, CancellingReporter()).run(
        spec, build_context({}), workdir, cancel_event=cancel
    )

    assert len(run.results) == 1
    assert run.failed_step == 1
    with pytest.raises(RunCancelled):
        run.raise_for_status()

def test_repeated_runs_are_independent(settings, tmp_path, py_step):
    spec = PipelineSpec(steps=(
        py_step("import os; print(os.listdir('.')); open('marker', 'w').close()"),
    ))
    engine = PipelineEngine(settings)
    (tmp_path / "a").mkdir()
    (tmp_path / "b").mkdir()

    first = engine.run(spec, build_context({}), str(tmp_path / "a"))
    second = engine.run(spec, build_context({}), str(tmp_path / "b"))

    assert first.run_id != second.run_id
    assert first.status == second.status == RunStatus.SUCCEEDED
    assert [r.stdout for r in first.results] == [r.stdout for r in second.results]

def test_step_environment(settings, workdir, py_step):
    code = (
        "import os; "
        "print(os.environ['PUSHDEPLOY_STEP_INDEX'], os.environ['PUSHDEPLOY_STEP_NAME'], os.environ['TARGET'])"
    )
    spec = PipelineSpec(steps=(
        py_step("print('first')"),
        py_step(code, name="deploy", env={"TARGET": "${_SITE}"}),
    ))

    run = PipelineEngine(settings).run(spec, build_context({"_SITE": "docs"}), workdir)

    assert run.results[1].stdout == "1 deploy docs\n"

def test_existing_run_is_continued(settings, workdir, reporter, py_step):
    run = PipelineRun()
    spec = PipelineSpec(name="resumed", steps=(py_step("print('x')"),))

    result = PipelineEngine(settings, reporter).run(spec, build_context({}), workdir, run=run)

    assert result is run
    assert run.pipeline_name == "resumed"
    assert ("run_created", run.run_id) not in reporter.calls

def test_missing_workdir(settings, tmp_path, py_step):
    spec = PipelineSpec(steps=(py_step("print('x')"),))

    run = PipelineEngine(settings).run(spec, build_context({}), str(tmp_path / "gone"))

    assert run.error_kind == "source_error"
    assert run.results == []
