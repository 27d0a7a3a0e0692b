import sys

import pytest

from controller.src.config import Settings
from controller.src.models import StepSpec

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'pushdeploy.db'}",
        workspace_root=str(tmp_path / "workspaces"),
        step_timeout=30,
        max_concurrent_runs=2,
    )

@pytest.fixture
def workdir(tmp_path) -> str:
    path = tmp_path / "work"
    path.mkdir()
    return str(path)

@pytest.fixture
def py_step():
    """Build a step that runs a Python snippet with the test interpreter."""

    def _make(code: str, name: str = "py", args=(), **kwargs) -> StepSpec:
        return StepSpec(name=name, tool=sys.executable, args=("-c", code) + tuple(args), **kwargs)

    return _make

class RecordingReporter:
    """Stands in for StatusReporter and keeps every call."""

    def __init__(self):
        self.calls = []

    def run_created(self, run, **kwargs):
        self.calls.append(("run_created", run.run_id))

    def update_run(self, run):
        self.calls.append(("update_run", run.status.value))

    def step_started(self, run_id, step_index, step, args):
        self.calls.append(("step_started", step_index))

    def step_finished(self, run_id, result):
        self.calls.append(("step_finished", result.step_index))

@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()
