"""
Error taxonomy for pipeline loading and execution.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for everything that halts a pipeline run."""

    kind = "pipeline_error"

    def __init__(self, message: str, step_index: Optional[int] = None):
        super().__init__(message)
        self.step_index = step_index


class SpecParseError(PipelineError):
    """Raised when a pipeline definition is malformed. Nothing is loaded."""

    kind = "spec_parse_error"


class UnresolvedVariable(PipelineError):
    """Raised when a template references a variable with no value."""

    kind = "unresolved_variable"

    def __init__(self, name: str, step_index: Optional[int] = None):
        where = f" in step {step_index}" if step_index is not None else ""
        super().__init__(f"Unresolved substitution variable '${{{name}}}'{where}", step_index)
        self.name = name


class StepFailed(PipelineError):
    """A required step exited with a non-zero status."""

    kind = "step_failed"

    def __init__(self, message: str, step_index: int, exit_code: Optional[int] = None, output: str = ""):
        super().__init__(message, step_index)
        self.exit_code = exit_code
        self.output = output


class StepTimeout(StepFailed):
    """A step ran past its allotted time and was killed."""

    kind = "step_timeout"


class RunCancelled(PipelineError):
    kind = "cancelled"


class SourceError(PipelineError):
    """The pushed source could not be fetched into the workspace."""

    kind = "source_error"


class WorkspaceBusy(PipelineError):
    """Another active run already owns the working directory."""

    kind = "workspace_busy"


class InternalError(PipelineError):
    """An unexpected error stopped the run outside the pipeline's own steps."""

    kind = "internal_error"
