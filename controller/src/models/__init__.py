from controller.src.models.step import (
    StepStatus,
    StepSpec,
    StepResult,
)
from controller.src.models.pipeline import (
    RunStatus,
    PipelineSpec,
    PipelineRun,
)

__all__ = [
    "StepStatus",
    "StepSpec",
    "StepResult",
    "RunStatus",
    "PipelineSpec",
    "PipelineRun",
]
