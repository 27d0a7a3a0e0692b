from api.src.models.pipeline import TriggerRuleCreate, TriggerRuleResponse
from api.src.models.run import (
    ManualRunRequest,
    PipelineRunResponse,
    StepResponse,
)

__all__ = [
    "TriggerRuleCreate",
    "TriggerRuleResponse",
    "ManualRunRequest",
    "PipelineRunResponse",
    "StepResponse",
]
