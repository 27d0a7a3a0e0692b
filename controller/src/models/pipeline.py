"""
Pipeline definition and run models.
"""

import uuid
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_serializer, field_validator

from controller.src.errors import PipelineError
from controller.src.models.step import StepResult, StepSpec

class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

class PipelineSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = "Unnamed Pipeline"
    steps: Tuple[StepSpec, ...]
    substitutions: Dict[str, str] = Field(default={}, validate_default=True)
    timeout: Optional[float] = None

    @field_validator("substitutions")
    @classmethod
    def freeze_substitutions(cls, value: Dict[str, str]) -> Mapping[str, str]:
        return MappingProxyType(dict(value))

    @field_serializer("substitutions")
    def dump_substitutions(self, value: Mapping[str, str]) -> Dict[str, str]:
        return dict(value)

class PipelineRun(BaseModel):
    """
    One execution attempt of a PipelineSpec.

    Runs are never resumed. Retrying means building a new PipelineRun.
    """

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    pipeline_name: str = "Unnamed Pipeline"
    status: RunStatus = RunStatus.PENDING
    substitutions: Dict[str, str] = {}
    results: List[StepResult] = []
    workdir: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None
    failed_step: Optional[int] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    _exception: Optional[PipelineError] = PrivateAttr(default=None)

    @property
    def exception(self) -> Optional[PipelineError]:
        return self._exception

    @property
    def finished(self) -> bool:
        return self.status in (RunStatus.SUCCEEDED, RunStatus.FAILED)

    def mark_failed(self, exc: PipelineError, finished_at: datetime):
        self.status = RunStatus.FAILED
        self.error_kind = exc.kind
        self.error = str(exc)
        self.failed_step = exc.step_index
        self.finished_at = finished_at
        self._exception = exc

    def raise_for_status(self):
        """Re-raise the error that failed this run, if any."""
        if self._exception is not None:
            raise self._exception
