"""
Step definition and execution models.
"""

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from types import MappingProxyType
from typing import Tuple, Optional, Dict, Mapping
from datetime import datetime
from enum import Enum

class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

class StepSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    tool: str
    args: Tuple[str, ...] = ()
    env: Dict[str, str] = Field(default={}, validate_default=True)
    timeout: Optional[float] = None
    allow_failure: bool = False

    @field_validator("env")
    @classmethod
    def freeze_env(cls, value: Dict[str, str]) -> Mapping[str, str]:
        return MappingProxyType(dict(value))

    @field_serializer("env")
    def dump_env(self, value: Mapping[str, str]) -> Dict[str, str]:
        return dict(value)

class StepResult(BaseModel):
    step_index: int
    name: str
    tool: str
    args: Tuple[str, ...] = ()
    status: StepStatus
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    allow_failure: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == StepStatus.SUCCEEDED

    @property
    def command(self) -> str:
        return " ".join((self.tool,) + tuple(self.args))
