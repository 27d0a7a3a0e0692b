from pydantic import BaseModel, ConfigDict
from typing import Optional, List, Dict
from datetime import datetime

class StepResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    tool: str
    args: List[str]
    status: str
    step_order: int
    exit_code: Optional[int] = None
    allow_failure: bool = False
    duration: Optional[float] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

class PipelineRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    pipeline_name: Optional[str] = None
    status: str
    trigger_id: Optional[str] = None
    commit_sha: Optional[str] = None
    branch: Optional[str] = None
    substitutions: Optional[Dict[str, str]] = None
    workdir: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None
    failed_step: Optional[int] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    steps: List[StepResponse] = []

class ManualRunRequest(BaseModel):
    pipeline_ref: str
    substitutions: Dict[str, str] = {}
    workdir: Optional[str] = None
