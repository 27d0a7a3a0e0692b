import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

class TriggerRuleBase(BaseModel):
    name: str
    branch_pattern: str
    pipeline_ref: str
    service_identity: str
    repository: Optional[str] = None

class TriggerRuleCreate(TriggerRuleBase):
    @field_validator("branch_pattern")
    @classmethod
    def pattern_must_compile(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"Invalid branch pattern: {e}")
        return value

    @field_validator("name", "pipeline_ref", "service_identity")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

class TriggerRuleResponse(TriggerRuleBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    created_at: Optional[datetime] = None
