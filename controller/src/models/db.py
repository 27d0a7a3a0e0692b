"""
Database models shared by the controller (sync writer) and the API (async reader).
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text, Float, Boolean, JSON
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from datetime import datetime, timezone
import uuid

Base = declarative_base()

def _uuid() -> str:
    return str(uuid.uuid4())

# Python-side timestamps keep sub-second order for rule matching and run listings
def _now() -> datetime:
    return datetime.now(timezone.utc)

class TriggerRule(Base):
    __tablename__ = "trigger_rules"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False, unique=True)
    branch_pattern = Column(String(500), nullable=False)
    pipeline_ref = Column(String(1000), nullable=False)
    service_identity = Column(String(255), nullable=False)
    repository = Column(String(255))
    created_at = Column(DateTime, default=_now)

class PipelineRun(Base):
    __tablename__ = "pipeline_runs"

    id = Column(String(36), primary_key=True, default=_uuid)
    trigger_id = Column(String(36), ForeignKey("trigger_rules.id", ondelete="SET NULL"))
    pipeline_name = Column(String(255))
    status = Column(String(50), default="pending")
    commit_sha = Column(String(64))
    branch = Column(String(255))
    substitutions = Column(JSON)
    workdir = Column(String(1000))
    error_kind = Column(String(50))
    error = Column(Text)
    failed_step = Column(Integer)
    started_at = Column(DateTime)
    finished_at = Column(DateTime)
    created_at = Column(DateTime, default=_now)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    steps = relationship("PipelineStep", back_populates="run", order_by="PipelineStep.step_order")

class PipelineStep(Base):
    __tablename__ = "pipeline_steps"

    id = Column(String(36), primary_key=True, default=_uuid)
    run_id = Column(String(36), ForeignKey("pipeline_runs.id", ondelete="CASCADE"))
    name = Column(String(255), nullable=False)
    tool = Column(String(255), nullable=False)
    args = Column(JSON, nullable=False)
    status = Column(String(50), default="running")
    step_order = Column(Integer, nullable=False)
    exit_code = Column(Integer)
    allow_failure = Column(Boolean, default=False)
    stdout = Column(Text)
    stderr = Column(Text)
    duration = Column(Float)
    started_at = Column(DateTime)
    finished_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())

    run = relationship("PipelineRun", back_populates="steps")
