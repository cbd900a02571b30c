"""
SQLAlchemy models for the workflow dispatch tables.

The service reads and writes these tables through the Supabase REST API; the
models are the source of truth for the schema bootstrap and for table names.
"""
from __future__ import annotations

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Identity, Index, Integer, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

RUN_STATUS_ACTIVE = "active"
RUN_STATUS_COMPLETED = "completed"

EXECUTION_STATE_PENDING = "PENDING"
EXECUTION_STATE_TRIGGER_FAILED = "TRIGGER_FAILED"
EXECUTION_STATE_SUPERSEDED = "SUPERSEDED"
EXECUTION_STATE_COMPLETED = "COMPLETED"

CONFIG_MAX_CONCURRENT = "max_concurrent"


class Workflow(Base):
    __tablename__ = "ca_workflows"

    workflow_id = Column(Text, primary_key=True)
    app_name = Column(Text, nullable=False, index=True)
    connection_id = Column(Text)
    environment = Column(Text, nullable=False, default="production")
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class WorkflowRun(Base):
    __tablename__ = "ca_workflow_runs"
    __table_args__ = (
        Index("uq_ca_workflow_runs_number", "workflow_id", "run_number", unique=True),
        # One active attempt per workflow lineage.
        Index(
            "uq_ca_workflow_runs_one_active",
            "workflow_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
        ),
        Index("ix_ca_workflow_runs_status", "status"),
    )

    id = Column(BigInteger, Identity(), primary_key=True)
    workflow_id = Column(Text, ForeignKey("ca_workflows.workflow_id", ondelete="CASCADE"), nullable=False)
    run_number = Column(Integer, nullable=False)
    status = Column(Text, nullable=False, default=RUN_STATUS_ACTIVE)
    execution_state = Column(Text)
    failure_summary = Column(Text)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))


class QueuedWorkflow(Base):
    __tablename__ = "ca_queued_workflows"

    id = Column(BigInteger, Identity(), primary_key=True)
    app_name = Column(Text, nullable=False)
    connection_id = Column(Text)
    payload = Column(JSONB, nullable=False)
    # Identity-backed so positions keep growing after cancels and drains.
    position = Column(BigInteger, Identity(), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ConfigEntry(Base):
    __tablename__ = "ca_config"

    key = Column(Text, primary_key=True)
    value = Column(JSONB, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


WORKFLOWS = Workflow.__tablename__
RUNS = WorkflowRun.__tablename__
QUEUE = QueuedWorkflow.__tablename__
CONFIG = ConfigEntry.__tablename__
