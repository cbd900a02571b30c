from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class TriggerRequest(BaseModel):
    app_name: str = Field(min_length=1)
    connection_id: str | None = None
    environment: str | None = None
    finder_instructions: str | None = None
    test_all_actions: bool = False


class RetryRequest(BaseModel):
    app_name: str = Field(min_length=1)
    workflow_id: str = Field(min_length=1)
    connection_id: str | None = None
    environment: str | None = None


class ConfigUpdate(BaseModel):
    key: str = Field(min_length=1)
    value: Any


class DetailRequest(BaseModel):
    workflow_id: str = Field(min_length=1)
    run_number: Any


class CompleteRunRequest(BaseModel):
    workflow_id: str = Field(min_length=1)
    run_number: int | None = None
    execution_state: str = "COMPLETED"
    failure_summary: str | None = None


class CancelQueuedRequest(BaseModel):
    position: int
