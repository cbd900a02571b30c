from __future__ import annotations

from typing import Any

from app.config import Settings, settings as default_settings


def normalize_environment(environment: str | None) -> str:
    return "staging" if environment == "staging" else "production"


def build_run_payload(
    app_name: str,
    environment: str | None = None,
    *,
    connection_id: str | None = None,
    finder_instructions: str | None = None,
    test_all_actions: bool = False,
    previous_workflow_id: str | None = None,
    settings: Settings | None = None,
) -> dict[str, Any]:
    """Build the canonical create-app run request sent to the Integrator API."""
    cfg = settings or default_settings
    payload: dict[str, Any] = {
        "model_provider": cfg.run_model_provider,
        "force_run": True,
        "timeout_hours": cfg.run_timeout_hours,
        "env": normalize_environment(environment),
        "integrator_branch": cfg.run_integrator_branch,
        "app_name": app_name,
        "base_branch": cfg.run_base_branch,
        "labels": [],
        "slack_thread_id": "",
        "feature_flags": {
            "tracing_enable_workflow_span": False,
            "debug_logs": False,
            "max_parallel_agents": cfg.run_max_parallel_agents,
            "ecs_cpu_override": None,
            "ecs_memory_override": None,
        },
    }
    if previous_workflow_id:
        payload["previous_workflow_id"] = previous_workflow_id
    if connection_id:
        payload["connection_id"] = connection_id
    if finder_instructions:
        payload["finder_instructions"] = finder_instructions
    if test_all_actions:
        payload["test_all_actions"] = True
    return payload
