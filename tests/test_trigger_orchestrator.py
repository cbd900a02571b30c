from __future__ import annotations

from types import SimpleNamespace

import pytest

from app.core.exceptions import StoreFailure, UpstreamFailure
from app.services import trigger_orchestrator
from app.services.admission import Queued, Rejected
from app.services.trigger_orchestrator import (
    TriggerFailed,
    TriggerOrchestrator,
    TriggerSucceeded,
    failure_workflow_id,
    is_failure_id,
)
from tests.fakes import InMemoryStore


def test_failure_ids_use_their_own_namespace():
    assert failure_workflow_id(0).startswith("fail_0_")
    assert failure_workflow_id(36 ** 2).startswith("fail_100_")
    assert failure_workflow_id(0) != failure_workflow_id(0)
    assert is_failure_id(failure_workflow_id())
    assert not is_failure_id("wf_123")


@pytest.mark.asyncio
async def test_failures_in_the_same_millisecond_are_both_recorded(store, upstream, monkeypatch):
    monkeypatch.setattr(trigger_orchestrator, "time", SimpleNamespace(time=lambda: 1_700_000_000.0))
    upstream.reply(503, {"message": "maintenance"}).reply(503, {"message": "maintenance"})
    orchestrator = TriggerOrchestrator(store, upstream.client())

    first = await orchestrator.trigger("notion")
    second = await orchestrator.trigger("github")

    assert first.failure_id != second.failure_id
    failed = [r for r in store.tables["ca_workflow_runs"] if r["execution_state"] == "TRIGGER_FAILED"]
    assert sorted(r["workflow_id"] for r in failed) == sorted([first.failure_id, second.failure_id])
    assert len(store.tables["ca_workflows"]) == 2


@pytest.mark.asyncio
async def test_successful_trigger_records_workflow_and_active_run(store, upstream):
    upstream.accept("wf_1")
    orchestrator = TriggerOrchestrator(store, upstream.client())

    outcome = await orchestrator.trigger("notion", connection_id="conn_1", environment="staging")

    assert outcome == TriggerSucceeded(workflow_id="wf_1", run_number=1, app_name="notion")
    assert store.tables["ca_workflows"] == [
        {
            "workflow_id": "wf_1",
            "app_name": "notion",
            "connection_id": "conn_1",
            "environment": "staging",
            "created_at": store.tables["ca_workflows"][0]["created_at"],
        }
    ]
    (run,) = store.runs_for("wf_1")
    assert run["status"] == "active"
    assert run["execution_state"] == "PENDING"
    assert run["run_number"] == 1
    assert run["started_at"]

    sent = upstream.payloads()[0]
    assert sent["app_name"] == "notion"
    assert sent["env"] == "staging"
    assert sent["connection_id"] == "conn_1"


@pytest.mark.asyncio
async def test_upstream_run_number_is_used(store, upstream):
    upstream.accept("wf_1", run_number=4)
    outcome = await TriggerOrchestrator(store, upstream.client()).trigger("notion")
    assert outcome.run_number == 4


@pytest.mark.asyncio
async def test_rejected_and_queued_never_reach_upstream(upstream):
    store = InMemoryStore(max_concurrent=1)
    store.add_active_run("wf_1", "notion")
    orchestrator = TriggerOrchestrator(store, upstream.client())

    assert isinstance(await orchestrator.trigger("notion"), Rejected)
    queued = await orchestrator.trigger("github", finder_instructions="only issues")
    assert isinstance(queued, Queued)
    assert upstream.requests == []
    assert store.tables["ca_queued_workflows"][0]["payload"]["finder_instructions"] == "only issues"


@pytest.mark.asyncio
async def test_upstream_rejection_is_recorded_as_trigger_failed(store, upstream):
    upstream.reply(500, {"error": "integrator exploded"})
    outcome = await TriggerOrchestrator(store, upstream.client()).trigger("notion")

    assert isinstance(outcome, TriggerFailed)
    assert outcome.details == "integrator exploded"
    assert outcome.error.http_status == 500
    assert is_failure_id(outcome.failure_id)

    (workflow,) = store.tables["ca_workflows"]
    assert workflow["workflow_id"] == outcome.failure_id
    (run,) = store.runs_for(outcome.failure_id)
    assert run["status"] == "completed"
    assert run["execution_state"] == "TRIGGER_FAILED"
    assert run["failure_summary"] == "integrator exploded"
    assert store.active_runs() == []


@pytest.mark.asyncio
async def test_upstream_timeout_is_recorded_as_trigger_failed(store, upstream):
    upstream.timeout()
    outcome = await TriggerOrchestrator(store, upstream.client()).trigger("notion")

    assert isinstance(outcome, TriggerFailed)
    (run,) = store.runs_for(outcome.failure_id)
    assert run["execution_state"] == "TRIGGER_FAILED"


@pytest.mark.asyncio
async def test_failure_bookkeeping_errors_do_not_change_the_outcome(store, upstream):
    upstream.reply(502, {"message": "bad gateway"})
    store.fail_next("insert", "ca_workflows")

    outcome = await TriggerOrchestrator(store, upstream.client()).trigger("notion")

    assert isinstance(outcome, TriggerFailed)
    assert outcome.details == "bad gateway"
    assert store.tables["ca_workflow_runs"] == []


@pytest.mark.asyncio
async def test_primary_write_failure_after_success_propagates(store, upstream):
    upstream.accept("wf_1")
    store.fail_next("insert", "ca_workflow_runs")
    with pytest.raises(StoreFailure):
        await TriggerOrchestrator(store, upstream.client()).trigger("notion")


@pytest.mark.asyncio
async def test_retry_with_same_id_adds_next_run_without_new_workflow(store, upstream):
    store.add_active_run("wf_1", "notion", run_number=1)
    store.tables["ca_workflow_runs"][0]["status"] = "completed"
    store.tables["ca_workflow_runs"].append(
        {"id": 99, "workflow_id": "wf_1", "run_number": 2, "status": "completed"}
    )
    upstream.accept("wf_1")

    outcome = await TriggerOrchestrator(store, upstream.client()).retry("notion", "wf_1")

    assert outcome == TriggerSucceeded(workflow_id="wf_1", run_number=3, app_name="notion")
    assert len(store.tables["ca_workflows"]) == 1
    assert [r["run_number"] for r in store.runs_for("wf_1")] == [1, 2, 3]
    assert upstream.payloads()[0]["previous_workflow_id"] == "wf_1"


@pytest.mark.asyncio
async def test_retry_with_new_id_creates_workflow(store, upstream):
    store.add_active_run("wf_1", "notion")
    store.tables["ca_workflow_runs"][0]["status"] = "completed"
    upstream.accept("wf_2")

    outcome = await TriggerOrchestrator(store, upstream.client()).retry(
        "notion", "wf_1", connection_id="conn_9", environment="staging"
    )

    assert outcome.workflow_id == "wf_2"
    assert outcome.run_number == 1
    new_workflow = next(w for w in store.tables["ca_workflows"] if w["workflow_id"] == "wf_2")
    assert new_workflow["app_name"] == "notion"
    assert new_workflow["connection_id"] == "conn_9"
    assert new_workflow["environment"] == "staging"


@pytest.mark.asyncio
async def test_retry_of_a_failed_trigger_starts_fresh(store, upstream):
    upstream.reply(503, {"message": "maintenance"}).accept("wf_5")
    orchestrator = TriggerOrchestrator(store, upstream.client())
    failed = await orchestrator.trigger("notion", connection_id="conn_1")

    outcome = await orchestrator.retry("notion", failed.failure_id, connection_id="conn_1")

    assert outcome == TriggerSucceeded(workflow_id="wf_5", run_number=1, app_name="notion")
    assert "previous_workflow_id" not in upstream.payloads()[-1]
    assert [r["execution_state"] for r in store.runs_for(failed.failure_id)] == ["TRIGGER_FAILED"]
    assert [r["status"] for r in store.runs_for("wf_5")] == ["active"]


@pytest.mark.asyncio
async def test_retry_bypasses_admission(upstream):
    store = InMemoryStore(max_concurrent=1)
    store.add_active_run("wf_1", "notion")
    upstream.accept("wf_1")

    outcome = await TriggerOrchestrator(store, upstream.client()).retry("notion", "wf_1")

    assert outcome.run_number == 2
    assert store.tables["ca_queued_workflows"] == []
    active = store.active_runs()
    assert [(r["workflow_id"], r["run_number"]) for r in active] == [("wf_1", 2)]


@pytest.mark.asyncio
async def test_retry_upstream_failure_raises_without_bookkeeping(store, upstream):
    upstream.reply(400, {"message": "unknown workflow"})
    with pytest.raises(UpstreamFailure) as excinfo:
        await TriggerOrchestrator(store, upstream.client()).retry("notion", "wf_1")

    assert excinfo.value.to_payload()["error"] == "Failed to trigger rerun"
    assert store.tables["ca_workflow_runs"] == []
