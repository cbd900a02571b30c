from __future__ import annotations

import asyncio

import pytest

from app.services.queue_drainer import QueueDrainer, drain_queue
from app.services.queue_service import QueueService
from app.services.run_sequencer import RunSequencer
from app.services.trigger_orchestrator import TriggerFailed, TriggerOrchestrator, TriggerSucceeded
from tests.fakes import InMemoryStore


async def fill_queue(orchestrator: TriggerOrchestrator, *apps: str) -> None:
    for app in apps:
        await orchestrator.trigger(app)


@pytest.mark.asyncio
async def test_nothing_happens_without_free_capacity(upstream):
    store = InMemoryStore(max_concurrent=1)
    orchestrator = TriggerOrchestrator(store, upstream.client())
    await fill_queue(orchestrator, "slack", "notion")

    assert await drain_queue(orchestrator) == []
    assert len(store.tables["ca_queued_workflows"]) == 1


@pytest.mark.asyncio
async def test_completion_frees_capacity_for_head_of_queue(upstream):
    store = InMemoryStore(max_concurrent=1)
    orchestrator = TriggerOrchestrator(store, upstream.client())
    await fill_queue(orchestrator, "slack", "notion", "github")
    first_run = store.active_runs()[0]

    await RunSequencer(store).complete_run(first_run["workflow_id"])
    outcomes = await drain_queue(orchestrator)

    assert len(outcomes) == 1
    assert isinstance(outcomes[0], TriggerSucceeded)
    assert outcomes[0].app_name == "notion"
    assert [e["app_name"] for e in store.tables["ca_queued_workflows"]] == ["github"]
    assert len(store.active_runs()) == 1
    assert upstream.payloads()[-1]["app_name"] == "notion"


@pytest.mark.asyncio
async def test_drain_fills_all_free_slots_in_order(upstream):
    store = InMemoryStore(max_concurrent=1)
    orchestrator = TriggerOrchestrator(store, upstream.client())
    await fill_queue(orchestrator, "slack", "notion", "github", "linear")

    store.tables["ca_config"][0]["value"] = 3
    outcomes = await drain_queue(orchestrator)

    assert [o.app_name for o in outcomes] == ["notion", "github"]
    assert [e["position"] for e in store.tables["ca_queued_workflows"]] == [3]


@pytest.mark.asyncio
async def test_entries_for_running_apps_wait(upstream):
    store = InMemoryStore(max_concurrent=2)
    store.add_active_run("wf_a", "notion")
    store.add_active_run("wf_b", "slack")
    orchestrator = TriggerOrchestrator(store, upstream.client())
    await fill_queue(orchestrator, "github")
    store.tables["ca_queued_workflows"].insert(
        0, {"id": 500, "app_name": "notion", "connection_id": None, "payload": {"app_name": "notion"}, "position": 0}
    )

    await RunSequencer(store).complete_run("wf_b")
    outcomes = await drain_queue(orchestrator)

    assert [o.app_name for o in outcomes] == ["github"]
    assert [e["app_name"] for e in store.tables["ca_queued_workflows"]] == ["notion"]


@pytest.mark.asyncio
async def test_failed_promotion_is_recorded_and_entry_kept(upstream):
    store = InMemoryStore(max_concurrent=1)
    orchestrator = TriggerOrchestrator(store, upstream.client())
    await fill_queue(orchestrator, "slack", "notion")
    await RunSequencer(store).complete_run(store.active_runs()[0]["workflow_id"])

    upstream.reply(500, {"error": "down"})
    outcomes = await drain_queue(orchestrator)

    assert isinstance(outcomes[0], TriggerFailed)
    assert store.runs_for(outcomes[0].failure_id)[0]["execution_state"] == "TRIGGER_FAILED"
    (entry,) = await QueueService(store).list_entries()
    assert (entry["position"], entry["app_name"]) == (1, "notion")

    (retried,) = await drain_queue(orchestrator)
    assert isinstance(retried, TriggerSucceeded)
    assert retried.app_name == "notion"
    assert store.tables["ca_queued_workflows"] == []


@pytest.mark.asyncio
async def test_integrator_outage_leaves_queue_intact(upstream):
    store = InMemoryStore(max_concurrent=1)
    orchestrator = TriggerOrchestrator(store, upstream.client())
    await fill_queue(orchestrator, "slack", "notion", "github", "linear", "jira")
    await RunSequencer(store).complete_run(store.active_runs()[0]["workflow_id"])
    store.tables["ca_config"][0]["value"] = 3

    for _ in range(4):
        upstream.reply(503, {"message": "maintenance"})
    outcomes = await drain_queue(orchestrator)

    assert len(outcomes) == 1
    assert isinstance(outcomes[0], TriggerFailed)
    entries = await QueueService(store).list_entries()
    assert [(e["position"], e["app_name"]) for e in entries] == [
        (1, "notion"),
        (2, "github"),
        (3, "linear"),
        (4, "jira"),
    ]
    assert store.active_runs() == []


@pytest.mark.asyncio
async def test_stored_payload_is_reissued_unchanged(upstream):
    store = InMemoryStore(max_concurrent=1)
    orchestrator = TriggerOrchestrator(store, upstream.client())
    await orchestrator.trigger("slack")
    await orchestrator.trigger("notion", connection_id="conn_n", environment="staging", test_all_actions=True)
    queued_payload = store.tables["ca_queued_workflows"][0]["payload"]

    await RunSequencer(store).complete_run(store.active_runs()[0]["workflow_id"])
    (outcome,) = await drain_queue(orchestrator)

    assert upstream.payloads()[-1] == queued_payload
    workflow = next(w for w in store.tables["ca_workflows"] if w["workflow_id"] == outcome.workflow_id)
    assert workflow["connection_id"] == "conn_n"
    assert workflow["environment"] == "staging"


@pytest.mark.asyncio
async def test_background_loop_drains_and_stops(upstream):
    store = InMemoryStore(max_concurrent=1)
    orchestrator = TriggerOrchestrator(store, upstream.client())
    await fill_queue(orchestrator, "slack", "notion")
    await RunSequencer(store).complete_run(store.active_runs()[0]["workflow_id"])

    drainer = QueueDrainer(lambda: orchestrator, poll_seconds=60)
    drainer.start()
    for _ in range(50):
        if not store.tables["ca_queued_workflows"]:
            break
        await asyncio.sleep(0.01)
    await drainer.stop()

    assert store.tables["ca_queued_workflows"] == []
    assert len(store.active_runs()) == 1
