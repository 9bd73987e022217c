"""HTTP surface tests against a temporary database."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from bothive import runtime
from bothive.core.models import ToolContext, ToolMetadata
from bothive.core.shared_memory import InMemorySharedMemory
from bothive.main import app
from bothive.orchestration.queen_bee import QueenBee
from bothive.scheduling.pulse import PulseEngine
from bothive.storage.bot_store import BotStore
from bothive.storage.pulse_store import PulseJobStore
from bothive.storage.run_store import WorkforceRunStore
from bothive.tools.agent_tools import BUS_TOOLS
from bothive.tools.registry import ToolRegistry
from bothive.workforce.queue import WorkforceQueue
from conftest import make_tool

BOT_SOURCE = 'bot "Pinger"\n  on input\n    say "pong"\n  end\nend\n'


@pytest.fixture
def client(database):
    tools = ToolRegistry([*BUS_TOOLS, make_tool("agent.plan", "planner", output='[{"description": "one"}]')])
    bots = BotStore(database)
    pulse_store = PulseJobStore(database)
    engine = PulseEngine(pulse_store, bots, tools=tools)

    def queen() -> QueenBee:
        context = ToolContext(
            metadata=ToolMetadata(bot_id="queen-bee", run_id="test"),
            shared_memory=InMemorySharedMemory("test"),
        )
        return QueenBee(tools, context)

    app.dependency_overrides.update(
        {
            runtime.get_tool_registry: lambda: tools,
            runtime.get_bot_store: lambda: bots,
            runtime.get_pulse_store: lambda: pulse_store,
            runtime.get_pulse_engine: lambda: engine,
            runtime.get_workforce_queue: lambda: WorkforceQueue(database),
            runtime.get_run_store: lambda: WorkforceRunStore(database),
            runtime.get_queen_bee: queen,
        }
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_compile_endpoint(client) -> None:
    ok = client.post("/hivelang/compile", json={"source": BOT_SOURCE}).json()
    bad = client.post("/hivelang/compile", json={"source": 'bot ""'}).json()

    assert ok["success"] and ok["blocks"][0]["name"] == "Pinger"
    assert bad == {"success": False, "blocks": [], "error": "Line 1: Invalid block definition"}


def test_execute_endpoint(client) -> None:
    source = 'bot "B"\n on input\n  say "hi"\n  call agent.broadcast hello\n end\nend'

    body = client.post("/hivelang/execute", json={"source": source, "input": {"input": "x"}}).json()

    assert body["success"]
    assert body["output"] == "hi"
    assert body["steps"][0]["action"] == "agent.broadcast"
    assert body["steps"][0]["actionInput"] == {"input": "hello", "event": {"input": "x"}}


def test_bot_and_pulse_job_crud(client) -> None:
    bot = client.post("/bots", json={"name": "Pinger", "hivelang_code": BOT_SOURCE})
    assert bot.status_code == 201
    bot_id = bot.json()["id"]
    base = f"/bots/{bot_id}/pulse-jobs"

    assert client.post(base, json={"trigger_type": "schedule"}).status_code == 400
    created = client.post(base, json={"trigger_type": "schedule", "interval_minutes": 15})
    assert created.status_code == 201
    job = created.json()
    assert job["trigger_config"]["interval_seconds"] == 900
    assert job["next_run"] is not None

    assert [j["id"] for j in client.get(base).json()] == [job["id"]]

    paused = client.patch(f"{base}/{job['id']}", json={"is_active": False}).json()
    assert paused["is_active"] is False and paused["next_run"] is None
    resumed = client.patch(f"{base}/{job['id']}", json={"is_active": True}).json()
    assert resumed["next_run"] is not None

    assert client.delete(f"{base}/{job['id']}").status_code == 204
    assert client.patch(f"{base}/{job['id']}", json={"is_active": True}).status_code == 404


def test_pulse_jobs_for_unknown_bot(client) -> None:
    assert client.get("/bots/ghost/pulse-jobs").status_code == 404
    assert client.get("/bots/ghost").status_code == 404


def test_invalid_bot_source_is_rejected(client) -> None:
    response = client.post("/bots", json={"name": "Bad", "hivelang_code": 'agent ""'})

    assert response.status_code == 400


def test_pulse_status_and_manual_tick(client) -> None:
    status = client.get("/pulse").json()
    assert status["state"] == "stopped"

    tick = client.post("/pulse/tick").json()
    assert tick == {"claimed": 0, "succeeded": [], "failed": []}


def test_workforce_enqueue_and_status(client) -> None:
    queued = client.post("/workforce", json={"user_id": "u1", "request": "Write a post"})
    assert queued.status_code == 202
    job_id = queued.json()["job_id"]

    status = client.get(f"/workforce/{job_id}").json()
    assert status["status"] == "waiting"
    assert status["jobId"] == job_id

    assert client.get("/workforce/missing").status_code == 404


def test_queen_endpoints(client) -> None:
    tasks = client.post("/queen/decompose", json={"goal": "Do it"}).json()
    assert [t["description"] for t in tasks] == ["one"]

    planned = client.post(
        "/queen/plan",
        json={
            "goal": "Do it",
            "workers": [{"id": "w1", "name": "Generalist", "capabilities": ["general.respond"]}],
        },
    ).json()
    assert planned[0]["assignedWorkerId"] == "w1"
