"""Tests for goal decomposition and worker assignment."""
from __future__ import annotations

import json

import pytest

from bothive.errors import SubTaskStateError
from bothive.orchestration.queen_bee import (
    GENERAL_CAPABILITY,
    QueenBee,
    SubTask,
    WorkerBot,
    capable_workers,
    parse_plan,
)
from conftest import make_tool

PLAN_REPLY = (
    "Here you go:\n"
    + json.dumps(
        [
            {"description": "Fetch top stories from HackerNews", "requiredCapability": "web.search"},
            {"description": "Summarize the stories", "requiredCapability": "text.summarize"},
            {"description": "Email the summary"},
        ]
    )
)

WORKERS = [
    WorkerBot(id="w1", name="Scraper", capabilities=["web.search"], description="Fetches pages"),
    WorkerBot(id="w2", name="Writer", capabilities=["text.summarize"], description="Writes summaries"),
    WorkerBot(id="w3", name="Generalist", capabilities=[GENERAL_CAPABILITY], description="Does anything"),
]


def test_parse_plan_numbers_tasks() -> None:
    tasks = parse_plan(PLAN_REPLY, "goal", stamp=42)

    assert [t.id for t in tasks] == ["task_42_0", "task_42_1", "task_42_2"]
    assert [t.required_capability for t in tasks] == ["web.search", "text.summarize", GENERAL_CAPABILITY]
    assert all(t.status == "pending" and t.assigned_worker_id is None for t in tasks)


@pytest.mark.parametrize(
    "reply",
    ["no json at all", "[]", '[{"requiredCapability": "x"}]', '["just a string"]', None],
)
def test_parse_plan_falls_back_to_single_task(reply) -> None:
    tasks = parse_plan(reply, "Summarize HackerNews", stamp=7)

    assert len(tasks) == 1
    assert tasks[0].id == "task_7_0"
    assert tasks[0].description == "Summarize HackerNews"
    assert tasks[0].required_capability == GENERAL_CAPABILITY


def test_capable_workers_includes_generalists() -> None:
    task = SubTask(id="t", description="d", required_capability="web.search")

    assert [w.id for w in capable_workers(task, WORKERS)] == ["w1", "w3"]


@pytest.mark.anyio
async def test_decompose_uses_planner_tool(context) -> None:
    calls = []
    queen = QueenBee([make_tool("agent.plan", "planner", output=PLAN_REPLY, calls=calls)], context)

    tasks = await queen.decompose("Summarize HackerNews")

    assert len(tasks) == 3
    assert calls[0]["task"] == "Summarize HackerNews"


@pytest.mark.anyio
async def test_decompose_without_planner_falls_back(context) -> None:
    tasks = await QueenBee([], context).decompose("Do a thing")

    assert len(tasks) == 1
    assert tasks[0].id.startswith("task_") and tasks[0].id.endswith("_0")


@pytest.mark.anyio
async def test_decompose_survives_planner_errors(context) -> None:
    queen = QueenBee([make_tool("agent.plan", "planner", raises=RuntimeError("down"))], context)

    tasks = await queen.decompose("Do a thing")

    assert [t.description for t in tasks] == ["Do a thing"]


@pytest.mark.anyio
async def test_assign_single_candidate_skips_evaluator(context) -> None:
    calls = []
    queen = QueenBee([make_tool("agent.evaluate", "evaluator", calls=calls)], context)
    task = SubTask(id="t", description="d", required_capability="text.summarize")

    worker = await queen.assign_worker(task, WORKERS[:2])

    assert worker.id == "w2"
    assert calls == []


@pytest.mark.anyio
async def test_assign_uses_evaluator_choice(context) -> None:
    queen = QueenBee([make_tool("agent.evaluate", "evaluator", output="Generalist: Does anything")], context)
    task = SubTask(id="t", description="d", required_capability="web.search")

    worker = await queen.assign_worker(task, WORKERS)

    assert worker.id == "w3"


@pytest.mark.anyio
async def test_assign_unknown_choice_falls_back_to_first(context) -> None:
    queen = QueenBee([make_tool("agent.evaluate", "evaluator", output="Nobody")], context)
    task = SubTask(id="t", description="d", required_capability="web.search")

    assert (await queen.assign_worker(task, WORKERS)).id == "w1"


@pytest.mark.anyio
async def test_assign_without_candidates(context) -> None:
    task = SubTask(id="t", description="d", required_capability="video.edit")

    assert await QueenBee([], context).assign_worker(task, WORKERS[:2]) is None


@pytest.mark.anyio
async def test_plan_assigns_hackernews_goal(context) -> None:
    tools = [
        make_tool("agent.plan", "planner", output=PLAN_REPLY),
        make_tool("agent.evaluate", "evaluator", output="Scraper"),
    ]
    queen = QueenBee(tools, context)

    tasks = await queen.plan("Summarize today's HackerNews and email it", WORKERS)

    assert [t.assigned_worker_id for t in tasks] == ["w1", "w2", "w3"]


def test_subtask_transitions() -> None:
    task = SubTask(id="t", description="d", required_capability="x")
    task.assign("w1")
    task.assign("w1")
    with pytest.raises(SubTaskStateError):
        task.assign("w2")

    task.complete("done")
    assert task.to_dict()["status"] == "completed"
    with pytest.raises(SubTaskStateError):
        task.fail("late")


@pytest.mark.anyio
async def test_monitoring_goal_yields_pending_tasks(context) -> None:
    reply = (
        '[{"description": "Poll hackernews for AI stories", "requiredCapability": "web.search"}, '
        '{"description": "Post matches to slack", "requiredCapability": "slack.send"}]'
    )
    queen = QueenBee([make_tool("agent.plan", "planner", output=reply)], context)

    tasks = await queen.decompose("Monitor hackernews for 'AI' and slack me")

    assert len(tasks) >= 1
    assert all(task.status == "pending" for task in tasks)
