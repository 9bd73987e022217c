"""Tests for pulse job storage and the Pulse Engine heartbeat."""
from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from bothive.errors import JobNotFoundError
from bothive.scheduling.pulse import PULSE_INPUT, PulseEngine, compute_next_run
from bothive.storage.bot_store import BotStore
from bothive.storage.pulse_store import PulseJob, PulseJobStore, interval_seconds, utcnow
from conftest import make_tool

PULSE_BOT = """
bot "Heartbeat"
  on input
    say "awake"
    call note.take
  end
end
"""


@pytest.fixture
def store(database) -> PulseJobStore:
    return PulseJobStore(database)


@pytest.fixture
def bots(database) -> BotStore:
    return BotStore(database)


def test_interval_seconds_precedence() -> None:
    assert interval_seconds({"interval_seconds": 120, "intervalMinutes": 5}) == 120
    assert interval_seconds({"interval_minutes": 2}) == 120
    assert interval_seconds({"intervalMinutes": 3}) == 180
    assert interval_seconds({}) == 60
    assert interval_seconds({"interval_seconds": -5}) == 60


def test_compute_next_run() -> None:
    now = utcnow()
    schedule = PulseJob(id="j", bot_id="b", trigger_config={"interval_seconds": 120})

    assert compute_next_run(schedule, now) == now + timedelta(seconds=120)
    assert compute_next_run(PulseJob(id="j", bot_id="b", trigger_type="event"), now) is None


@pytest.mark.anyio
async def test_create_job_validation(store) -> None:
    with pytest.raises(ValueError):
        await store.create_job("bot", "schedule")
    with pytest.raises(ValueError):
        await store.create_job("bot", "schedule", interval_minutes=0)
    with pytest.raises(ValueError):
        await store.create_job("bot", "cron", interval_minutes=1)
    for config in ({"interval_seconds": 0}, {"interval_minutes": -1}, {"intervalMinutes": "5"}):
        with pytest.raises(ValueError):
            await store.create_job("bot", "schedule", config)

    job = await store.create_job("bot", "schedule", {"interval_seconds": 0, "interval_minutes": 2})
    assert job.next_run is not None


@pytest.mark.anyio
async def test_create_schedule_job_sets_next_run(store) -> None:
    now = utcnow()

    job = await store.create_job("bot", "schedule", interval_minutes=5, now=now)

    assert job.trigger_config == {"interval_seconds": 300, "intervalMinutes": 5}
    assert job.next_run == now + timedelta(minutes=5)
    stored = await store.get_job(job.id)
    assert stored.next_run == job.next_run
    assert [j.id for j in await store.list_jobs("bot")] == [job.id]


@pytest.mark.anyio
async def test_set_active_rearms_and_disarms(store) -> None:
    job = await store.create_job("bot", "schedule", interval_minutes=1)
    now = utcnow()

    paused = await store.set_active(job.id, False)
    assert not paused.is_active and paused.next_run is None

    resumed = await store.set_active(job.id, True, now=now)
    assert resumed.next_run == now + timedelta(seconds=60)

    with pytest.raises(JobNotFoundError):
        await store.set_active("missing", True)


@pytest.mark.anyio
async def test_claim_due_leases_jobs(store) -> None:
    past = utcnow() - timedelta(minutes=10)
    due = await store.create_job("bot", "schedule", interval_minutes=1, now=past)
    await store.create_job("bot", "schedule", interval_minutes=60)
    await store.create_job("bot", "event")

    now = utcnow()
    first = await store.claim_due(now, limit=10, worker_id="a", lease_seconds=300)
    second = await store.claim_due(now, limit=10, worker_id="b", lease_seconds=300)

    assert [j.id for j in first] == [due.id]
    assert second == []

    await store.release(due.id, "a")
    assert [j.id for j in await store.claim_due(now, limit=10, worker_id="b", lease_seconds=300)] == [due.id]


@pytest.mark.anyio
async def test_mark_success_requires_the_current_lease(store) -> None:
    job = await store.create_job("bot", "schedule", interval_minutes=1, now=utcnow() - timedelta(minutes=10))
    now = utcnow()
    await store.claim_due(now, limit=10, worker_id="a", lease_seconds=0)
    await store.claim_due(now, limit=10, worker_id="b", lease_seconds=300)
    later = now + timedelta(minutes=1)

    assert not await store.mark_success(job.id, "a", now, later)
    assert (await store.get_job(job.id)).last_run is None

    assert await store.mark_success(job.id, "b", now, later)
    assert abs(((await store.get_job(job.id)).next_run - later).total_seconds()) < 0.001


@pytest.mark.anyio
async def test_pulse_wakes_due_bot_and_advances_schedule(store, bots) -> None:
    bot = await bots.save_bot("Heartbeat", PULSE_BOT, user_id="u1")
    job = await store.create_job(bot.id, "schedule", interval_minutes=2, now=utcnow() - timedelta(minutes=5))
    calls = []
    engine = PulseEngine(store, bots, tools=[make_tool("note.take", calls=calls)])

    report = await engine.pulse()

    assert report.claimed == 1
    assert report.succeeded == [job.id]
    assert calls[0]["event"]["input"] == PULSE_INPUT
    assert calls[0]["event"]["trigger"] == "schedule"

    updated = await store.get_job(job.id)
    assert updated.last_run is not None
    assert updated.next_run == updated.last_run + timedelta(seconds=120)

    logs = await store.list_logs(job.id)
    assert [log.status for log in logs] == ["success"]
    assert logs[0].output == "awake"

    # Not due again until the interval passes.
    assert (await engine.pulse()).claimed == 0


@pytest.mark.anyio
async def test_failed_wake_keeps_job_due(store, bots) -> None:
    job = await store.create_job("ghost-bot", "schedule", interval_minutes=1, now=utcnow() - timedelta(minutes=5))
    before = await store.get_job(job.id)
    engine = PulseEngine(store, bots)

    report = await engine.pulse()

    assert report.failed == [job.id]
    after = await store.get_job(job.id)
    assert after.last_run is None
    assert after.next_run == before.next_run
    assert await store.list_logs(job.id) == []
    # Lease released, so the next tick retries it.
    assert (await engine.pulse()).failed == [job.id]


@pytest.mark.anyio
async def test_failure_log_is_opt_in(store, bots) -> None:
    bot = await bots.save_bot("NoInput", 'bot "X"\n on other\n end\nend')
    job = await store.create_job(bot.id, "schedule", interval_minutes=1, now=utcnow() - timedelta(minutes=5))
    engine = PulseEngine(store, bots, log_failures=True)

    await engine.pulse()

    logs = await store.list_logs(job.id)
    assert [log.status for log in logs] == ["failure"]
    assert "on input" in logs[0].output


@pytest.mark.anyio
async def test_listeners_see_events_and_may_fail(store, bots) -> None:
    bot = await bots.save_bot("Heartbeat", PULSE_BOT)
    await store.create_job(bot.id, "schedule", interval_minutes=1, now=utcnow() - timedelta(minutes=5))
    engine = PulseEngine(store, bots, tools=[make_tool("note.take")])
    seen = []

    def broken(event) -> None:
        raise RuntimeError("listener bug")

    async def recorder(event) -> None:
        seen.append(event["type"])

    engine.on_pulse(broken)
    unsubscribe = engine.on_pulse(recorder)

    report = await engine.pulse()
    assert report.succeeded
    assert seen == ["pulse", "wake"]

    unsubscribe()
    await engine.pulse()
    assert seen == ["pulse", "wake"]


@pytest.mark.anyio
async def test_engine_start_stop(store, bots) -> None:
    engine = PulseEngine(store, bots, interval_seconds=3600)

    await engine.start()
    await engine.start()
    assert engine.is_running
    assert engine.status()["state"] == "running"

    await engine.stop()
    assert not engine.is_running


def test_engine_restarts_under_a_new_event_loop(store, bots) -> None:
    engine = PulseEngine(store, bots, interval_seconds=3600)

    async def cycle() -> None:
        await engine.start()
        assert engine.is_running
        await engine.stop()

    asyncio.run(cycle())
    asyncio.run(cycle())

    assert not engine.is_running
