"""Tests for run progress emission and following."""

from __future__ import annotations

import anyio
import pytest

from claimflow.core.run_stream import RunContext, StreamDone, stream_run_events
from claimflow.models.runs import Run, RunEventType, RunStatus

pytestmark = pytest.mark.anyio


async def _collect(store, run_id, **kwargs):
    return [item async for item in stream_run_events(store, run_id, poll_interval=0, **kwargs)]


class TestRunContext:
    async def test_seq_starts_at_one_and_increments(self, store):
        ctx = RunContext(store, "run-1")
        first = await ctx.emit(RunEventType.STAGE_STARTED, {"agent": "frontdesk"})
        second = await ctx.emit("custom.event")
        assert (first.seq, second.seq) == (1, 2)
        assert first.event_type == "stage.started"
        assert second.event_type == "custom.event"
        assert second.payload == {}
        assert ctx.last_seq == 2

    async def test_resume_from_seq(self, store):
        ctx = RunContext(store, "run-1", start_seq=10)
        assert (await ctx.emit("x")).seq == 11


class TestStream:
    async def test_terminal_run_replays_then_done(self, store):
        run = Run(claim_id="CLM-1", stage="FRONTDESK_DONE", agent_id="frontdesk")
        await store.put_run(run)
        ctx = RunContext(store, run.run_id)
        for event_type in ("stage.started", "agent.responded", "stage.completed"):
            await ctx.emit(event_type)
        await store.update_run_status(run.run_id, RunStatus.SUCCEEDED)

        items = await _collect(store, run.run_id)
        assert [i.event_type for i in items] == [
            "stage.started",
            "agent.responded",
            "stage.completed",
            "done",
        ]
        assert items[-1] == StreamDone(run_id=run.run_id, status=RunStatus.SUCCEEDED)

    async def test_from_seq_skips_seen_events(self, store):
        run = Run(claim_id="CLM-1", stage="A", agent_id="a", status=RunStatus.FAILED)
        await store.put_run(run)
        ctx = RunContext(store, run.run_id)
        for _ in range(4):
            await ctx.emit("tick")
        items = await _collect(store, run.run_id, from_seq=2)
        assert [getattr(i, "seq", None) for i in items] == [3, 4, None]
        assert items[-1].status == RunStatus.FAILED

    async def test_unknown_run_gives_up_silently(self, store):
        assert await _collect(store, "nope", max_attempts=3) == []

    async def test_running_run_gives_up_after_budget(self, store):
        run = Run(claim_id="CLM-1", stage="A", agent_id="a")
        await store.put_run(run)
        await RunContext(store, run.run_id).emit("tick")
        items = await _collect(store, run.run_id, max_attempts=2)
        assert [i.event_type for i in items] == ["tick"]

    async def test_follows_live_run(self, memory_store):
        run = Run(claim_id="CLM-1", stage="A", agent_id="a")
        await memory_store.put_run(run)
        ctx = RunContext(memory_store, run.run_id)
        seen: list[str] = []

        async def follow():
            async for item in stream_run_events(
                memory_store, run.run_id, poll_interval=0.01, max_attempts=500
            ):
                seen.append(item.event_type)

        async with anyio.create_task_group() as tg:
            tg.start_soon(follow)
            await ctx.emit("stage.started")
            await anyio.sleep(0.05)
            await ctx.emit("stage.completed")
            await memory_store.update_run_status(run.run_id, RunStatus.SUCCEEDED)

        assert seen == ["stage.started", "stage.completed", "done"]
