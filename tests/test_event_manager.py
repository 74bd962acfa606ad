"""Tests for per-project event fan-out."""

import asyncio
import json

import pytest

from takelog.schemas.resolution import EventType, TakesCommittedData, WorkflowEventData, WorkflowState
from takelog.services import event_manager
from takelog.services.event_manager import ProjectEventManager


def transition(previous: WorkflowState, state: WorkflowState) -> WorkflowEventData:
    return WorkflowEventData(resolution_handle="h", previous_state=previous, state=state)


async def start_collecting(manager: ProjectEventManager, project_id: str, events: list):
    async def collect():
        async for event in manager.subscribe(project_id):
            events.append(event)

    task = asyncio.create_task(collect())
    await asyncio.sleep(0)
    return task


async def stop(task: asyncio.Task) -> None:
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


class TestPublish:
    def test_sequence_numbers_per_project(self):
        manager = ProjectEventManager()

        first = manager.publish_transition("a", transition(WorkflowState.IDLE, WorkflowState.DETECTING))
        second = manager.publish_commit("a", TakesCommittedData(reason="save", take_id="t1"))
        other = manager.publish_commit("b", TakesCommittedData(reason="delete", deleted_ids=["t2"]))

        assert (first.sequence, second.sequence, other.sequence) == (1, 2, 1)
        assert second.event_type == EventType.TAKES_COMMITTED

    @pytest.mark.asyncio
    async def test_only_project_subscribers_receive(self):
        manager = ProjectEventManager()
        events: list = []
        task = await start_collecting(manager, "a", events)

        manager.publish_commit("b", TakesCommittedData(reason="save"))
        manager.publish_commit("a", TakesCommittedData(reason="save", take_id="t1"))
        for _ in range(3):
            await asyncio.sleep(0)
        await stop(task)

        assert [e.data["take_id"] for e in events] == ["t1"]

    @pytest.mark.asyncio
    async def test_slow_subscriber_drops_oldest(self, monkeypatch):
        monkeypatch.setattr(event_manager, "SUBSCRIBER_QUEUE_SIZE", 2)
        manager = ProjectEventManager()
        subscription = manager.subscribe("a")
        first = asyncio.ensure_future(subscription.__anext__())
        await asyncio.sleep(0)

        for n in range(4):
            manager.publish_commit("a", TakesCommittedData(reason="save", take_id=f"t{n}"))
        received = [await first, await subscription.__anext__()]
        await subscription.aclose()

        assert [e.data["take_id"] for e in received] == ["t2", "t3"]
        assert [e.sequence for e in received] == [3, 4]

    def test_forget_project_restarts_sequence(self):
        manager = ProjectEventManager()
        manager.publish_commit("a", TakesCommittedData(reason="save"))
        manager.publish_commit("a", TakesCommittedData(reason="save"))

        manager.forget_project("a")

        assert manager.publish_commit("a", TakesCommittedData(reason="save")).sequence == 1

    def test_sse_format(self):
        manager = ProjectEventManager()

        event = manager.publish_transition("a", transition(WorkflowState.DETECTING, WorkflowState.COMMITTED))
        lines = event.to_sse().split("\n")

        assert lines[0] == "id: 1"
        assert lines[1] == "event: workflow_transition"
        body = json.loads(lines[2].removeprefix("data: "))
        assert body["project_id"] == "a"
        assert body["data"]["state"] == "committed"
        assert event.to_sse().endswith("\n\n")
