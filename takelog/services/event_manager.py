"""Per-project notifications for the take log UI.

The engine publishes two kinds of event: every resolution workflow
transition, and every commit that changed stored takes. Events are numbered
per project so an SSE client can tell whether it missed any; a subscriber
that falls behind loses its oldest events rather than blocking the engine.
"""

import asyncio
import json
import logging
from collections import defaultdict
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import BaseModel

from takelog.schemas.resolution import EventType, TakesCommittedData, WorkflowEventData

logger = logging.getLogger(__name__)

# Events buffered per subscriber before the oldest are dropped
SUBSCRIBER_QUEUE_SIZE = 100


@dataclass
class ProjectEvent:
    event_type: EventType
    project_id: str
    sequence: int
    payload: BaseModel
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def data(self) -> dict:
        return self.payload.model_dump(mode="json")

    def to_sse(self) -> str:
        """Format as one Server-Sent Events message; the id is the sequence."""
        body = {
            "type": self.event_type.value,
            "project_id": self.project_id,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }
        return (
            f"id: {self.sequence}\n"
            f"event: {self.event_type.value}\n"
            f"data: {json.dumps(body)}\n\n"
        )


class ProjectEventManager:
    """Fan-out of workflow and commit events to a project's subscribers."""

    def __init__(self) -> None:
        self._subscribers: dict[str, set[asyncio.Queue[ProjectEvent]]] = defaultdict(set)
        self._sequences: dict[str, int] = defaultdict(int)

    async def subscribe(self, project_id: str) -> AsyncGenerator[ProjectEvent, None]:
        """Yield the project's events until the consumer stops iterating."""
        queue: asyncio.Queue[ProjectEvent] = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        self._subscribers[project_id].add(queue)
        logger.info(f"New subscriber for project {project_id}")
        try:
            while True:
                yield await queue.get()
        finally:
            subscribers = self._subscribers.get(project_id)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    del self._subscribers[project_id]
            logger.info(f"Subscriber left project {project_id}")

    def publish_transition(self, project_id: str, data: WorkflowEventData) -> ProjectEvent:
        return self._publish(project_id, EventType.WORKFLOW_TRANSITION, data)

    def publish_commit(self, project_id: str, data: TakesCommittedData) -> ProjectEvent:
        return self._publish(project_id, EventType.TAKES_COMMITTED, data)

    def forget_project(self, project_id: str) -> None:
        """Drop the sequence counter of a deleted project."""
        self._sequences.pop(project_id, None)

    def _publish(self, project_id: str, event_type: EventType, payload: BaseModel) -> ProjectEvent:
        self._sequences[project_id] += 1
        event = ProjectEvent(
            event_type=event_type,
            project_id=project_id,
            sequence=self._sequences[project_id],
            payload=payload,
        )
        for queue in self._subscribers.get(project_id, ()):
            if queue.full():
                dropped = queue.get_nowait()
                logger.warning(
                    f"Subscriber of project {project_id} is behind; dropped event {dropped.sequence}"
                )
            queue.put_nowait(event)
        return event
