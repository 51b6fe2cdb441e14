"""Progress notifications emitted while a run executes."""

from __future__ import annotations

import asyncio
import inspect
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Sequence, Union

import structlog
from pydantic import BaseModel, Field

LOGGER = structlog.get_logger("healing_executor")


class EventType(str, Enum):
    RUN_STARTED = "run_started"
    STEP_STARTED = "step_started"
    STEP_COMPLETED = "step_completed"
    STEP_HEALED = "step_healed"
    RUN_FINISHED = "run_finished"


class RunEvent(BaseModel):
    type: EventType
    run_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: dict[str, Any] = Field(default_factory=dict)


ProgressSink = Callable[[RunEvent], Union[None, Awaitable[None]]]


async def publish(subscribers: Sequence[ProgressSink], event: RunEvent) -> None:
    """Deliver ``event`` to every subscriber, in order, awaiting async ones."""

    for subscriber in subscribers:
        outcome = subscriber(event)
        if inspect.isawaitable(outcome):
            await outcome


class EventChannel:
    """Fan-out channel: pass it as a subscriber, consume with ``subscribe()``.

    Each subscription sees every event published after it was opened and ends
    after ``run_finished``.
    """

    def __init__(self) -> None:
        self._queues: list[asyncio.Queue[RunEvent]] = []

    async def __call__(self, event: RunEvent) -> None:
        for queue in list(self._queues):
            await queue.put(event)

    def subscribe(self) -> AsyncIterator[RunEvent]:
        queue: asyncio.Queue[RunEvent] = asyncio.Queue()
        self._queues.append(queue)
        return self._drain(queue)

    async def _drain(self, queue: asyncio.Queue[RunEvent]) -> AsyncIterator[RunEvent]:
        try:
            while True:
                event = await queue.get()
                yield event
                if event.type == EventType.RUN_FINISHED:
                    return
        finally:
            if queue in self._queues:
                self._queues.remove(queue)
