"""Handlers that execute the individual flow nodes of a process instance."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from flowmotion.bpmn import EndEvent, StartEvent, Task
from flowmotion.events import Event, TaskEvent

logger = logging.getLogger(__name__)


@dataclass
class PendingTask:
    """A task waiting to be completed through the API."""

    name: str
    process_model: str
    process_instance_id: str
    callback: Callable[[], None] | None = None

    def complete(self) -> bool:
        """Run the completion callback; False when there is none."""
        if self.callback is None:
            return False
        self.callback()
        return True


class StartEventHandler:
    """Executes a start event."""

    def __init__(self, start_event: StartEvent, process_instance: Any) -> None:
        self.id = str(uuid.uuid4())
        self.start_event = start_event
        self.process_instance = process_instance

    async def execute(self, token: dict[str, Any] | None) -> None:
        events = self.process_instance.engine.event_manager
        await events.broadcast(Event(name="executing", type="startevent", id=self.id))
        logger.info("Executing start event %s", self.start_event.id)
        await events.broadcast(Event(name="finished", type="startevent", id=self.id))


class EndEventHandler:
    """Executes an end event."""

    def __init__(self, end_event: EndEvent, process_instance: Any) -> None:
        self.id = str(uuid.uuid4())
        self.end_event = end_event
        self.process_instance = process_instance

    async def execute(self, token: dict[str, Any] | None) -> None:
        events = self.process_instance.engine.event_manager
        await events.broadcast(Event(name="executing", type="endevent", id=self.id))
        logger.info("Executing end event %s", self.end_event.id)
        await events.broadcast(Event(name="finished", type="endevent", id=self.id))


class TaskHandler:
    """Executes a task by waiting until it is completed through the API."""

    def __init__(self, task: Task, process_instance: Any) -> None:
        self.id = str(uuid.uuid4())
        self.task = task
        self.process_instance = process_instance
        self._completed = asyncio.Event()

    def _event(self, name: str) -> TaskEvent:
        return TaskEvent(
            name=name,
            type="task",
            id=self.id,
            element_name=self.task.name,
            process_instance_id=self.process_instance.id,
        )

    async def execute(self, token: dict[str, Any] | None) -> None:
        engine = self.process_instance.engine
        await engine.event_manager.broadcast(self._event("executing"))
        logger.info("Task %s is now waiting for completion", self.id)

        engine.register_pending_task(
            self.id,
            PendingTask(
                name=self.task.name,
                process_model=self.process_instance.process_model.name,
                process_instance_id=self.process_instance.id,
                callback=self._completed.set,
            ),
        )
        await engine.event_manager.broadcast(self._event("pending"))

        await self._completed.wait()

        await engine.event_manager.broadcast(self._event("finished"))
        logger.info("Task %s completed", self.id)