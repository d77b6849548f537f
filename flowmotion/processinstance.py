"""A running instance of a process model."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Iterable

from flowmotion.bpmn import ProcessModel
from flowmotion.events import ProcessInstanceEvent
from flowmotion.handlers import EndEventHandler, StartEventHandler, TaskHandler

logger = logging.getLogger(__name__)


class NoStartEventError(ValueError):
    """Raised when a process model has no start event to begin with."""


class ProcessInstance:
    """Walks a process model from its start event along the sequence flows."""

    def __init__(self, process_model: ProcessModel, engine: Any) -> None:
        self.id = str(uuid.uuid4())
        self.process_model = process_model
        self.engine = engine
        self.current_element = ""
        self.started_at: datetime | None = None
        self.finished_at: datetime | None = None
        self.state = ""

    def _event(self, name: str) -> ProcessInstanceEvent:
        return ProcessInstanceEvent(
            name=name,
            type="processinstance",
            id=self.id,
            process_model_name=self.process_model.name,
            current_element=self.current_element,
            started_at=self.started_at,
            finished_at=self.finished_at,
        )

    async def _update_state(self) -> None:
        self.engine.db.persist_process_instance(self)
        await self.engine.event_manager.broadcast(self._event("running"))

    async def execute(self, token: dict[str, Any] | None) -> None:
        """Run the instance until it reaches its end."""
        logger.info("Executing process instance %s", self.id)
        if not self.process_model.start_events:
            raise NoStartEventError("no StartEvent in ProcessModel")

        self.state = "running"
        self.started_at = datetime.now().astimezone()
        self.engine.db.save_process_instance(self)
        await self.engine.event_manager.broadcast(self._event("started"))

        start_event = self.process_model.start_events[0]
        self.current_element = start_event.id
        await self._update_state()
        await StartEventHandler(start_event, self).execute(token)
        self.current_element = self.next_element(start_event.outgoing)

        while self.current_element:
            end_event = next(
                (e for e in self.process_model.end_events if e.id == self.current_element),
                None,
            )
            if end_event is not None:
                await EndEventHandler(end_event, self).execute(token)
                self.current_element = ""
                continue

            task = next(
                (t for t in self.process_model.tasks if t.id == self.current_element),
                None,
            )
            if task is None:
                logger.warning("Element %s cannot be executed; ending flow", self.current_element)
                self.current_element = ""
                continue

            await self._update_state()
            await TaskHandler(task, self).execute(token)
            self.current_element = self.next_element(task.outgoing)

        logger.info("Process instance %s finished", self.id)
        self.state = "finished"
        self.finished_at = datetime.now().astimezone()
        self.engine.db.persist_process_instance(self)
        await self.engine.event_manager.broadcast(self._event("finished"))

    def next_element(self, outgoing: Iterable[str]) -> str:
        """Target of the first outgoing sequence flow that exists, or ''."""
        for flow_id in outgoing:
            for flow in self.process_model.sequence_flows:
                if flow.id == flow_id:
                    return flow.target_ref
        return ""