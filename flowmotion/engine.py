"""The process engine: deployed models, running instances and pending tasks."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from aiohttp import web

from flowmotion.bpmn import (
    BpmnParseError,
    Definitions,
    Process,
    ProcessModel,
    parse_bpmn_file,
    parse_bpmn_string,
)
from flowmotion.database import Database
from flowmotion.events import EventManager
from flowmotion.handlers import PendingTask
from flowmotion.processinstance import ProcessInstance
from flowmotion.router import Router

logger = logging.getLogger(__name__)


class Engine:
    """Holds the deployed process models and runs their instances."""

    version = "0.0.1"

    def __init__(self, name: str, port: str, db_path: str | Path = "go_motion.db") -> None:
        self.name = name
        self.port = str(port)
        self.started_at: datetime | None = None
        self.event_manager = EventManager()
        self.db = Database(db_path)
        self.router = Router(self)
        self.process_definitions: dict[str, Definitions] = {}
        self.process_models: dict[str, ProcessModel] = {}
        self.process_instances: dict[str, ProcessInstance] = {}
        self.pending_tasks: dict[str, PendingTask] = {}
        self._running: set[asyncio.Task] = set()

    def _register(self, definition: Definitions) -> None:
        self.process_definitions[definition.tag] = definition
        for process in definition.processes:
            self.process_models[process.id] = ProcessModel(
                process=process, definition_id=definition.id
            )

    def load_and_add_process_definition(self, file_path: str | Path) -> None:
        """Parse a BPMN file, register its processes and store it."""
        definition = parse_bpmn_file(file_path)
        self._register(definition)
        self.db.save_definition(definition)

    def add_process_definition(self, definition: Definitions) -> None:
        """Register a parsed definition; a failure to store it is only logged."""
        self._register(definition)
        try:
            self.db.save_definition(definition)
        except sqlite3.Error as exc:
            logger.warning("Could not store definition %s: %s", definition.id, exc)

    def load_process_models(self) -> None:
        """Register the process models of every stored definition."""
        for xml_text in self.db.load_all_xmls():
            try:
                definition = parse_bpmn_string(xml_text)
            except BpmnParseError as exc:
                logger.warning("Failed to parse process definition: %s", exc)
                continue
            for process in definition.processes:
                self.process_models[process.id] = ProcessModel(
                    process=process, definition_id=definition.id
                )
        logger.info("Process models loaded successfully")

    def start_process(
        self, process_model_id: str, token: dict[str, Any] | None
    ) -> ProcessInstance:
        """Start an instance of a model in the background of the running loop."""
        model = self.process_models.get(process_model_id)
        if model is None:
            model = ProcessModel(process=Process(id=""))
        instance = ProcessInstance(model, self)
        self.process_instances[instance.id] = instance
        task = asyncio.get_running_loop().create_task(instance.execute(token))
        self._running.add(task)
        task.add_done_callback(self._instance_done)
        return instance

    def _instance_done(self, task: asyncio.Task) -> None:
        self._running.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Process instance failed: %s", exc)

    def register_pending_task(self, task_id: str, pending_task: PendingTask) -> None:
        self.pending_tasks[task_id] = pending_task
        logger.info("Registered pending task: %s", task_id)

    def complete_pending_task(self, task_id: str) -> bool:
        """Remove a pending task and run its callback; False if it cannot be completed."""
        pending = self.pending_tasks.pop(task_id, None)
        if pending is None:
            logger.info("Task not found: %s", task_id)
            return False
        if pending.complete():
            logger.info("Completed task: %s name: %s", task_id, pending.name)
            return True
        logger.info("Task found but callback is missing: %s", task_id)
        return False

    def create_app(self) -> web.Application:
        """Build the web application serving the engine's API."""
        app = web.Application()
        self.router.register_routes(app)
        return app

    async def _close_db(self, app: web.Application) -> None:
        self.db.close()

    def start(self) -> None:
        """Open the database, load stored models and serve until stopped."""
        logger.info("Starting engine %s", self.name)
        logger.info("Initializing database")
        self.db.initialize()
        logger.info("Initializing router")
        app = self.create_app()
        app.on_cleanup.append(self._close_db)
        logger.info("Loading process models")
        self.load_process_models()
        logger.info("Engine running on http://localhost:%s", self.port)
        self.started_at = datetime.now().astimezone()
        web.run_app(app, port=int(self.port), print=None)