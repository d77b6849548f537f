"""Event types and a WebSocket broadcaster for engine activity."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from aiohttp import web

from flowmotion.bpmn import _json_time

logger = logging.getLogger(__name__)


@dataclass
class Event:
    """An event concerning a flow node."""

    name: str
    type: str
    id: str
    element_name: str = ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "type": self.type,
            "id": self.id,
            "element_name": self.element_name,
        }


@dataclass
class ProcessInstanceEvent:
    name: str
    type: str
    id: str
    process_model_name: str = ""
    current_element: str = ""
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "type": self.type,
            "id": self.id,
            "process_model_name": self.process_model_name,
            "current_element": self.current_element,
            "started_at": _json_time(self.started_at),
            "finished_at": _json_time(self.finished_at),
        }


@dataclass
class TaskEvent:
    name: str
    type: str
    id: str
    element_name: str = ""
    process_instance_id: str = ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "type": self.type,
            "id": self.id,
            "element_name": self.element_name,
            "process_instance_id": self.process_instance_id,
        }


class EventManager:
    """Keeps track of WebSocket clients and sends events to all of them."""

    def __init__(self) -> None:
        self.clients: set[Any] = set()
        self._lock = asyncio.Lock()

    def add_client(self, ws: Any) -> None:
        self.clients.add(ws)
        logger.info("New WebSocket client connected")

    def remove_client(self, ws: Any) -> None:
        self.clients.discard(ws)
        logger.info("Client disconnected and removed")

    async def handle_connection(self, request: web.Request) -> web.WebSocketResponse:
        """Upgrade the request and keep the client until it disconnects."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.add_client(ws)
        try:
            async for _ in ws:
                pass
        finally:
            self.remove_client(ws)
            await ws.close()
        return ws

    async def broadcast(self, event: Any) -> None:
        """Send an event, or a JSON-ready mapping, to every connected client."""
        payload = event.to_dict() if hasattr(event, "to_dict") else event
        try:
            message = json.dumps(payload)
        except (TypeError, ValueError) as exc:
            logger.error("Error encoding event: %s", exc)
            return
        async with self._lock:
            for ws in list(self.clients):
                try:
                    await ws.send_str(message)
                except (ConnectionError, RuntimeError) as exc:
                    logger.warning("WebSocket send error: %s", exc)
                    self.clients.discard(ws)
                    with contextlib.suppress(Exception):
                        await ws.close()