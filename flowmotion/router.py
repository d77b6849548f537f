"""HTTP routes of the engine's REST API."""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Awaitable, Callable

from aiohttp import web

from flowmotion.bpmn import BpmnParseError, EngineInfo, parse_bpmn_string

logger = logging.getLogger(__name__)

API_BASE = "/go_motion/api/v1"

_ALLOW_ORIGIN = {"Access-Control-Allow-Origin": "*"}

_MIDDLEWARE_CORS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

_DEPLOY_CORS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS, PUT, DELETE",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

_INSTANCES_CORS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _json(payload: Any, status: int = 200, headers: dict[str, str] | None = None) -> web.Response:
    return web.Response(
        text=json.dumps(payload) + "\n",
        status=status,
        content_type="application/json",
        headers=headers,
    )


def _literal_json(body: str, status: int, headers: dict[str, str] | None = None) -> web.Response:
    return web.Response(text=body, status=status, content_type="application/json", headers=headers)


def _error(message: str, status: int, headers: dict[str, str] | None = None) -> web.Response:
    return web.Response(
        text=message + "\n", status=status, content_type="text/plain", headers=headers
    )


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Add permissive CORS headers and answer preflight requests directly."""
    if request.method == "OPTIONS":
        return web.Response(status=200, headers=_MIDDLEWARE_CORS)
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        exc.headers.update(_MIDDLEWARE_CORS)
        raise
    response.headers.update(_MIDDLEWARE_CORS)
    return response


def _xml_field(payload: dict) -> Any:
    if "xml" in payload:
        return payload["xml"]
    for key, value in payload.items():
        if key.lower() == "xml":
            return value
    return ""


class Router:
    """Request handlers bound to one engine."""

    def __init__(self, engine: Any) -> None:
        self.engine = engine
        self.html_path = Path("html") / "index.html"

    def register_routes(self, app: web.Application) -> None:
        """Attach every API route to the application."""
        app.router.add_get("/ws", self.engine.event_manager.handle_connection)
        routes: list[tuple[str, Handler]] = [
            (f"{API_BASE}/info", self.handle_engine_info),
            (f"{API_BASE}/process_definitions", self.handle_deploy_process_model),
            (f"{API_BASE}/process_models", self.handle_process_models),
            (f"{API_BASE}/start/{{processModelId}}", self.handle_start_process_model),
            (f"{API_BASE}/process_instances", self.handle_process_instances),
            (f"{API_BASE}/tasks/{{taskId}}/complete", self.handle_task_completion),
            (f"{API_BASE}/tasks", self.handle_tasks),
        ]
        for path, handler in routes:
            app.router.add_route("*", path, handler)
        # Anything else falls through to the front page.
        app.router.add_route("*", "/{tail:.*}", self.handle_base)

    async def handle_base(self, request: web.Request) -> web.Response:
        try:
            html = self.html_path.read_bytes()
        except OSError as exc:
            logger.error("Error reading file: %s", exc)
            return _error("Could not read HTML file", 500)
        return web.Response(body=html, status=200, content_type="text/html")

    async def handle_engine_info(self, request: web.Request) -> web.Response:
        info = EngineInfo(
            name=self.engine.name,
            version=self.engine.version,
            started_at=self.engine.started_at,
        )
        return _json(info.to_dict(), headers=_ALLOW_ORIGIN)

    async def handle_start_process_model(self, request: web.Request) -> web.Response:
        process_model_id = request.match_info["processModelId"]
        token = None
        raw = (await request.read()).strip()
        if raw:
            try:
                token, _ = json.JSONDecoder().raw_decode(raw.decode("utf-8"))
            except ValueError:
                return _error("invalid token JSON", 400, _ALLOW_ORIGIN)
            if token is not None and not isinstance(token, dict):
                return _error("invalid token JSON", 400, _ALLOW_ORIGIN)
        self.engine.start_process(process_model_id, token)
        return web.Response(status=200, headers=_ALLOW_ORIGIN)

    async def handle_deploy_process_model(self, request: web.Request) -> web.Response:
        if request.method == "OPTIONS":
            return web.Response(status=200, headers=_DEPLOY_CORS)

        body = await request.read()
        try:
            payload = json.loads(body)
        except ValueError:
            return _error("Error while parsing JSON-Request", 400, _DEPLOY_CORS)
        if payload is None:
            xml_text = ""
        elif isinstance(payload, dict):
            xml_text = _xml_field(payload)
            if xml_text is None:
                xml_text = ""
            elif not isinstance(xml_text, str):
                return _error("Error while parsing JSON-Request", 400, _DEPLOY_CORS)
        else:
            return _error("Error while parsing JSON-Request", 400, _DEPLOY_CORS)

        try:
            definitions = parse_bpmn_string(xml_text)
        except BpmnParseError as exc:
            return _error(f"Error while parsing XML: {exc}", 500, _DEPLOY_CORS)

        self.engine.add_process_definition(definitions)
        logger.info("A new BPMN was deployed.")

        processes = [process.to_dict() for process in definitions.processes] or None
        return _json(
            {"message": "Successfully deployed BPMN.", "processes": processes},
            headers=_DEPLOY_CORS,
        )

    async def handle_process_instances(self, request: web.Request) -> web.Response:
        if request.method == "OPTIONS":
            return web.Response(status=200, headers=_INSTANCES_CORS)

        if request.method == "GET":
            try:
                records = self.engine.db.list_process_instances()
            except sqlite3.Error:
                return _error("Failed to query process instances", 500, _INSTANCES_CORS)
            payload = [record.to_dict() for record in records] or None
            return _json(payload, headers=_INSTANCES_CORS)

        if request.method == "DELETE":
            try:
                self.engine.db.delete_process_instances()
            except sqlite3.Error:
                return _error("Failed to delete process instances", 500, _INSTANCES_CORS)
            self.engine.process_instances.clear()
            return _literal_json(
                '{"message": "All process instances deleted successfully"}',
                200,
                _INSTANCES_CORS,
            )

        return _error("Method not allowed", 405, _INSTANCES_CORS)

    async def handle_process_models(self, request: web.Request) -> web.Response:
        models = [model.to_dict() for model in self.engine.process_models.values()]
        return _json(models, headers=_ALLOW_ORIGIN)

    async def handle_tasks(self, request: web.Request) -> web.Response:
        if request.method != "GET":
            return _error('{"error":"Method not allowed"}', 405, _ALLOW_ORIGIN)
        details = [
            {
                "name": "pending",
                "type": "task",
                "id": task_id,
                "element_name": pending.name,
                "process_instance_id": pending.process_instance_id,
            }
            for task_id, pending in list(self.engine.pending_tasks.items())
        ]
        return _json(details, headers=_ALLOW_ORIGIN)

    async def handle_task_completion(self, request: web.Request) -> web.Response:
        task_id = request.match_info["taskId"]
        if self.engine.complete_pending_task(task_id):
            return _literal_json(
                '{"message": "Task completed successfully"}', 200, _ALLOW_ORIGIN
            )
        return _literal_json(
            '{"error": "Task not found or already completed"}', 404, _ALLOW_ORIGIN
        )