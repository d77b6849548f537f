import asyncio
import json
from datetime import datetime, timezone

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from flowmotion.events import Event, EventManager, ProcessInstanceEvent, TaskEvent


class FakeSocket:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []
        self.closed = False

    async def send_str(self, message):
        if self.fail:
            raise ConnectionResetError("gone")
        self.sent.append(message)

    async def close(self):
        self.closed = True


async def _wait_for(condition, timeout=3.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition() and loop.time() < deadline:
        await asyncio.sleep(0.01)


def test_event_to_dict():
    event = Event(name="executing", type="startevent", id="abc")
    assert event.to_dict() == {
        "name": "executing",
        "type": "startevent",
        "id": "abc",
        "element_name": "",
    }


def test_task_event_to_dict():
    event = TaskEvent(name="pending", type="task", id="t1", element_name="Check",
                      process_instance_id="p1")
    assert event.to_dict()["process_instance_id"] == "p1"
    assert event.to_dict()["element_name"] == "Check"


def test_process_instance_event_times():
    started = datetime(2024, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
    event = ProcessInstanceEvent(name="started", type="processinstance", id="p",
                                 process_model_name="Order", started_at=started)
    data = event.to_dict()
    assert datetime.fromisoformat(data["started_at"].replace("Z", "+00:00")) == started
    assert data["finished_at"] == "0001-01-01T00:00:00Z"
    assert data["process_model_name"] == "Order"


@pytest.mark.asyncio
async def test_broadcast_reaches_all_clients():
    manager = EventManager()
    first, second = FakeSocket(), FakeSocket()
    manager.add_client(first)
    manager.add_client(second)
    await manager.broadcast(Event(name="finished", type="endevent", id="e1"))
    for sock in (first, second):
        assert [json.loads(m)["id"] for m in sock.sent] == ["e1"]


@pytest.mark.asyncio
async def test_broadcast_drops_failing_client():
    manager = EventManager()
    good, bad = FakeSocket(), FakeSocket(fail=True)
    manager.add_client(good)
    manager.add_client(bad)
    await manager.broadcast({"name": "running"})
    assert manager.clients == {good}
    assert bad.closed
    assert json.loads(good.sent[0]) == {"name": "running"}


@pytest.mark.asyncio
async def test_broadcast_skips_unencodable_event():
    manager = EventManager()
    sock = FakeSocket()
    manager.add_client(sock)
    await manager.broadcast({"bad": object()})
    assert sock.sent == []
    assert manager.clients == {sock}


@pytest.mark.asyncio
async def test_remove_client():
    manager = EventManager()
    sock = FakeSocket()
    manager.add_client(sock)
    manager.remove_client(sock)
    await manager.broadcast({"name": "x"})
    assert manager.clients == set()
    assert sock.sent == []


@pytest.mark.asyncio
async def test_websocket_connection_receives_broadcast():
    manager = EventManager()
    app = web.Application()
    app.router.add_get("/ws", manager.handle_connection)
    async with TestClient(TestServer(app)) as client:
        ws = await client.ws_connect("/ws")
        await _wait_for(lambda: len(manager.clients) == 1)
        assert len(manager.clients) == 1
        await manager.broadcast(TaskEvent(name="pending", type="task", id="t9"))
        message = await ws.receive_json(timeout=3)
        assert message["id"] == "t9"
        assert message["name"] == "pending"
        await ws.close()
        await _wait_for(lambda: not manager.clients)
        assert manager.clients == set()