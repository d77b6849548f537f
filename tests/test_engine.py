import asyncio
import sqlite3

import pytest
from aiohttp import web

from flowmotion.bpmn import BpmnParseError, parse_bpmn_string
from flowmotion.database import Database
from flowmotion.engine import Engine
from flowmotion.handlers import PendingTask

SAMPLE = """<definitions id="defs_1">
  <process id="proc_1" name="Order">
    <startEvent id="start"><outgoing>f1</outgoing></startEvent>
    <task id="task_a" name="Review"><incoming>f1</incoming><outgoing>f2</outgoing></task>
    <endEvent id="end"><incoming>f2</incoming></endEvent>
    <sequenceFlow id="f1" sourceRef="start" targetRef="task_a"/>
    <sequenceFlow id="f2" sourceRef="task_a" targetRef="end"/>
  </process>
</definitions>"""


@pytest.fixture
def engine(tmp_path):
    eng = Engine("test_engine", "0", tmp_path / "engine.db")
    eng.db.initialize()
    yield eng
    eng.db.close()


async def _wait(check, attempts=300):
    for _ in range(attempts):
        if check():
            return True
        await asyncio.sleep(0.01)
    return check()


def test_add_process_definition_registers_models(engine):
    engine.add_process_definition(parse_bpmn_string(SAMPLE))
    model = engine.process_models["proc_1"]
    assert model.definition_id == "defs_1"
    assert model.name == "Order"
    assert "definitions" in engine.process_definitions
    assert len(engine.db.load_all_xmls()) == 1


def test_add_duplicate_definition_is_tolerated(engine):
    engine.add_process_definition(parse_bpmn_string(SAMPLE))
    engine.add_process_definition(parse_bpmn_string(SAMPLE))
    assert len(engine.db.load_all_xmls()) == 1
    assert list(engine.process_models) == ["proc_1"]


def test_load_and_add_from_file(engine, tmp_path):
    path = tmp_path / "order.bpmn"
    path.write_text(SAMPLE)
    engine.load_and_add_process_definition(path)
    assert engine.process_models["proc_1"].tasks[0].name == "Review"
    with pytest.raises(sqlite3.IntegrityError):
        engine.load_and_add_process_definition(path)


def test_load_and_add_missing_file(engine, tmp_path):
    with pytest.raises(BpmnParseError):
        engine.load_and_add_process_definition(tmp_path / "nope.bpmn")
    assert engine.process_models == {}


def test_load_process_models_skips_broken(tmp_path):
    db_path = tmp_path / "stored.db"
    with Database(db_path) as db:
        db.save_definition(parse_bpmn_string(SAMPLE))
    with sqlite3.connect(db_path) as conn:
        conn.execute("INSERT INTO definitions (id, xml) VALUES (?, ?)", ("bad", "<broken"))
    conn.close()

    eng = Engine("reload", "0", db_path)
    eng.db.initialize()
    try:
        eng.load_process_models()
        assert set(eng.process_models) == {"proc_1"}
        assert eng.process_models["proc_1"].definition_id == "defs_1"
    finally:
        eng.db.close()


def test_complete_pending_task(engine):
    calls = []
    engine.register_pending_task("t1", PendingTask("Review", "Order", "pi", lambda: calls.append(1)))
    assert "t1" in engine.pending_tasks
    assert engine.complete_pending_task("t1") is True
    assert calls == [1]
    assert engine.pending_tasks == {}
    assert engine.complete_pending_task("t1") is False


def test_complete_pending_task_without_callback(engine):
    engine.register_pending_task("t2", PendingTask("Review", "Order", "pi"))
    assert engine.complete_pending_task("t2") is False
    assert "t2" not in engine.pending_tasks


def test_create_app_has_routes(engine):
    app = engine.create_app()
    assert isinstance(app, web.Application)
    paths = {r.canonical for r in app.router.resources()}
    assert "/go_motion/api/v1/tasks" in paths
    assert "/ws" in paths


@pytest.mark.asyncio
async def test_start_process_runs_to_completion(engine):
    engine.add_process_definition(parse_bpmn_string(SAMPLE))
    instance = engine.start_process("proc_1", {"amount": 3})
    assert engine.process_instances[instance.id] is instance

    assert await _wait(lambda: len(engine.pending_tasks) == 1)
    (task_id, pending), = engine.pending_tasks.items()
    assert pending.process_instance_id == instance.id
    assert engine.complete_pending_task(task_id) is True

    assert await _wait(lambda: instance.state == "finished")
    records = engine.db.list_process_instances()
    assert [r.id for r in records] == [instance.id]
    assert records[0].state == "finished"
    assert records[0].current_element == ""


@pytest.mark.asyncio
async def test_start_unknown_model_does_not_run(engine):
    instance = engine.start_process("missing", None)
    await asyncio.sleep(0.05)
    assert instance.state == ""
    assert instance.id in engine.process_instances
    assert engine.db.list_process_instances() == []