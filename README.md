# flowmotion

flowmotion is a small BPMN process engine. You deploy BPMN process
definitions over HTTP, start process instances, and complete their tasks
through a JSON API. Definitions and process instances are stored in a
SQLite database. Every step an instance takes is broadcast to connected
WebSocket clients as it happens.

## What it understands

A process may contain these BPMN elements:

- `startEvent`: where an instance begins. The engine uses the first one in the process.
- `task`: a step that waits until someone completes it through the API.
- `endEvent`: where an instance ends.
- `sequenceFlow`: the connections between the elements above.

Elements are matched by their local name, so namespaced documents
(`bpmn:definitions`, `bpmn:task`, …) are read as well. Other elements are
ignored.

An instance runs from its start event along the outgoing sequence flows.
When it reaches a task, it registers a pending task and waits. When that
task is completed, the instance moves on. The instance finishes when it
reaches an end event or an element it cannot continue from, for example a
task with no outgoing flow or an element of a kind listed above as ignored.

## Running the server

Install the package together with its dependency, `aiohttp`, then start
the engine:

```
flowmotion
```

The command takes these options:

| Option | Default | Meaning |
| --- | --- | --- |
| `--name` | `motion_engine` | Engine name reported by `/info` |
| `--port` | `6969` | Port to listen on |
| `--db` | `go_motion.db` | SQLite database file, created if missing |

On start the engine opens the database, registers the process models of
every stored definition, and serves the API. It logs its activity at INFO
level.

## HTTP API

All API routes live below `/go_motion/api/v1`, and every response allows
cross-origin requests. `OPTIONS` requests are answered with `200` and the
CORS headers.

| Method | Path | What it does |
| --- | --- | --- |
| GET | `/` (and any other unknown path) | Serves `html/index.html` from the working directory; `500` if the file cannot be read |
| GET | `/go_motion/api/v1/info` | Engine name, version and start time |
| POST | `/go_motion/api/v1/process_definitions` | Deploys a BPMN document sent as `{"xml": "<definitions ...>"}` |
| GET | `/go_motion/api/v1/process_models` | Lists deployed process models with `name`, `id` and `definition_id` |
| POST | `/go_motion/api/v1/start/{processModelId}` | Starts an instance; an optional JSON object in the body is its token |
| GET | `/go_motion/api/v1/process_instances` | Lists stored process instances (`null` when there are none) |
| DELETE | `/go_motion/api/v1/process_instances` | Deletes all stored process instances |
| GET | `/go_motion/api/v1/tasks` | Lists pending tasks |
| POST | `/go_motion/api/v1/tasks/{taskId}/complete` | Completes a pending task; `404` if there is no such task |
| GET | `/ws` | WebSocket connection for live events |

A deployment that is not valid JSON is answered with `400`. A document that
is not well-formed XML, or whose root is not `definitions`, is answered
with `500`. A successful deployment returns a message and the deployed
processes.

A process instance is reported as:

```json
{
  "id": "…",
  "process_model_name": "Order handling",
  "current_element": "Task_Check",
  "started_at": "2024-01-01T12:00:00Z",
  "finished_at": null,
  "state": "running"
}
```

A pending task is reported as:

```json
{
  "name": "pending",
  "type": "task",
  "id": "…",
  "element_name": "Check order",
  "process_instance_id": "…"
}
```

## Live events

Connect a WebSocket client to `/ws` to receive every event as a JSON text
message:

- Process instances send `started`, `running` and `finished` events of type `processinstance`.
- Start events send `executing` and `finished` events of type `startevent`.
- End events send `executing` and `finished` events of type `endevent`.
- Tasks send `executing`, `pending` and `finished` events of type `task`.

## Using the engine from Python

`Engine.load_and_add_process_definition` stores the definition, so the
database has to be open first:

```python
from flowmotion.engine import Engine

engine = Engine("my_engine", "6969", "flowmotion.db")
engine.db.initialize()
engine.load_and_add_process_definition("order.bpmn")
engine.start()
```

A definition id can be stored only once. Loading a file whose definitions
id is already in the database raises `sqlite3.IntegrityError`. A duplicate
deployed over HTTP is still registered in memory, and the failure to store
it is only logged.

BPMN documents can also be read without an engine:

```python
from flowmotion.bpmn import BpmnParseError, parse_bpmn_file

try:
    definitions = parse_bpmn_file("order.bpmn")
except BpmnParseError as exc:
    print(f"cannot read the model: {exc}")
else:
    print(definitions.to_xml())
```

`Database` can be used on its own as a context manager. It opens and
creates the tables on entry and closes on exit.

## What it does not do

- Running instances and pending tasks live in memory only. After a restart,
  stored instances are still listed, but they are not resumed, and their
  tasks cannot be completed.
- The token passed when starting an instance is handed to every element,
  but no element reads it. Instances carry no process data.
- Gateways, events other than plain start and end events, and task types
  other than `task` are not supported.
- There is no authentication. Any client can deploy models and complete tasks.