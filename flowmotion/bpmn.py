"""BPMN model types, XML parsing and serialisation, and API record types."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path

_ZERO_TIME = "0001-01-01T00:00:00Z"


class BpmnParseError(ValueError):
    """Raised when a BPMN document cannot be read or parsed."""


def _json_time(value: datetime | None) -> str:
    """Format a timestamp as RFC 3339 with trimmed fractional seconds."""
    if value is None:
        return _ZERO_TIME
    if value.tzinfo is None:
        value = value.astimezone()
    text = value.isoformat()
    head, dot, rest = text.partition(".")
    if dot:
        digits = rest[:6].rstrip("0")
        text = head + ("." + digits if digits else "") + rest[6:]
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def _go_json(value):
    """Rename snake_case keys to the exported field names used in responses."""
    if isinstance(value, dict):
        return {
            "ID" if key == "id" else "".join(p.capitalize() for p in key.split("_")): _go_json(v)
            for key, v in value.items()
        }
    if isinstance(value, list):
        return [_go_json(v) for v in value]
    return value


@dataclass
class StartEvent:
    id: str
    outgoing: list[str] = field(default_factory=list)


@dataclass
class Task:
    id: str
    name: str = ""
    incoming: list[str] = field(default_factory=list)
    outgoing: list[str] = field(default_factory=list)


@dataclass
class EndEvent:
    id: str
    incoming: list[str] = field(default_factory=list)


@dataclass
class SequenceFlow:
    id: str
    source_ref: str = ""
    target_ref: str = ""


@dataclass
class Process:
    """All flow elements of one BPMN process."""

    id: str
    name: str = ""
    start_events: list[StartEvent] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    end_events: list[EndEvent] = field(default_factory=list)
    sequence_flows: list[SequenceFlow] = field(default_factory=list)

    def to_dict(self) -> dict:
        """JSON form of the process as reported after a deployment."""
        return _go_json(asdict(self))


@dataclass
class Definitions:
    """Root element of a BPMN document."""

    id: str
    processes: list[Process] = field(default_factory=list)
    tag: str = "definitions"

    def to_xml(self) -> str:
        """Serialise the definitions to an XML string."""
        root = ET.Element("definitions", {"id": self.id})
        for process in self.processes:
            proc = ET.SubElement(root, "process", {"id": process.id, "name": process.name})
            for start in process.start_events:
                _element(proc, "startEvent", {"id": start.id}, outgoing=start.outgoing)
            for task in process.tasks:
                _element(proc, "task", {"id": task.id, "name": task.name},
                         incoming=task.incoming, outgoing=task.outgoing)
            for end in process.end_events:
                _element(proc, "endEvent", {"id": end.id}, incoming=end.incoming)
            for flow in process.sequence_flows:
                _element(proc, "sequenceFlow",
                         {"id": flow.id, "sourceRef": flow.source_ref, "targetRef": flow.target_ref})
        return ET.tostring(root, encoding="unicode")


@dataclass
class ProcessModel:
    """A deployed process together with the id of its definitions."""

    process: Process
    definition_id: str = ""

    @property
    def id(self) -> str:
        return self.process.id

    @property
    def name(self) -> str:
        return self.process.name

    @property
    def start_events(self) -> list[StartEvent]:
        return self.process.start_events

    @property
    def tasks(self) -> list[Task]:
        return self.process.tasks

    @property
    def end_events(self) -> list[EndEvent]:
        return self.process.end_events

    @property
    def sequence_flows(self) -> list[SequenceFlow]:
        return self.process.sequence_flows

    def to_dict(self) -> dict:
        return {"name": self.name, "id": self.id, "definition_id": self.definition_id}


@dataclass
class EngineInfo:
    name: str
    version: str
    started_at: datetime | None = None

    def to_dict(self) -> dict:
        return {"name": self.name, "version": self.version, "started_at": _json_time(self.started_at)}


@dataclass
class ProcessInstanceRecord:
    """A stored process instance as returned by the API."""

    id: str
    process_model_name: str
    current_element: str
    started_at: datetime | None
    finished_at: datetime | None
    state: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "process_model_name": self.process_model_name,
            "current_element": self.current_element,
            "started_at": _json_time(self.started_at),
            "finished_at": None if self.finished_at is None else _json_time(self.finished_at),
            "state": self.state,
        }


def _element(parent: ET.Element, tag: str, attrs: dict, **texts: list[str]) -> None:
    el = ET.SubElement(parent, tag, attrs)
    for child_tag, values in texts.items():
        for value in values:
            ET.SubElement(el, child_tag).text = value


def _local(tag: str) -> str:
    return tag.rpartition("}")[2]


def _children(element: ET.Element, name: str) -> list[ET.Element]:
    return [c for c in element if isinstance(c.tag, str) and _local(c.tag) == name]


def _texts(element: ET.Element, name: str) -> list[str]:
    return ["".join(c.itertext()) for c in _children(element, name)]


def _process_from(el: ET.Element) -> Process:
    return Process(
        id=el.get("id", ""),
        name=el.get("name", ""),
        start_events=[StartEvent(e.get("id", ""), _texts(e, "outgoing"))
                      for e in _children(el, "startEvent")],
        tasks=[Task(t.get("id", ""), t.get("name", ""), _texts(t, "incoming"), _texts(t, "outgoing"))
               for t in _children(el, "task")],
        end_events=[EndEvent(e.get("id", ""), _texts(e, "incoming"))
                    for e in _children(el, "endEvent")],
        sequence_flows=[SequenceFlow(f.get("id", ""), f.get("sourceRef", ""), f.get("targetRef", ""))
                        for f in _children(el, "sequenceFlow")],
    )


def _parse(data: str | bytes, prefix: str) -> Definitions:
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise BpmnParseError(f"{prefix}: {exc}") from exc
    name = _local(root.tag)
    if name != "definitions":
        raise BpmnParseError(f"{prefix}: expected element type <definitions> but have <{name}>")
    return Definitions(
        id=root.get("id", ""),
        processes=[_process_from(p) for p in _children(root, "process")],
        tag=name,
    )


def parse_bpmn_file(file_path: str | Path) -> Definitions:
    """Read and parse a BPMN file."""
    try:
        data = Path(file_path).read_bytes()
    except OSError as exc:
        raise BpmnParseError(f"could not open file: {exc}") from exc
    return _parse(data, "failed to parse BPMN XML")


def parse_bpmn_string(xml_string: str) -> Definitions:
    """Parse a BPMN document held in a string."""
    return _parse(xml_string, "failed to parse xml")