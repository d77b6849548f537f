"""SQLite storage for definitions and process instances."""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from flowmotion.bpmn import Definitions, ProcessInstanceRecord

logger = logging.getLogger(__name__)

_CREATE_DEFINITIONS = """
CREATE TABLE IF NOT EXISTS definitions (
    id TEXT PRIMARY KEY,
    xml TEXT
)
"""

_CREATE_PROCESS_INSTANCES = """
CREATE TABLE IF NOT EXISTS process_instances (
    id TEXT PRIMARY KEY,
    process_model_name TEXT,
    current_element TEXT,
    started_at DATETIME,
    finished_at DATETIME,
    state TEXT
)
"""


def _rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.astimezone()
    text = value.replace(microsecond=0).isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


class Database:
    """Persistence for BPMN definitions and process instance state."""

    def __init__(self, path: str | Path = "go_motion.db") -> None:
        self.path = str(path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def __enter__(self) -> "Database":
        self.initialize()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def initialize(self) -> None:
        """Open the database file, creating it and its tables if needed."""
        conn = sqlite3.connect(self.path, check_same_thread=False)
        with conn:
            conn.execute(_CREATE_DEFINITIONS)
            conn.execute(_CREATE_PROCESS_INSTANCES)
        self.close()
        self._conn = conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> list[tuple]:
        if self._conn is None:
            raise RuntimeError("database is not initialized")
        with self._lock, self._conn as conn:
            return conn.execute(sql, params).fetchall()

    def save_definition(self, definition: Definitions) -> None:
        """Store a definitions document as XML; its id must be new."""
        self._execute(
            "INSERT INTO definitions (id, xml) VALUES (?, ?)",
            (definition.id, definition.to_xml()),
        )

    def load_all_xmls(self) -> list[str]:
        return [row[0] for row in self._execute("SELECT xml FROM definitions")]

    def save_process_instance(self, instance: Any) -> None:
        logger.info("Saving process instance %s", instance.id)
        self._execute(
            "INSERT INTO process_instances (id, process_model_name, current_element,"
            " started_at, finished_at, state) VALUES (?, ?, ?, ?, ?, ?)",
            (
                instance.id,
                instance.process_model.name,
                None,
                _rfc3339(instance.started_at),
                None,
                instance.state,
            ),
        )

    def persist_process_instance(self, instance: Any) -> None:
        """Update the state and current element of a stored instance."""
        logger.info("Updating process instance %s at %s", instance.id, instance.current_element)
        self._execute(
            "UPDATE process_instances SET state = ?, current_element = ? WHERE id = ?",
            (instance.state, instance.current_element, instance.id),
        )

    def finish_process_instance(self, instance: Any) -> None:
        logger.info("Finishing process instance %s", instance.id)
        self._execute(
            "UPDATE process_instances SET state = ?, current_element = ?, finished_at = ?"
            " WHERE id = ?",
            (
                instance.state,
                instance.current_element,
                _rfc3339(instance.finished_at),
                instance.id,
            ),
        )

    def list_process_instances(self) -> list[ProcessInstanceRecord]:
        rows = self._execute(
            "SELECT id, process_model_name, current_element, started_at, finished_at, state"
            " FROM process_instances"
        )
        return [
            ProcessInstanceRecord(
                id=row[0],
                process_model_name=row[1] or "",
                current_element=row[2] or "",
                started_at=_parse_time(row[3]),
                finished_at=_parse_time(row[4]),
                state=row[5] or "",
            )
            for row in rows
        ]

    def delete_process_instances(self) -> None:
        self._execute("DELETE FROM process_instances")