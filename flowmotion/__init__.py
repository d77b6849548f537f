"""A small BPMN process engine with an HTTP API, SQLite storage and WebSocket events."""

__version__ = "0.0.1"