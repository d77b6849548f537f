"""Command that runs the engine's HTTP server."""

from __future__ import annotations

import argparse
import logging
import sys

from flowmotion.engine import Engine


def _port(value: str) -> str:
    if not value.isdigit() or not 0 < int(value) < 65536:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowmotion", description="Run the BPMN process engine server."
    )
    parser.add_argument("--name", default="motion_engine", help="engine name")
    parser.add_argument("--port", type=_port, default="6969", help="port to listen on")
    parser.add_argument("--db", default="go_motion.db", help="SQLite database file")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s: %(message)s")
    Engine(args.name, args.port, args.db).start()
    return 0


if __name__ == "__main__":
    sys.exit(main())