[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "flowmotion"
version = "0.0.1"
description = "A small BPMN process engine with an HTTP API, SQLite persistence and live WebSocket events"
requires-python = ">=3.10"
keywords = ["bpmn", "workflow", "process engine", "business process", "websocket", "aiohttp"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Framework :: AsyncIO",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Groupware",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]
dependencies = [
    "aiohttp",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
flowmotion = "flowmotion.server:main"

[tool.hatch.build.targets.wheel]
packages = ["flowmotion"]

[tool.hatch.build.targets.sdist]
include = ["flowmotion", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"
