"""Test fixtures and configuration."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from treeflow import RunConfig, Stage, StageContext, default_registry


class EventLog:
    """Records stage start/finish events in order."""

    def __init__(self):
        self.events: list[tuple[str, str]] = []

    def add(self, kind: str, what: str) -> None:
        self.events.append((kind, what))


@pytest.fixture
def config(tmp_path) -> RunConfig:
    """Run configuration rooted in a temp working directory."""
    return RunConfig(work_dir=tmp_path, template_dir=tmp_path / "templates")


@pytest.fixture
def write_json(tmp_path):
    """Write a JSON file into the working directory."""
    def write(name: str, data: Any) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data))
        return path
    return write


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()


@pytest.fixture
def registry(event_log):
    """The built-in stages plus a few test stages."""
    reg = default_registry.copy()

    @reg.register("upper")
    class Upper(Stage):
        async def run(self, value: Any, ctx: StageContext) -> Any:
            return str(value).upper()

    @reg.register("countKeys")
    class CountKeys(Stage):
        async def run(self, value: Any, ctx: StageContext) -> Any:
            return len(value)

    @reg.register("explode")
    class Explode(Stage):
        async def run(self, value: Any, ctx: StageContext) -> Any:
            raise RuntimeError("stage exploded")

    @reg.register("record")
    class Record(Stage):
        async def run(self, value: Any, ctx: StageContext) -> Any:
            event_log.add("start", str(ctx.input))
            # Yield so a concurrent pipeline would get a chance to interleave
            await asyncio.sleep(0)
            event_log.add("finish", str(ctx.input))
            return value

    return reg


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "slow: tests that take longer to run")
