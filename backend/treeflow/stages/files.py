"""
File Stages.

Reading inputs and materializing results:
  - fileToJSON: read a file and parse it as JSON
  - fileToString: read a file as text
  - toFile: write a (name, value) pair
"""

import json
import logging
from typing import Any

import aiofiles

from .base import Stage, StageContext
from .registry import register_stage

logger = logging.getLogger(__name__)


def serialize(value: Any) -> str:
    """Text written for a value: strings as-is, everything else as JSON."""
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, default=str)


@register_stage("fileToString")
class FileToString(Stage):
    """Read the named file as UTF-8 text."""

    async def run(self, value: Any, ctx: StageContext) -> str:
        path = ctx.config.resolve_path(value)
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            return await f.read()


@register_stage("fileToJSON")
class FileToJSON(Stage):
    """Read the named file and parse it as JSON."""

    async def run(self, value: Any, ctx: StageContext) -> Any:
        path = ctx.config.resolve_path(value)
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            content = await f.read()
        return json.loads(content)


@register_stage("toFile")
class ToFile(Stage):
    """
    Write a value to a file.

    Expects a (name, value) pair; the name is resolved against the working
    directory. Write errors propagate.
    """

    async def run(self, value: Any, ctx: StageContext) -> str:
        if not isinstance(value, (tuple, list)) or len(value) != 2:
            raise TypeError(f"toFile expects a (name, value) pair, got {type(value).__name__}")

        name, data = value
        path = ctx.config.resolve_path(name)
        path.parent.mkdir(parents=True, exist_ok=True)

        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(serialize(data))

        logger.info(f'written results into "{name}".')
        return str(name)
