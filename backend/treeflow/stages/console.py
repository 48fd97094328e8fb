"""Console output stage."""

from typing import Any

from rich.console import Console

from .base import Stage, StageContext
from .files import serialize
from .registry import register_stage

console = Console()


@register_stage("taggedConsoleOutput")
class TaggedConsoleOutput(Stage):
    """Print each value of a mapping under its key."""

    async def run(self, value: Any, ctx: StageContext) -> None:
        items = value.items() if isinstance(value, dict) else [(None, value)]

        for key, data in items:
            if key is not None:
                console.print(f"{key}:", style="bold", markup=False, highlight=False)
            console.print(serialize(data), markup=False, highlight=False, soft_wrap=True)

        return None
