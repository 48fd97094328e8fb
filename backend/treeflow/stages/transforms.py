"""
Transform Stages.

Generic value transforms:
  - nullFilter: pass the value through unchanged
  - toJSONString / fromJSONString: JSON encoding
  - tracePIDSplitter: split a trace into one trace per process id
  - template: render every template in the template directory
"""

import json
from collections import defaultdict
from typing import Any

import aiofiles

from ..templates import TemplateError, substitute_template, validate_template
from .base import Stage, StageContext
from .registry import register_stage


@register_stage("nullFilter")
class NullFilter(Stage):
    async def run(self, value: Any, ctx: StageContext) -> Any:
        return value


@register_stage("toJSONString")
class ToJSONString(Stage):
    async def run(self, value: Any, ctx: StageContext) -> str:
        return json.dumps(value, indent=2, default=str)


@register_stage("fromJSONString")
class FromJSONString(Stage):
    async def run(self, value: Any, ctx: StageContext) -> Any:
        return json.loads(value)


@register_stage("tracePIDSplitter")
class TracePIDSplitter(Stage):
    """
    Split a trace into one trace per process.

    Accepts either a bare list of trace events or an object with a
    `traceEvents` list. Produces a mapping of pid to
    `{"traceEvents": [...]}`, preserving event order. Events without a pid
    are grouped under "unknown".
    """

    async def run(self, value: Any, ctx: StageContext) -> dict[str, Any]:
        if isinstance(value, dict):
            events = value.get("traceEvents")
        else:
            events = value
        if not isinstance(events, list):
            raise ValueError("tracePIDSplitter expects a list of trace events")

        by_pid: dict[str, list[Any]] = defaultdict(list)
        for event in events:
            pid = event.get("pid") if isinstance(event, dict) else None
            by_pid["unknown" if pid is None else str(pid)].append(event)

        return {pid: {"traceEvents": evs} for pid, evs in by_pid.items()}


@register_stage("template")
class TemplateStage(Stage):
    """
    Render the value through every template in the template directory.

    Produces a mapping of template file stem to rendered text.
    """

    async def run(self, value: Any, ctx: StageContext) -> dict[str, str]:
        template_dir = ctx.config.resolve_path(ctx.config.template_dir)
        if not template_dir.is_dir():
            raise FileNotFoundError(f"Template directory not found: {template_dir}")

        templates = {}
        for path in sorted(p for p in template_dir.iterdir() if p.is_file()):
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                templates[path.stem] = await f.read()

        # Nothing is rendered unless every template's options resolve
        errors = [
            f"{stem}: {error}"
            for stem, template in templates.items()
            for error in validate_template(template, ctx.config)
        ]
        if errors:
            raise TemplateError("; ".join(errors))

        return {
            stem: substitute_template(template, value, ctx.config)
            for stem, template in templates.items()
        }
