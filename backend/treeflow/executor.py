"""
Pipeline Executor.

Runs one pipeline: each unit's result becomes the next unit's input, strictly
in order. The first unit receives None. A failing unit stops the pipeline;
the failure is reported, never raised.
"""

import logging
import time
import traceback
from dataclasses import dataclass
from typing import Any, Callable

from .builder import Pipeline

logger = logging.getLogger(__name__)


class UnitFailure(Exception):
    """A unit raised while a pipeline was running."""

    def __init__(self, pipeline: str, index: int, unit: str, cause: BaseException):
        self.pipeline = pipeline
        self.index = index
        self.unit = unit
        self.cause = cause
        self.stack = "".join(
            traceback.format_exception(type(cause), cause, cause.__traceback__)
        )
        super().__init__(
            f"Pipeline '{pipeline}' failed at unit {index} ({unit}): "
            f"{type(cause).__name__}: {cause}"
        )


@dataclass
class PipelineResult:
    """Result of running a single pipeline."""
    label: str
    success: bool
    units_run: int
    duration_ms: int
    error: UnitFailure | None = None


class PipelineExecutor:
    """
    Executes pipelines one unit at a time.

    Usage:
        executor = PipelineExecutor()
        result = await executor.run(pipeline)
    """

    async def run(
        self,
        pipeline: Pipeline,
        on_done: Callable[[], Any] | None = None,
        on_error: Callable[[UnitFailure], Any] | None = None,
    ) -> PipelineResult:
        """
        Run a pipeline to completion or first failure.

        Args:
            pipeline: The pipeline to run
            on_done: Called once, with no arguments, after the last unit
            on_error: Called once with the UnitFailure if a unit raises

        Returns:
            PipelineResult
        """
        start = time.time()
        value: Any = None

        for index, unit in enumerate(pipeline.units):
            logger.debug(f"[{pipeline.label}] unit {index}: {unit.name}")
            try:
                value = await unit(value)
            except Exception as e:
                failure = UnitFailure(pipeline.label, index, unit.name, e)
                if on_error:
                    on_error(failure)
                return PipelineResult(
                    label=pipeline.label,
                    success=False,
                    units_run=index + 1,
                    duration_ms=int((time.time() - start) * 1000),
                    error=failure,
                )

        if on_done:
            on_done()

        return PipelineResult(
            label=pipeline.label,
            success=True,
            units_run=len(pipeline.units),
            duration_ms=int((time.time() - start) * 1000),
        )


async def run_pipeline(
    pipeline: Pipeline,
    on_done: Callable[[], Any] | None = None,
    on_error: Callable[[UnitFailure], Any] | None = None,
) -> PipelineResult:
    """Convenience function to run a single pipeline."""
    return await PipelineExecutor().run(pipeline, on_done, on_error)
