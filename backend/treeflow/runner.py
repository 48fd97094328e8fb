"""
Experiment Runner.

Drives a whole experiment:
  - Applying experiment flags to the run configuration
  - Flattening the tree and building every pipeline up front
  - Running pipelines one at a time, in build order
  - Isolating pipeline failures so the batch always completes
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from .builder import BuildContext, Pipeline, build_all
from .config import RunConfig, get_config
from .executor import PipelineExecutor, UnitFailure
from .spec_parser import ExperimentSpec, load_experiment, parse_experiment
from .stages import StageRegistry, default_registry
from .stages.telemetry import TelemetryDevice

logger = logging.getLogger(__name__)

console = Console()


@dataclass
class RunResult:
    """Result of a full experiment run."""
    pipelines_run: int
    pipelines_failed: int
    duration_ms: int
    failures: list[UnitFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.pipelines_failed == 0


class ExperimentRunner:
    """
    Runs experiment specifications.

    Usage:
        runner = ExperimentRunner(config)
        result = await runner.run(spec)
    """

    def __init__(
        self,
        config: RunConfig | None = None,
        registry: StageRegistry | None = None,
        verbose: bool = False,
    ):
        self.config = config or get_config()
        self.registry = registry or default_registry
        self.verbose = verbose
        self.executor = PipelineExecutor()

    def prepare(self, spec: ExperimentSpec) -> BuildContext:
        """Apply the experiment's flags and set up the build context."""
        config = self.config.with_flags(spec.flags)

        device = None
        if spec.flags.get("chromium"):
            device = TelemetryDevice.init(config)

        return BuildContext(config=config, registry=self.registry, device=device)

    def build(self, spec: ExperimentSpec) -> list[Pipeline]:
        """
        Build every pipeline for an experiment without running anything.

        Raises:
            CycleDetected: If the tree is cyclic
            StageNotFound: If a stage name is unknown
        """
        return build_all(spec, self.prepare(spec))

    async def run(
        self,
        spec: ExperimentSpec,
        on_complete: Callable[[], Any] | None = None,
    ) -> RunResult:
        """
        Run every pipeline of an experiment.

        Build-time errors propagate before any pipeline starts. Pipeline
        failures are logged and counted; the run carries on with the next
        pipeline.

        Args:
            spec: The experiment
            on_complete: Called once after the last pipeline

        Returns:
            RunResult with counts and failures
        """
        start_time = time.time()
        pipelines = self.build(spec)

        console.print(
            f"[bold blue]Running experiment:[/bold blue] {escape(spec.name)} "
            f"({len(pipelines)} pipeline{'s' if len(pipelines) != 1 else ''})"
        )

        failures: list[UnitFailure] = []

        def log_failure(failure: UnitFailure) -> None:
            logger.error(f"failed pipeline {failure}\n{failure.stack}")
            failures.append(failure)

        for index, pipeline in enumerate(pipelines):
            if self.verbose:
                console.print(f"  [cyan]{index + 1}/{len(pipelines)}[/cyan] {escape(pipeline.label)}")

            result = await self.executor.run(pipeline, on_error=log_failure)

            if result.success:
                console.print(f"    [green]✓[/green] {escape(pipeline.label)} ({result.duration_ms}ms)")
            else:
                console.print(f"    [red]✗[/red] {escape(pipeline.label)}: {escape(str(result.error.cause))}")

        duration_ms = int((time.time() - start_time) * 1000)

        console.print(Panel(
            f"Pipelines run: {len(pipelines)}\n"
            f"Failed: {len(failures)}\n"
            f"Duration: {duration_ms / 1000:.1f}s",
            title="Summary",
            border_style="green" if not failures else "yellow",
        ))

        if on_complete:
            on_complete()

        return RunResult(
            pipelines_run=len(pipelines),
            pipelines_failed=len(failures),
            duration_ms=duration_ms,
            failures=failures,
        )


async def run_experiment(
    experiment: ExperimentSpec | Path | str,
    config: RunConfig | None = None,
    registry: StageRegistry | None = None,
    verbose: bool = False,
) -> RunResult:
    """
    Convenience function to run an experiment.

    Args:
        experiment: A parsed spec, a path to a YAML file, or YAML text
        config: Run configuration (defaults from the environment)
        registry: Stage registry (defaults to the built-in stages)
        verbose: Show per-pipeline progress

    Returns:
        RunResult
    """
    if isinstance(experiment, ExperimentSpec):
        spec = experiment
    elif isinstance(experiment, Path):
        spec = load_experiment(experiment)
    else:
        spec = parse_experiment(experiment)

    runner = ExperimentRunner(config=config, registry=registry, verbose=verbose)
    return await runner.run(spec)
