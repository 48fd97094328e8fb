#!/usr/bin/env python3
"""
treeflow CLI - Command-line interface for running experiment trees.

Usage:
    treeflow run experiment.yaml              # Run an experiment
    treeflow validate experiment.yaml         # Parse and build without running
    treeflow show experiment.yaml             # Show the flattened pipelines
    treeflow stages                           # List registered stages
"""

import asyncio
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from treeflow import (
    CycleDetected,
    ExperimentRunner,
    ParseError,
    StageNotFound,
    default_registry,
    flatten_input,
    get_config,
    load_env_file,
    load_experiment,
)

console = Console()

# Errors that stop a run before any pipeline starts
BUILD_ERRORS = (ParseError, StageNotFound, CycleDetected, ValidationError)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def parse_flags(flags: tuple[str, ...]) -> dict:
    """Parse repeated key=value options; values are read as YAML scalars."""
    parsed = {}
    for flag in flags:
        if "=" not in flag:
            raise click.BadParameter(f"expected key=value, got '{flag}'", param_hint="--flag")
        key, value = flag.split("=", 1)
        parsed[key.strip()] = yaml.safe_load(value) if value else ""
    return parsed


def make_runner(work_dir: str | None, flags: tuple[str, ...], verbose: bool = False) -> ExperimentRunner:
    overrides = parse_flags(flags)
    if work_dir:
        overrides["work_dir"] = Path(work_dir)
    return ExperimentRunner(config=get_config(**overrides), verbose=verbose)


@click.group()
@click.version_option(version="0.1.0", prog_name="treeflow")
@click.option("--env-file", type=click.Path(), help="Environment file to load")
def cli(env_file: str | None):
    """treeflow - Experiment Tree Runner"""
    load_env_file(env_file)


@cli.command()
@click.argument("experiment", type=click.Path(exists=True))
@click.option("--work-dir", "-C", type=click.Path(exists=True, file_okay=False),
              help="Directory inputs are read from and outputs written to")
@click.option("--flag", "-f", "flags", multiple=True,
              help="Option override as key=value (repeatable)")
@click.option("--strict", is_flag=True,
              help="Exit with status 1 if any pipeline failed")
@click.option("--verbose", "-v", is_flag=True,
              help="Show detailed output")
def run(experiment: str, work_dir: str | None, flags: tuple[str, ...], strict: bool, verbose: bool):
    """Run an experiment."""
    configure_logging(verbose)

    try:
        spec = load_experiment(experiment)
        runner = make_runner(work_dir, flags, verbose)
        # Every pipeline is built before the first one runs
        result = asyncio.run(runner.run(spec))
    except BUILD_ERRORS as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        sys.exit(1)

    if result.pipelines_failed:
        console.print(f"\n[yellow]{result.pipelines_failed} pipeline(s) failed:[/yellow]")
        for failure in result.failures:
            console.print(f"  • {escape(str(failure))}")
        if strict:
            sys.exit(1)


@cli.command()
@click.argument("experiment", type=click.Path(exists=True))
@click.option("--work-dir", "-C", type=click.Path(exists=True, file_okay=False))
def validate(experiment: str, work_dir: str | None):
    """Parse an experiment and build its pipelines without running them."""
    try:
        spec = load_experiment(experiment)
        pipelines = make_runner(work_dir, ()).build(spec)
    except BUILD_ERRORS as e:
        console.print(f"[red]✗[/red] Validation failed: {escape(str(e))}")
        sys.exit(1)

    console.print(f"[green]✓[/green] Experiment '{escape(spec.name)}' is valid")
    console.print()

    table = Table(title="Experiment Summary")
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    table.add_row("Name", spec.name)
    table.add_row("Inputs", str(len(spec.inputs)))
    table.add_row("Tree nodes", str(len(spec.tree)))
    table.add_row("Pipelines", str(len(pipelines)))
    table.add_row("Flags", ", ".join(spec.flags) or "-")

    console.print(table)


@cli.command()
@click.argument("experiment", type=click.Path(exists=True))
def show(experiment: str):
    """Show the pipelines an experiment flattens into."""
    try:
        spec = load_experiment(experiment)
        root = Tree(f"[bold]{escape(spec.name)}[/bold]")
        for input_spec in spec.inputs:
            branch = root.add(f"[cyan]{escape(input_spec.identifier)}[/cyan] ({input_spec.kind.value})")
            for leaf in flatten_input(spec, input_spec.identifier):
                stages = " → ".join(str(s) for s in leaf.stages) or "(no stages)"
                branch.add(f"{escape(stages)} ⇒ [green]{escape(leaf.output)}[/green]")
    except BUILD_ERRORS as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        sys.exit(1)

    console.print(root)


@cli.command()
def stages():
    """List registered stage names."""
    for name in sorted(default_registry.names()):
        console.print(f"  • {name}")


def main():
    cli()


if __name__ == "__main__":
    main()
