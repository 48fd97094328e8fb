"""
Pipeline Builder.

Turns (input, leaf descriptor) pairs into pipelines of executable units:

    input acquisition -> resolved leaf stages -> terminal sink

Every stage name is resolved here, so an unknown name fails the build before
anything runs.
"""

from dataclasses import dataclass, field
from typing import Any

from .config import RunConfig
from .flattener import LeafDescriptor, Materialize, StageRef, flatten_input
from .spec_parser import CONSOLE_OUTPUT, ExperimentSpec, InputKind, InputSpec
from .stages import StageContext, StageRegistry, Unit, default_registry
from .stages import combinators as fancy

# Legacy spelling of a materialize step inside a stage list
MATERIALIZE_PREFIX = "output:"

# Stages producing a mapping per value; their results are flattened back out
FLATTENED_STAGES = {"template", "tracePIDSplitter"}


@dataclass
class BuildContext:
    """Everything the builder needs besides the experiment itself."""
    config: RunConfig
    registry: StageRegistry = field(default_factory=lambda: default_registry)
    device: Any = None

    def stage_unit(self, name: str, input_spec: InputSpec | None = None) -> Unit:
        """Look up a stage and bind it to this context."""
        stage = self.registry.lookup(name)
        ctx = StageContext(
            config=self.config,
            stage_name=name,
            input=input_spec,
            device=self.device,
        )
        return stage.as_unit(ctx)


@dataclass
class Pipeline:
    """A fully resolved pipeline for one leaf of one input."""
    input: InputSpec
    leaf: LeafDescriptor
    units: list[Unit]

    @property
    def label(self) -> str:
        return f"{self.input.identifier} -> {self.leaf.output}"

    def __len__(self) -> int:
        return len(self.units)


def write_units(input_spec: InputSpec, target: str, ctx: BuildContext) -> list[Unit]:
    """Rename keys to output names, then write every (name, value) pair."""
    return [
        fancy.key_map(fancy.output_name(input_spec, target)),
        fancy.map_to_tuples(),
        fancy.map_each(ctx.stage_unit("toFile", input_spec)),
    ]


def materialize_unit(input_spec: InputSpec, target: str, ctx: BuildContext) -> Unit:
    """Write the value as `target` while passing it on unchanged."""
    return fancy.chain(f"output:{target}", [
        fancy.tee(),
        *[fancy.right(unit) for unit in write_units(input_spec, target, ctx)],
        fancy.just_left(),
    ])


def resolve(stage: StageRef, input_spec: InputSpec, ctx: BuildContext) -> Unit:
    """
    Resolve a stage reference into a unit.

    Raises:
        StageNotFound: If the stage name is not registered
    """
    if isinstance(stage, Materialize):
        return materialize_unit(input_spec, stage.target, ctx)

    if stage.startswith(MATERIALIZE_PREFIX):
        return materialize_unit(input_spec, stage[len(MATERIALIZE_PREFIX):], ctx)

    unit = fancy.value_map(ctx.stage_unit(stage, input_spec))

    if stage in FLATTENED_STAGES:
        return fancy.chain(stage, [unit, fancy.de_map()])

    return unit


def input_units(input_spec: InputSpec, ctx: BuildContext) -> list[Unit]:
    """Units producing the initial {name: value} mapping for an input."""
    if input_spec.kind == InputKind.CAPTURE:
        reader = "telemetrySave"
    elif input_spec.kind == InputKind.CAPTURE_NO_STYLE:
        reader = "telemetrySaveNoStyle"
    elif input_spec.kind == InputKind.FILE_TEXT:
        reader = "fileToString"
    else:
        reader = "fileToJSON"

    if input_spec.is_capture:
        source = [fancy.immediate(input_spec.pattern), fancy.listify()]
    else:
        source = [fancy.file_inputs(input_spec.pattern, ctx.config)]

    return source + [
        fancy.as_keys(),
        fancy.value_map(ctx.stage_unit(reader, input_spec)),
    ]


def sink_units(input_spec: InputSpec, output: str, ctx: BuildContext) -> list[Unit]:
    """Units delivering the final value to its sink."""
    if output == CONSOLE_OUTPUT:
        return [ctx.stage_unit("taggedConsoleOutput", input_spec)]
    return write_units(input_spec, output, ctx)


def build(
    spec: ExperimentSpec,
    input_spec: InputSpec,
    leaf: LeafDescriptor,
    ctx: BuildContext,
) -> Pipeline:
    """Build the pipeline for one leaf descriptor of one input."""
    units = input_units(input_spec, ctx)
    units.extend(resolve(stage, input_spec, ctx) for stage in leaf.stages)
    units.extend(sink_units(input_spec, leaf.output, ctx))
    return Pipeline(input=input_spec, leaf=leaf, units=units)


def build_all(spec: ExperimentSpec, ctx: BuildContext) -> list[Pipeline]:
    """
    Build every pipeline of an experiment, in input order then leaf order.

    Raises:
        CycleDetected: If an input's tree is cyclic
        StageNotFound: If any stage name is unknown
    """
    pipelines = []
    for input_spec in spec.inputs:
        for leaf in flatten_input(spec, input_spec.identifier):
            pipelines.append(build(spec, input_spec, leaf, ctx))
    return pipelines
