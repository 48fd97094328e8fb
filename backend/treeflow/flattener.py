"""
Tree Flattener.

Expands an experiment's branch tree into linear leaf descriptors: one per
root-to-sink path, depth-first, edge order preserved. Internal nodes insert a
Materialize marker unless their edge is a passthrough.
"""

from dataclasses import dataclass
from typing import Sequence, Union

from .spec_parser import Edge, ExperimentSpec, OutputPolicy


class CycleDetected(Exception):
    """The branch tree loops back onto the current path."""

    def __init__(self, path: Sequence[str]):
        self.path = tuple(path)
        super().__init__(f"Cycle detected in experiment tree: {' -> '.join(self.path)}")


@dataclass(frozen=True)
class Materialize:
    """Write the current value as `target` and carry on with it."""
    target: str

    def __str__(self) -> str:
        return f"output:{self.target}"


StageRef = Union[str, Materialize]


@dataclass(frozen=True)
class LeafDescriptor:
    """A single flattened root-to-sink path."""
    stages: tuple[StageRef, ...]
    output: str


def flatten(
    spec: ExperimentSpec,
    current_stages: Sequence[StageRef],
    edges: Sequence[Edge],
    _path: tuple[str, ...] = (),
) -> list[LeafDescriptor]:
    """
    Flatten `edges` into leaf descriptors.

    Args:
        spec: The experiment
        current_stages: Stages accumulated on the way to this node
        edges: The edges leaving this node
        _path: Identifiers on the current recursion path

    Returns:
        Leaf descriptors in depth-first order

    Raises:
        CycleDetected: If an edge leads back to an identifier on the path
    """
    leaves: list[LeafDescriptor] = []

    for edge in edges:
        new_stages = tuple(current_stages) + edge.stages

        if spec.is_internal(edge.output):
            if edge.output in _path:
                raise CycleDetected(_path + (edge.output,))

            if edge.policy != OutputPolicy.PASSTHROUGH:
                new_stages += (Materialize(edge.output),)

            leaves.extend(flatten(
                spec,
                new_stages,
                spec.edges_for(edge.output),
                _path + (edge.output,),
            ))
        else:
            leaves.append(LeafDescriptor(stages=new_stages, output=edge.output))

    return leaves


def flatten_input(spec: ExperimentSpec, identifier: str) -> list[LeafDescriptor]:
    """Flatten the tree rooted at an input identifier."""
    return flatten(spec, (), spec.edges_for(identifier), (identifier,))
