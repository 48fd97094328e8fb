"""Tests for tree flattening."""

import pytest

from treeflow.flattener import (
    CycleDetected,
    LeafDescriptor,
    Materialize,
    flatten,
    flatten_input,
)
from treeflow.spec_parser import parse_experiment


def leaves_of(yaml_text: str, identifier: str = "A") -> list[LeafDescriptor]:
    spec = parse_experiment(yaml_text)
    return flatten_input(spec, identifier)


class TestFlatten:
    def test_single_edge(self):
        leaves = leaves_of("""
inputs: [A]
tree:
  A: [{stages: [s1, s2], output: out.txt}]
""")
        assert leaves == [LeafDescriptor(stages=("s1", "s2"), output="out.txt")]

    def test_branch_point_materializes(self):
        leaves = leaves_of("""
inputs: [A]
tree:
  A: [{stages: [s1], output: B}]
  B:
    - {stages: [s2], output: console}
    - {stages: [s3, s4], output: "c-*.txt"}
""")
        assert leaves == [
            LeafDescriptor(stages=("s1", Materialize("B"), "s2"), output="console"),
            LeafDescriptor(stages=("s1", Materialize("B"), "s3", "s4"), output="c-*.txt"),
        ]

    def test_fan_in_name_expanded_per_occurrence(self):
        # B is the output of edges from both A and C; each expands B's subtree
        leaves = leaves_of("""
inputs: [A]
tree:
  A:
    - {stages: [s1], output: B}
    - {stages: [s5], output: C}
  B:
    - {stages: [s2], output: console}
  C:
    - {stages: [s6], output: B}
""")
        assert leaves == [
            LeafDescriptor(stages=("s1", Materialize("B"), "s2"), output="console"),
            LeafDescriptor(
                stages=("s5", Materialize("C"), "s6", Materialize("B"), "s2"),
                output="console",
            ),
        ]

    def test_passthrough_node_not_materialized(self):
        leaves = leaves_of("""
inputs: [A]
tree:
  A: [{stages: [s1], output: "B*"}]
  "B*": [{stages: [s2], output: C}]
  C: [{stages: [s3], output: console}]
""")
        assert leaves == [
            LeafDescriptor(stages=("s1", "s2", Materialize("C"), "s3"), output="console"),
        ]

    def test_one_leaf_per_path_with_concatenated_stages(self):
        leaves = leaves_of("""
inputs: [A]
tree:
  A:
    - {stages: [a1], output: "B*"}
    - {stages: [a2], output: x.txt}
  "B*":
    - {stages: [b1], output: y.txt}
    - {stages: [b2], output: z.txt}
""")
        assert [(leaf.stages, leaf.output) for leaf in leaves] == [
            (("a1", "b1"), "y.txt"),
            (("a1", "b2"), "z.txt"),
            (("a2",), "x.txt"),
        ]

    def test_stage_names_are_shared_with_spec(self):
        spec = parse_experiment("""
inputs: [A]
tree:
  A: [{stages: [s1], output: out}]
""")
        leaf = flatten_input(spec, "A")[0]
        assert leaf.stages[0] is spec.tree["A"][0].stages[0]

    def test_accumulated_prefix(self):
        spec = parse_experiment("""
inputs: [A]
tree:
  A: [{stages: [s1], output: out}]
""")
        leaves = flatten(spec, ("pre",), spec.tree["A"])
        assert leaves[0].stages == ("pre", "s1")


class TestCycles:
    def test_cycle_detected(self):
        spec = parse_experiment("""
inputs: [A]
tree:
  A: [{stages: [s1], output: B}]
  B: [{stages: [s2], output: A}]
""")
        with pytest.raises(CycleDetected) as exc_info:
            flatten_input(spec, "A")
        assert exc_info.value.path == ("A", "B", "A")

    def test_self_loop_detected(self):
        spec = parse_experiment("""
inputs: [A]
tree:
  A: [{stages: [s1], output: "B*"}]
  "B*": [{stages: [s2], output: "B*"}]
""")
        with pytest.raises(CycleDetected):
            flatten_input(spec, "A")


def test_materialize_str():
    assert str(Materialize("B")) == "output:B"
