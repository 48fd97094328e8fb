"""
Experiment Specification Parser

Parses and validates YAML experiment definitions.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml


# Sink keyword for standard output
CONSOLE_OUTPUT = "console"

# Trailing marker on an intermediate output that suppresses its own write
SUPPRESS_MARKER = "*"

# Prefix marking raw-text file reads / unstyled captures
NEGATION_MARKER = "!"

URL_PREFIXES = ("http://", "https://")

# Glob characters file patterns may not use; only `*` is a wildcard
UNSUPPORTED_GLOB_CHARS = "?[]"


class ParseError(Exception):
    """Error parsing experiment spec."""
    pass


# =============================================================================
# Inputs
# =============================================================================

class InputKind(str, Enum):
    """How an input identifier is acquired."""
    FILE = "file"                          # structured (JSON) file read
    FILE_TEXT = "file_text"                # raw text file read
    CAPTURE = "capture"                    # network capture, styled
    CAPTURE_NO_STYLE = "capture_no_style"  # network capture, unstyled


@dataclass(frozen=True)
class InputSpec:
    """
    A parsed input identifier.

    Examples:
        trace-*.json        -> InputSpec(kind=FILE, pattern="trace-*.json")
        !notes-*.txt        -> InputSpec(kind=FILE_TEXT, pattern="notes-*.txt")
        http://a.com        -> InputSpec(kind=CAPTURE, pattern="http://a.com")
        !http://a.com       -> InputSpec(kind=CAPTURE_NO_STYLE, pattern="http://a.com")
    """
    identifier: str
    kind: InputKind
    pattern: str

    @property
    def is_capture(self) -> bool:
        return self.kind in (InputKind.CAPTURE, InputKind.CAPTURE_NO_STYLE)

    def __str__(self) -> str:
        return self.identifier


def parse_input(identifier: str) -> InputSpec:
    """Parse an input identifier into an InputSpec."""
    negated = identifier.startswith(NEGATION_MARKER)
    pattern = identifier[len(NEGATION_MARKER):] if negated else identifier

    if not pattern:
        raise ParseError(f"Empty input identifier: '{identifier}'")

    if pattern.startswith(URL_PREFIXES):
        kind = InputKind.CAPTURE_NO_STYLE if negated else InputKind.CAPTURE
    else:
        kind = InputKind.FILE_TEXT if negated else InputKind.FILE
        unsupported = sorted(set(pattern) & set(UNSUPPORTED_GLOB_CHARS))
        if unsupported:
            raise ParseError(
                f"Input '{identifier}' uses unsupported glob characters "
                f"{''.join(unsupported)}; only '*' is a wildcard"
            )

    return InputSpec(identifier=identifier, kind=kind, pattern=pattern)


# =============================================================================
# Tree
# =============================================================================

class OutputPolicy(str, Enum):
    """What happens at the node an edge leads to."""
    SINK = "sink"                # not a tree key; the path ends here
    MATERIALIZE = "materialize"  # internal node, written then continued
    PASSTHROUGH = "passthrough"  # internal node, only descendants are written


@dataclass(frozen=True)
class Edge:
    """A single branch transition: stages applied in order, then `output`."""
    stages: tuple[str, ...]
    output: str
    policy: OutputPolicy = OutputPolicy.SINK


@dataclass(frozen=True)
class ExperimentSpec:
    """Complete experiment specification."""
    name: str
    inputs: tuple[InputSpec, ...]
    tree: Mapping[str, tuple[Edge, ...]]
    flags: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def edges_for(self, identifier: str) -> tuple[Edge, ...]:
        return self.tree[identifier]

    def is_internal(self, identifier: str) -> bool:
        return identifier in self.tree


def _parse_shorthand_edge(text: str, path: str) -> dict[str, Any]:
    """Parse the "stage1 stage2 -> output" shorthand."""
    if "->" not in text:
        raise ParseError(f"Edge at {path} must look like 'stages -> output', got '{text}'")

    stages_part, output = text.rsplit("->", 1)
    return {"stages": stages_part.split(), "output": output.strip()}


def parse_edge(data: Any, tree_keys: set[str], path: str = "") -> Edge:
    """Parse a single edge from YAML data."""
    if isinstance(data, str):
        data = _parse_shorthand_edge(data, path)

    if not isinstance(data, dict):
        raise ParseError(f"Edge at {path} must be a mapping or a 'stages -> output' string")

    output = data.get("output")
    if not isinstance(output, str) or not output.strip():
        raise ParseError(f"Edge at {path} missing required 'output' field")
    output = output.strip()

    stages = data.get("stages", [])
    if isinstance(stages, str):
        stages = stages.split()
    if not isinstance(stages, list) or not all(isinstance(s, str) for s in stages):
        raise ParseError(f"Edge at {path} has invalid 'stages': expected a list of names")

    materialize = data.get("materialize")
    if materialize is not None and not isinstance(materialize, bool):
        raise ParseError(f"Edge at {path} has non-boolean 'materialize'")

    if output not in tree_keys:
        policy = OutputPolicy.SINK
    elif materialize is None:
        policy = (
            OutputPolicy.PASSTHROUGH if output.endswith(SUPPRESS_MARKER)
            else OutputPolicy.MATERIALIZE
        )
    else:
        policy = OutputPolicy.MATERIALIZE if materialize else OutputPolicy.PASSTHROUGH

    return Edge(stages=tuple(stages), output=output, policy=policy)


def parse_tree(data: Any) -> dict[str, tuple[Edge, ...]]:
    """Parse the branch tree."""
    if not isinstance(data, dict):
        raise ParseError("Experiment 'tree' must be a mapping of identifiers to edge lists")

    tree_keys = {str(k) for k in data}
    tree: dict[str, tuple[Edge, ...]] = {}

    for key, edges_data in data.items():
        key = str(key)
        # A single edge may be written without the surrounding list
        if isinstance(edges_data, (dict, str)):
            edges_data = [edges_data]
        if not isinstance(edges_data, list) or not edges_data:
            raise ParseError(f"Tree node '{key}' must have at least one edge")

        tree[key] = tuple(
            parse_edge(e, tree_keys, f"tree['{key}'][{i}]")
            for i, e in enumerate(edges_data)
        )

    return tree


def parse_experiment(yaml_content: str, name: str | None = None) -> ExperimentSpec:
    """Parse a YAML experiment specification."""
    try:
        data = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise ParseError(f"Invalid YAML: {e}")

    if not isinstance(data, dict):
        raise ParseError("Experiment must be a YAML mapping")

    if "inputs" not in data:
        raise ParseError("Experiment missing required 'inputs' field")
    if "tree" not in data:
        raise ParseError("Experiment missing required 'tree' field")

    raw_inputs = data["inputs"]
    if isinstance(raw_inputs, str):
        raw_inputs = [raw_inputs]
    if not isinstance(raw_inputs, list) or not all(isinstance(i, str) for i in raw_inputs):
        raise ParseError("Experiment 'inputs' must be a list of identifiers")

    flags = data.get("flags") or {}
    if not isinstance(flags, dict):
        raise ParseError("Experiment 'flags' must be a mapping")

    tree = parse_tree(data["tree"])

    for identifier in raw_inputs:
        if identifier not in tree:
            raise ParseError(f"Input '{identifier}' has no edges in 'tree'")

    return ExperimentSpec(
        name=str(data.get("name") or name or "experiment"),
        inputs=tuple(parse_input(i) for i in raw_inputs),
        tree=MappingProxyType(tree),
        flags=MappingProxyType(dict(flags)),
    )


def load_experiment(path: Path | str) -> ExperimentSpec:
    """Load and parse an experiment from a file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Experiment file not found: {path}")

    return parse_experiment(path.read_text(), name=path.stem)
