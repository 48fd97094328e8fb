"""
Stage combinators.

Small building blocks that compose units over the key/value mappings flowing
through a pipeline. Values are dicts keyed by concrete input name; pairs are
2-tuples.

    tee          v            -> (v, v)
    right(u)     (l, r)       -> (l, u(r))
    just_left    (l, r)       -> l
    key_map(f)   {k: v}       -> {f(k): v}
    value_map(u) {k: v}       -> {k: u(v)}
    de_map       {k: {s: v}}  -> {"k.s": v}
    map_to_tuples {k: v}      -> [(k, v)]
    map_each(u)  [x]          -> [u(x)]
"""

import logging
from typing import Any, Callable, Iterable

from ..config import RunConfig
from ..naming import matches, substitute_output
from ..spec_parser import InputSpec
from .base import Unit

logger = logging.getLogger(__name__)


def chain(name: str, units: Iterable[Unit]) -> Unit:
    """Compose units into one, running them in order."""
    units = list(units)

    async def run(value: Any) -> Any:
        for unit in units:
            value = await unit(value)
        return value

    return Unit(name, run)


def immediate(value: Any) -> Unit:
    """Ignore the incoming value and produce `value`."""
    async def run(_: Any) -> Any:
        return value

    return Unit("immediate", run)


def listify() -> Unit:
    async def run(value: Any) -> list[Any]:
        return [value]

    return Unit("listify", run)


def as_keys() -> Unit:
    """Turn a list of names into a mapping of each name to itself."""
    async def run(names: list[str]) -> dict[str, Any]:
        return {name: name for name in names}

    return Unit("asKeys", run)


def file_inputs(pattern: str, config: RunConfig) -> Unit:
    """List files in the working directory matching an input pattern."""
    async def run(_: Any) -> list[str]:
        base = config.work_dir
        names = sorted(
            path.relative_to(base).as_posix()
            for path in base.glob(pattern)
            if path.is_file()
        )
        names = [name for name in names if matches(pattern, name)]
        if not names:
            logger.warning(f"No files in {base} match '{pattern}'")
        return names

    return Unit("fileInputs", run)


def tee() -> Unit:
    async def run(value: Any) -> tuple[Any, Any]:
        return value, value

    return Unit("tee", run)


def right(unit: Unit) -> Unit:
    """Apply `unit` to the right side of a pair."""
    async def run(pair: tuple[Any, Any]) -> tuple[Any, Any]:
        left, right_value = pair
        return left, await unit(right_value)

    return Unit(f"right({unit.name})", run)


def just_left() -> Unit:
    async def run(pair: tuple[Any, Any]) -> Any:
        return pair[0]

    return Unit("justLeft", run)


def key_map(fn: Callable[[str], str]) -> Unit:
    """
    Rename every key of a mapping.

    Raises:
        ValueError: If two keys are renamed to the same name
    """
    async def run(mapping: dict[str, Any]) -> dict[str, Any]:
        result = {}
        sources = {}
        for key, value in mapping.items():
            new_key = fn(key)
            if new_key in result:
                raise ValueError(
                    f"Keys '{sources[new_key]}' and '{key}' both map to '{new_key}'"
                )
            result[new_key] = value
            sources[new_key] = key
        return result

    return Unit("keyMap", run)


def value_map(unit: Unit) -> Unit:
    """Apply `unit` to every value of a mapping, one at a time."""
    async def run(mapping: dict[str, Any]) -> dict[str, Any]:
        result = {}
        for key, value in mapping.items():
            result[key] = await unit(value)
        return result

    return Unit(f"valueMap({unit.name})", run)


def de_map() -> Unit:
    """Flatten one level of nested mappings, joining keys with '.'."""
    async def run(mapping: dict[str, Any]) -> dict[str, Any]:
        result = {}
        for key, value in mapping.items():
            if isinstance(value, dict):
                for sub_key, sub_value in value.items():
                    result[f"{key}.{sub_key}"] = sub_value
            else:
                result[key] = value
        return result

    return Unit("deMap", run)


def map_to_tuples() -> Unit:
    async def run(mapping: dict[str, Any]) -> list[tuple[str, Any]]:
        return list(mapping.items())

    return Unit("mapToTuples", run)


def map_each(unit: Unit) -> Unit:
    """Apply `unit` to every element of a list, one at a time."""
    async def run(items: list[Any]) -> list[Any]:
        return [await unit(item) for item in items]

    return Unit(f"map({unit.name})", run)


def output_name(input_spec: InputSpec, target: str) -> Callable[[str], str]:
    """Key function renaming concrete input names to output names."""
    def rename(key: str) -> str:
        return substitute_output(input_spec.pattern, key, target)

    return rename
