"""Tests for stage resolution and pipeline building."""

import json

import pytest

from treeflow.builder import BuildContext, Pipeline, build, build_all, resolve
from treeflow.executor import PipelineExecutor
from treeflow.flattener import LeafDescriptor, Materialize
from treeflow.spec_parser import parse_experiment, parse_input
from treeflow.stages import StageNotFound
from treeflow.stages.combinators import key_map


async def run_units(pipeline: Pipeline):
    value = None
    for unit in pipeline.units:
        value = await unit(value)
    return value


class FakeDevice:
    """Stands in for the telemetry device."""

    def __init__(self):
        self.captured: list[tuple[str, bool]] = []

    async def capture(self, url: str, styled: bool = True):
        self.captured.append((url, styled))
        return {"url": url, "styled": styled}


@pytest.fixture
def ctx(config, registry) -> BuildContext:
    return BuildContext(config=config, registry=registry)


class TestResolve:
    @pytest.mark.asyncio
    async def test_registry_stage_maps_values(self, ctx):
        unit = resolve("upper", parse_input("*.txt"), ctx)
        assert await unit({"a.txt": "x", "b.txt": "y"}) == {"a.txt": "X", "b.txt": "Y"}

    @pytest.mark.asyncio
    async def test_materialize_tees_and_writes(self, ctx, tmp_path):
        unit = resolve(Materialize("mid-*.json"), parse_input("in-*.json"), ctx)
        value = {"in-1.json": {"a": 1}}

        result = await unit(value)

        assert result == value
        assert json.loads((tmp_path / "mid-1.json").read_text()) == {"a": 1}

    @pytest.mark.asyncio
    async def test_legacy_output_prefix(self, ctx, tmp_path):
        unit = resolve("output:copy-*.txt", parse_input("in-*.txt"), ctx)
        result = await unit({"in-2.txt": "hello"})

        assert result == {"in-2.txt": "hello"}
        assert (tmp_path / "copy-2.txt").read_text() == "hello"

    @pytest.mark.asyncio
    async def test_flattened_stage(self, ctx):
        unit = resolve("tracePIDSplitter", parse_input("t-*.json"), ctx)
        trace = {"traceEvents": [{"pid": 1, "n": "a"}, {"pid": 2, "n": "b"}, {"pid": 1, "n": "c"}]}

        result = await unit({"t-1.json": trace})

        assert list(result) == ["t-1.json.1", "t-1.json.2"]
        assert [e["n"] for e in result["t-1.json.1"]["traceEvents"]] == ["a", "c"]

    def test_unknown_stage(self, ctx):
        with pytest.raises(StageNotFound) as exc_info:
            resolve("doesNotExist", parse_input("a"), ctx)
        assert exc_info.value.name == "doesNotExist"


class TestBuild:
    @pytest.mark.asyncio
    async def test_file_input_to_file_output(self, ctx, write_json, tmp_path):
        write_json("trace-1.json", {"v": 1})
        write_json("trace-2.json", {"v": 2})
        write_json("other.json", {"v": 3})

        spec = parse_experiment("""
inputs: ["trace-*.json"]
tree:
  "trace-*.json": [{stages: [nullFilter], output: "out-*.html"}]
""")
        pipelines = build_all(spec, ctx)
        assert len(pipelines) == 1

        await run_units(pipelines[0])

        assert json.loads((tmp_path / "out-1.html").read_text()) == {"v": 1}
        assert json.loads((tmp_path / "out-2.html").read_text()) == {"v": 2}
        assert not (tmp_path / "out-other.html").exists()

    @pytest.mark.asyncio
    async def test_text_input(self, ctx, tmp_path):
        (tmp_path / "note-a.txt").write_text("quiet")
        leaf = LeafDescriptor(stages=("upper",), output="loud-*.txt")

        pipeline = build(None, parse_input("!note-*.txt"), leaf, ctx)
        await run_units(pipeline)

        assert (tmp_path / "loud-a.txt").read_text() == "QUIET"

    @pytest.mark.asyncio
    async def test_capture_input(self, config, registry):
        device = FakeDevice()
        ctx = BuildContext(config=config, registry=registry, device=device)
        leaf = LeafDescriptor(stages=("nullFilter",), output="console")

        styled = build(None, parse_input("http://example.com"), leaf, ctx)
        unstyled = build(None, parse_input("!http://example.com"), leaf, ctx)
        await run_units(styled)
        await run_units(unstyled)

        assert device.captured == [("http://example.com", True), ("http://example.com", False)]

    @pytest.mark.asyncio
    async def test_console_sink(self, ctx, write_json, capsys):
        write_json("data-1.json", {"k": "v"})
        leaf = LeafDescriptor(stages=(), output="console")

        await run_units(build(None, parse_input("data-*.json"), leaf, ctx))

        out = capsys.readouterr().out
        assert "data-1.json:" in out
        assert '"k": "v"' in out

    @pytest.mark.asyncio
    async def test_intermediate_and_leaf_outputs(self, ctx, tmp_path):
        (tmp_path / "in-1.txt").write_text("abc")
        spec = parse_experiment("""
inputs: ["!in-*.txt"]
tree:
  "!in-*.txt": [{stages: [upper], output: "mid-*.txt"}]
  "mid-*.txt": [{stages: [countKeys], output: "len-*.txt"}]
""")
        await run_units(build_all(spec, ctx)[0])

        assert (tmp_path / "mid-1.txt").read_text() == "ABC"
        assert (tmp_path / "len-1.txt").read_text() == "3"

    def test_pipelines_do_not_share_units(self, ctx):
        spec = parse_experiment("""
inputs: [a, b]
tree:
  a: [{stages: [upper], output: console}, {stages: [upper], output: x}]
  b: [{stages: [upper], output: console}]
""")
        pipelines = build_all(spec, ctx)

        assert [p.label for p in pipelines] == ["a -> console", "a -> x", "b -> console"]
        unit_ids = [id(u) for p in pipelines for u in p.units]
        assert len(unit_ids) == len(set(unit_ids))

    def test_unknown_stage_fails_before_running(self, ctx, write_json, tmp_path):
        write_json("in-1.json", {})
        spec = parse_experiment("""
inputs: ["in-*.json"]
tree:
  "in-*.json":
    - {stages: [nullFilter], output: "first-*.json"}
    - {stages: [doesNotExist], output: "second-*.json"}
""")
        with pytest.raises(StageNotFound):
            build_all(spec, ctx)

        assert not (tmp_path / "first-1.json").exists()


@pytest.mark.asyncio
async def test_build_runs_under_executor(ctx, write_json, tmp_path):
    write_json("trace-1.json", {"traceEvents": []})
    leaf = LeafDescriptor(stages=("toJSONString",), output="out-*.html")

    result = await PipelineExecutor().run(build(None, parse_input("trace-*.json"), leaf, ctx))

    assert result.success
    assert json.loads((tmp_path / "out-1.html").read_text()) == {"traceEvents": []}


class TestKeyMap:
    @pytest.mark.asyncio
    async def test_renames_keys(self):
        unit = key_map(str.upper)
        assert await unit({"a": 1, "b": 2}) == {"A": 1, "B": 2}

    @pytest.mark.asyncio
    async def test_colliding_names_raise(self):
        unit = key_map(lambda key: "same.json")
        with pytest.raises(ValueError, match="same.json"):
            await unit({"a": 1, "b": 2})
