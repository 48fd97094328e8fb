"""
treeflow Experiment Package.

Provides:
  - Experiment specification parsing
  - Tree flattening into linear pipelines
  - Stage registry and built-in stages
  - Pipeline building and sequential execution
  - Run configuration
"""

from .config import (
    RunConfig,
    get_config,
    load_env_file,
)

from .spec_parser import (
    CONSOLE_OUTPUT,
    Edge,
    ExperimentSpec,
    InputKind,
    InputSpec,
    OutputPolicy,
    ParseError,
    load_experiment,
    parse_experiment,
    parse_input,
)

from .naming import (
    pattern_to_regex,
    substitute_output,
)

from .templates import (
    TemplateError,
    substitute_template,
    validate_template,
)

from .flattener import (
    CycleDetected,
    LeafDescriptor,
    Materialize,
    flatten,
    flatten_input,
)

from .stages import (
    Stage,
    StageContext,
    StageNotFound,
    StageRegistry,
    Unit,
    default_registry,
    register_stage,
)

from .builder import (
    BuildContext,
    Pipeline,
    build,
    build_all,
    resolve,
)

from .executor import (
    PipelineExecutor,
    PipelineResult,
    UnitFailure,
    run_pipeline,
)

from .runner import (
    ExperimentRunner,
    RunResult,
    run_experiment,
)

__all__ = [
    # Configuration
    "RunConfig",
    "get_config",
    "load_env_file",

    # Spec parsing
    "CONSOLE_OUTPUT",
    "Edge",
    "ExperimentSpec",
    "InputKind",
    "InputSpec",
    "OutputPolicy",
    "ParseError",
    "load_experiment",
    "parse_experiment",
    "parse_input",

    # Naming and templates
    "pattern_to_regex",
    "substitute_output",
    "TemplateError",
    "substitute_template",
    "validate_template",

    # Flattening
    "CycleDetected",
    "LeafDescriptor",
    "Materialize",
    "flatten",
    "flatten_input",

    # Stages
    "Stage",
    "StageContext",
    "StageNotFound",
    "StageRegistry",
    "Unit",
    "default_registry",
    "register_stage",

    # Building
    "BuildContext",
    "Pipeline",
    "build",
    "build_all",
    "resolve",

    # Execution
    "PipelineExecutor",
    "PipelineResult",
    "UnitFailure",
    "run_pipeline",
    "ExperimentRunner",
    "RunResult",
    "run_experiment",
]
