"""
Stages for Pipeline Execution.

Each stage name used in an experiment has a corresponding Stage class that
knows how to transform one value. Importing this package registers the
built-in stages in the default registry.
"""

from .base import Stage, StageContext, Unit
from .registry import (
    StageNotFound,
    StageRegistry,
    default_registry,
    register_stage,
)

# Import all stage modules to register them
from . import console, files, telemetry, transforms

__all__ = [
    "Stage",
    "StageContext",
    "Unit",
    "StageNotFound",
    "StageRegistry",
    "default_registry",
    "register_stage",
]
