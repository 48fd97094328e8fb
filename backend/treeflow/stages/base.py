"""
Base Stage.

Abstract base class for all stages, plus the Unit type that pipelines are
built from.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from ..config import RunConfig
from ..spec_parser import InputSpec


@dataclass
class StageContext:
    """
    Context passed to stages.

    Contains everything a stage may need besides the value itself.
    """
    config: RunConfig
    stage_name: str

    # Input the pipeline was built for (None for stages built standalone)
    input: InputSpec | None = None

    # Telemetry device, set when the run initialised one
    device: Any = None


@dataclass(frozen=True)
class Unit:
    """
    An executable pipeline element.

    Takes the previous unit's value and returns the next one.
    """
    name: str
    fn: Callable[[Any], Awaitable[Any]]

    async def __call__(self, value: Any) -> Any:
        return await self.fn(value)

    def __repr__(self) -> str:
        return f"Unit({self.name})"


class Stage(ABC):
    """
    Abstract base class for stages.

    Each registered stage name has a corresponding subclass that implements
    run(). Stages transform a single value; the builder decides whether they
    see a whole key/value mapping or one value of it.
    """

    # Override in subclasses (set by the registry decorator)
    stage_name: str = "base"

    @abstractmethod
    async def run(self, value: Any, ctx: StageContext) -> Any:
        """
        Run the stage.

        Args:
            value: Input value
            ctx: Stage context

        Returns:
            The transformed value
        """
        pass

    def as_unit(self, ctx: StageContext) -> Unit:
        """Bind this stage to a context."""
        async def call(value: Any) -> Any:
            return await self.run(value, ctx)

        return Unit(self.stage_name, call)
