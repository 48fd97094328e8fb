"""
Stage Registry.

Maps stage names used in experiment files to Stage classes. Names are only
ever looked up, never evaluated.
"""

from typing import Type

from .base import Stage


class StageNotFound(Exception):
    """No stage registered under the requested name."""

    def __init__(self, name: str, known: list[str] | None = None):
        self.name = name
        message = f"No stage registered with name: {name}"
        if known:
            message += f" (known stages: {', '.join(sorted(known))})"
        super().__init__(message)


class StageRegistry:
    """A registry of stage classes, keyed by name."""

    def __init__(self):
        self._stages: dict[str, Type[Stage]] = {}

    def register(self, name: str):
        """
        Decorator to register a stage.

        Usage:
            @registry.register("nullFilter")
            class NullFilter(Stage):
                ...
        """
        def decorator(cls: Type[Stage]):
            self._stages[name] = cls
            cls.stage_name = name
            return cls
        return decorator

    def lookup(self, name: str) -> Stage:
        """
        Get a stage instance by name.

        Raises:
            StageNotFound: If no stage is registered under the name
        """
        if name not in self._stages:
            raise StageNotFound(name, self.names())

        return self._stages[name]()

    def names(self) -> list[str]:
        """List all registered stage names."""
        return list(self._stages.keys())

    def is_registered(self, name: str) -> bool:
        return name in self._stages

    def copy(self) -> "StageRegistry":
        """A new registry starting with the same stages."""
        registry = StageRegistry()
        registry._stages.update(self._stages)
        return registry


# Registry populated by the built-in stage modules
default_registry = StageRegistry()


def register_stage(name: str):
    """Register a stage class in the default registry."""
    return default_registry.register(name)
