"""Configuration management for treeflow runs."""

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


def load_env_file(env_path: Optional[str] = None) -> Path | None:
    """Load environment file from specified path or search common locations.

    Priority:
    1. Explicitly provided path (CLI flag or TREEFLOW_ENV_FILE)
    2. .env.local in current directory
    3. .env in current directory
    """
    explicit_path = env_path or os.getenv("TREEFLOW_ENV_FILE")
    if explicit_path:
        path = Path(explicit_path).expanduser().resolve()
        if path.exists():
            load_dotenv(path)
            return path
        else:
            logger.warning(f"Specified env file not found: {path}")

    cwd = Path.cwd()
    for path in (cwd / ".env.local", cwd / ".env"):
        if path.exists():
            load_dotenv(path)
            return path

    return None


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(f"TREEFLOW_{name}", default)


class RunConfig(BaseModel):
    """
    Options for a single experiment run.

    Built once per run and passed to every unit that needs it. Experiment
    flags that don't match a known field are kept as extra attributes so
    stages can read them.
    """
    model_config = ConfigDict(extra="allow", frozen=True)

    # Directory input patterns are matched in and outputs are written to
    work_dir: Path = Field(default_factory=Path.cwd)

    # Chromium checkout; enables the telemetry device when set
    chromium: Optional[str] = Field(default_factory=lambda: _env("CHROMIUM"))
    save_browser: str = Field(default_factory=lambda: _env("SAVE_BROWSER", "system"))

    # Telemetry capture scripts
    python: str = Field(default_factory=lambda: _env("PYTHON", "python"))
    telemetry_dir: Path = Field(default_factory=lambda: Path(_env("TELEMETRY_DIR", "telemetry")))
    telemetry_timeout: float = 300.0

    # Templates rendered by the `template` stage
    template_dir: Path = Field(default_factory=lambda: Path(_env("TEMPLATE_DIR", "templates")))

    def resolve_path(self, path: Path | str) -> Path:
        """Resolve a path relative to the working directory."""
        path = Path(path)
        return path if path.is_absolute() else self.work_dir / path

    def get_option(self, key: str, default: Any = None) -> Any:
        """Read a known or extra option by name."""
        return getattr(self, key, default)

    def with_flags(self, flags: Mapping[str, Any]) -> "RunConfig":
        """
        Return a copy of this config with experiment flags applied.

        Each overridden option is logged, matching how command-line values
        are replaced by values from the experiment file.
        """
        if not flags:
            return self

        # Includes extra (flag-only) options
        current = self.model_dump()

        for key, value in flags.items():
            if key in current and current[key] is not None:
                logger.warning(
                    f"Overriding option {key} from commandline value {current[key]} to {value}"
                )
            current[key] = value

        return RunConfig(**current)


def get_config(**overrides: Any) -> RunConfig:
    """Get the run configuration."""
    return RunConfig(**overrides)
