"""
Telemetry Capture Stages.

Captures a page through Chromium's telemetry tooling by running a capture
script in a subprocess and parsing its JSON output:
  - telemetrySave: capture with computed styles
  - telemetrySaveNoStyle: capture without computed styles
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any

from ..config import RunConfig
from .base import Stage, StageContext
from .registry import register_stage

logger = logging.getLogger(__name__)

SAVE_SCRIPT = "save.py"


class TelemetryError(Exception):
    """A capture subprocess failed."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class TelemetryDevice:
    """
    Runs telemetry capture scripts.

    The subprocess environment gets Chromium's telemetry package on
    PYTHONPATH when a Chromium checkout is configured.
    """

    def __init__(self, config: RunConfig):
        self.config = config
        self.env = self._build_env()

    @classmethod
    def init(cls, config: RunConfig) -> "TelemetryDevice":
        """Initialise the device for a run, checking the Chromium checkout."""
        device = cls(config)
        if config.chromium and not Path(config.chromium).is_dir():
            logger.warning(f"Chromium checkout not found: {config.chromium}")
        logger.info(f"Telemetry device ready (browser={config.save_browser})")
        return device

    def _build_env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self.config.chromium:
            telemetry_path = str(Path(self.config.chromium) / "tools" / "telemetry")
            existing = env.get("PYTHONPATH")
            env["PYTHONPATH"] = f"{existing}{os.pathsep}{telemetry_path}" if existing else telemetry_path
        return env

    def save_command(self, url: str, styled: bool = True) -> list[str]:
        script = self.config.resolve_path(self.config.telemetry_dir) / SAVE_SCRIPT
        args = [self.config.python, str(script), f"--browser={self.config.save_browser}"]
        if not styled:
            args.append("--no-style")
        return args + ["--", url]

    async def run_script(self, args: list[str]) -> str:
        """Run a capture script and return its stdout."""
        logger.debug(f"Running {' '.join(args)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.env,
                cwd=str(self.config.work_dir),
            )
        except OSError as e:
            raise TelemetryError(f"Could not start {args[0]}: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.config.telemetry_timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise TelemetryError(
                f"Capture timed out after {self.config.telemetry_timeout:.0f}s"
            )

        stderr_text = stderr.decode("utf-8", errors="replace")
        if stderr_text:
            logger.info(f"stderr: {stderr_text.strip()}")

        if process.returncode != 0:
            raise TelemetryError(
                f"{Path(args[1]).name} exited with status {process.returncode}",
                returncode=process.returncode,
                stderr=stderr_text,
            )

        return stdout.decode("utf-8")

    async def capture(self, url: str, styled: bool = True) -> Any:
        """Capture `url` and return the parsed JSON document."""
        output = await self.run_script(self.save_command(url, styled))
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise TelemetryError(f"Capture of {url} produced invalid JSON: {e}")


def _device(ctx: StageContext) -> TelemetryDevice:
    return ctx.device if ctx.device is not None else TelemetryDevice(ctx.config)


@register_stage("telemetrySave")
class TelemetrySave(Stage):
    async def run(self, value: Any, ctx: StageContext) -> Any:
        return await _device(ctx).capture(value, styled=True)


@register_stage("telemetrySaveNoStyle")
class TelemetrySaveNoStyle(Stage):
    async def run(self, value: Any, ctx: StageContext) -> Any:
        return await _device(ctx).capture(value, styled=False)
