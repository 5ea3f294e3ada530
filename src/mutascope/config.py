"""Run configuration, optionally read from ``[tool.mutascope]`` in pyproject.toml."""

from __future__ import annotations

import dataclasses
import logging
import os
import tomllib
from dataclasses import dataclass, field

from mutascope.errors import ConfigurationError
from mutascope.optimizer import PRESETS, OptimizerOptions
from mutascope.runner import DEFAULT_TIMEOUT, RunnerOptions
from mutascope.scheduler import ISOLATION_MODES

logger = logging.getLogger(__name__)


def default_concurrency() -> int:
    # Half of the available cores, minimum 1
    available = os.cpu_count() or 2
    return max(1, available // 2)


@dataclass
class RunConfig:
    """Everything one engine run needs."""

    paths: list[str] = field(default_factory=lambda: ["src"])
    exclude: list[str] = field(default_factory=list)
    test_dir: str = "tests"
    strategies: list[str] | None = None
    concurrency: int = field(default_factory=default_concurrency)
    timeout: float = DEFAULT_TIMEOUT
    optimize: bool = False
    optimize_level: str = "balanced"
    min_complexity: int | None = None
    max_per_function: int | None = None
    max_mutations: int | None = None
    isolation: str = "lock"
    test_command: list[str] | None = None
    env_name: str = "test"

    def __post_init__(self) -> None:
        if isinstance(self.paths, str):
            self.paths = [self.paths]
        if isinstance(self.exclude, str):
            self.exclude = [self.exclude]
        if self.concurrency < 1:
            raise ConfigurationError(f"concurrency must be at least 1, got {self.concurrency}")
        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout}")
        if self.optimize_level not in PRESETS:
            raise ConfigurationError(f"unknown optimize_level {self.optimize_level!r}")
        if self.isolation not in ISOLATION_MODES:
            raise ConfigurationError(f"unknown isolation {self.isolation!r}")
        if self.max_mutations is not None and self.max_mutations < 0:
            raise ConfigurationError("max_mutations cannot be negative")
        if isinstance(self.test_command, str):
            self.test_command = self.test_command.split()

    def optimizer_options(self) -> OptimizerOptions:
        if not self.optimize:
            return OptimizerOptions(enabled=False)
        return OptimizerOptions.preset(
            self.optimize_level,
            min_complexity=self.min_complexity,
            max_mutations_per_function=self.max_per_function,
        )

    def runner_options(self, cwd: str | None = None) -> RunnerOptions:
        return RunnerOptions(command=self.test_command, env_name=self.env_name, cwd=cwd)


_FIELDS = {f.name for f in dataclasses.fields(RunConfig)}


def load_config(pyproject_path: str = "pyproject.toml", **overrides: object) -> RunConfig:
    """Read ``[tool.mutascope]``; missing file or section means defaults.

    Keyword overrides (``None`` ignored) win over the file.
    """
    values: dict[str, object] = {}
    if os.path.exists(pyproject_path):
        with open(pyproject_path, "rb") as f:
            try:
                data = tomllib.load(f)
            except tomllib.TOMLDecodeError as exc:
                raise ConfigurationError(f"cannot read {pyproject_path}: {exc}") from exc
        section = data.get("tool", {}).get("mutascope", {})
        for key, value in section.items():
            name = key.replace("-", "_")
            if name not in _FIELDS:
                raise ConfigurationError(f"unknown [tool.mutascope] key {key!r}")
            values[name] = value
    else:
        logger.debug("%s not found, using default configuration", pyproject_path)

    for key, value in overrides.items():
        if key not in _FIELDS:
            raise ConfigurationError(f"unknown configuration option {key!r}")
        if value is not None:
            values[key] = value
    try:
        return RunConfig(**values)  # type: ignore[arg-type]
    except TypeError as exc:
        raise ConfigurationError(str(exc)) from exc
