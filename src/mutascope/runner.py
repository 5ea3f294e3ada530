"""Run a test subset in a separate OS process and read back the failure count."""

from __future__ import annotations

import logging
import os
import re
import subprocess
import sys
import time
from dataclasses import dataclass, field
from typing import Sequence

from mutascope.errors import RunnerError, RunnerTimeout
from mutascope.models import TestOutcome

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0

# The summary plugin's own line; pytest's short summary follows it and may quote messages
_SUMMARY = re.compile(r"^\d+ tests?, (\d+) failures?\r?$", re.MULTILINE)

# Directory holding the mutascope package; the child must import the summary plugin
_PLUGIN_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


@dataclass
class RunnerOptions:
    """How the child test process is launched.

    ``command`` replaces the default pytest invocation; the test file paths
    are appended to it.
    """

    command: list[str] | None = None
    env_name: str = "test"
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)


def default_command() -> list[str]:
    return [
        sys.executable, "-m", "pytest",
        "-q", "--no-header",
        "-p", "no:cacheprovider",
        "-p", "mutascope.pytest_summary",
    ]


def build_command(test_files: Sequence[str], options: RunnerOptions | None = None) -> list[str]:
    options = options or RunnerOptions()
    base = list(options.command) if options.command else default_command()
    return base + list(test_files)


def build_env(options: RunnerOptions | None = None) -> dict[str, str]:
    options = options or RunnerOptions()
    env = dict(os.environ)
    env.update(options.env)
    paths = [p for p in env.get("PYTHONPATH", "").split(os.pathsep) if p]
    if _PLUGIN_ROOT not in paths:
        env["PYTHONPATH"] = os.pathsep.join(paths + [_PLUGIN_ROOT])
    env["PYTHONDONTWRITEBYTECODE"] = "1"
    env["MUTASCOPE_ENV"] = options.env_name
    return env


def count_failures(output: str) -> int:
    """Failure count from the child's summary line.

    Only a whole ``N tests, M failures`` line counts; the last one wins since
    captured test output is printed before it. Output without one (a crash
    or a command that never reports) is treated as failing.
    """
    counts = _SUMMARY.findall(output)
    if counts:
        return int(counts[-1])
    return 1


def _decode(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def run_tests(
    test_files: Sequence[str],
    timeout: float = DEFAULT_TIMEOUT,
    options: RunnerOptions | None = None,
) -> TestOutcome:
    """Run ``test_files`` in a child process with a hard deadline.

    Raises RunnerTimeout when the deadline passes (the child is killed) and
    RunnerError when the process cannot be started.
    """
    options = options or RunnerOptions()
    command = build_command(test_files, options)
    logger.debug("running %s", " ".join(command))

    start = time.monotonic()
    try:
        completed = subprocess.run(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            cwd=options.cwd,
            env=build_env(options),
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise RunnerTimeout(timeout, _decode(exc.output)) from exc
    except OSError as exc:
        raise RunnerError(f"cannot start test process: {exc}") from exc
    duration = time.monotonic() - start

    output = _decode(completed.stdout)
    return TestOutcome(
        failures=count_failures(output),
        output=output,
        exit_code=completed.returncode,
        duration=duration,
    )
