"""Exception taxonomy for mutation runs."""

from __future__ import annotations


class MutascopeError(Exception):
    """Base class for every error raised by mutascope."""


class ConfigurationError(MutascopeError):
    """Invalid run configuration (unknown strategy, bad option value...)."""


class ParseError(MutascopeError):
    """A source or test file could not be parsed. The file is skipped."""

    def __init__(self, path: str, reason: object) -> None:
        super().__init__(f"cannot parse {path}: {reason}")
        self.path = path
        self.reason = reason


class PatchMismatch(MutascopeError):
    """No node matched the mutation's recorded location and shape."""

    def __init__(self, file_path: str, lineno: int, description: str) -> None:
        super().__init__(
            f"no node matches {description!r} at {file_path}:{lineno}"
        )
        self.file_path = file_path
        self.lineno = lineno
        self.description = description


class InvalidMutation(MutascopeError):
    """The patched tree could not be rendered or compiled."""


class RunnerTimeout(MutascopeError):
    """The isolated test process exceeded its deadline and was killed."""

    def __init__(self, timeout: float, output: str = "") -> None:
        super().__init__(f"test process timed out after {timeout:.1f}s")
        self.timeout = timeout
        self.output = output


class RunnerError(MutascopeError):
    """The isolated test process could not be spawned or read."""
