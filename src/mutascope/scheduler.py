"""Bounded worker pool that runs one mutant per worker and classifies it."""

from __future__ import annotations

import contextlib
import logging
import os
import queue
import shutil
import tempfile
import threading
import time
from collections import deque
from dataclasses import replace
from typing import Iterable, Mapping, Sequence

from mutascope.dependencies import get_tests_for_mutation
from mutascope.errors import (
    ConfigurationError,
    InvalidMutation,
    PatchMismatch,
    RunnerError,
    RunnerTimeout,
)
from mutascope.language import LanguageAdapter, PythonAdapter
from mutascope.models import (
    ERROR,
    INVALID,
    KILLED,
    SURVIVED,
    TIMEOUT,
    DependencyMap,
    Mutation,
    MutationResult,
    OptimizedMutation,
    SourceFile,
    TestOutcome,
)
from mutascope.patcher import invalidate_bytecode, patched_file
from mutascope.runner import DEFAULT_TIMEOUT, RunnerOptions, run_tests

logger = logging.getLogger(__name__)

ISOLATION_MODES = ("lock", "sandbox")

_SANDBOX_IGNORE = shutil.ignore_patterns(
    ".git", "__pycache__", ".venv", "venv", ".pytest_cache", ".mypy_cache", "*.backup"
)

# One lock per real file path, shared by every pool in the process
_path_locks: dict[str, threading.Lock] = {}
_path_locks_guard = threading.Lock()


def lock_for(path: str) -> threading.Lock:
    key = os.path.realpath(path)
    with _path_locks_guard:
        lock = _path_locks.get(key)
        if lock is None:
            lock = _path_locks[key] = threading.Lock()
        return lock


def classify(outcome: TestOutcome) -> str:
    return KILLED if outcome.failures > 0 else SURVIVED


class WorkerPool:
    """Runs mutants of one file with at most ``max_workers`` in flight.

    ``isolation="lock"`` patches the real file and serializes mutants of the
    same path. ``isolation="sandbox"`` copies the project root once per worker
    slot and patches the copy, so mutants of the same file run concurrently.
    The child imports the sandboxed package first. Files outside the project
    root are still patched in place under the per-path lock.
    """

    def __init__(
        self,
        max_workers: int = 4,
        timeout: float = DEFAULT_TIMEOUT,
        runner_options: RunnerOptions | None = None,
        isolation: str = "lock",
        strict: bool = False,
    ) -> None:
        if max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {max_workers}")
        if timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {timeout}")
        if isolation not in ISOLATION_MODES:
            raise ConfigurationError(
                f"unknown isolation {isolation!r}; use one of {', '.join(ISOLATION_MODES)}"
            )
        self.max_workers = max_workers
        self.timeout = timeout
        self.runner_options = runner_options or RunnerOptions()
        self.isolation = isolation
        self.strict = strict
        self.project_root = os.path.abspath(self.runner_options.cwd or os.getcwd())
        self._sandboxes: dict[int, str] = {}
        self._sandboxes_guard = threading.Lock()

    def __enter__(self) -> WorkerPool:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Remove sandbox copies."""
        with self._sandboxes_guard:
            sandboxes, self._sandboxes = self._sandboxes, {}
        for path in sandboxes.values():
            shutil.rmtree(os.path.dirname(path), ignore_errors=True)

    def run_mutations(
        self,
        mutations: Iterable[Mutation | OptimizedMutation],
        source_file: SourceFile,
        adapter: LanguageAdapter | None = None,
        dependency_map: DependencyMap | None = None,
        file_to_module: Mapping[str, str | None] | None = None,
        fallback_tests: Sequence[str] = (),
    ) -> list[MutationResult]:
        """Run every mutation; block until each has a result.

        Results come back in completion order. Every input mutation gets
        exactly one result; failures are contained in that result.
        """
        adapter = adapter or PythonAdapter()
        dependency_map = dependency_map or DependencyMap()
        file_to_module = file_to_module or {}

        pending: deque[Mutation] = deque(
            m.mutation if isinstance(m, OptimizedMutation) else m for m in mutations
        )
        active: dict[int, threading.Thread] = {}
        free_slots: deque[int] = deque(range(self.max_workers))
        completed: queue.Queue[tuple[int, MutationResult]] = queue.Queue()
        results: list[MutationResult] = []

        logger.info("%s: running %d mutants", source_file.path, len(pending))
        while pending or active:
            while pending and free_slots:
                slot = free_slots.popleft()
                mutation = pending.popleft()
                tests = self._select_tests(mutation, dependency_map, file_to_module, fallback_tests)
                thread = threading.Thread(
                    target=self._worker,
                    args=(slot, mutation, source_file, adapter, tests, completed),
                    name=f"mutascope-worker-{slot}",
                    daemon=True,
                )
                active[slot] = thread
                thread.start()

            slot, result = completed.get()
            active.pop(slot).join()
            free_slots.append(slot)
            results.append(result)
            logger.debug(
                "%s -> %s (%.2fs)",
                result.mutation.description,
                result.classification,
                result.duration,
            )
        return results

    def _select_tests(
        self,
        mutation: Mutation,
        dependency_map: DependencyMap,
        file_to_module: Mapping[str, str | None],
        fallback_tests: Sequence[str],
    ) -> list[str]:
        tests = get_tests_for_mutation(mutation, dependency_map, file_to_module)
        if not tests:
            tests = set(fallback_tests)
        return sorted(tests)

    def _worker(
        self,
        slot: int,
        mutation: Mutation,
        source_file: SourceFile,
        adapter: LanguageAdapter,
        tests: list[str],
        completed: queue.Queue[tuple[int, MutationResult]],
    ) -> None:
        start = time.monotonic()
        result: MutationResult | None = None
        try:
            result = self.execute(slot, mutation, source_file, adapter, tests)
        except Exception as exc:
            logger.exception("worker failed on %s", mutation.description)
            result = MutationResult(mutation, ERROR, time.monotonic() - start, repr(exc))
        finally:
            if result is None:
                result = MutationResult(
                    mutation, ERROR, time.monotonic() - start, "worker aborted"
                )
            completed.put((slot, result))

    def execute(
        self,
        slot: int,
        mutation: Mutation,
        source_file: SourceFile,
        adapter: LanguageAdapter,
        tests: list[str],
    ) -> MutationResult:
        """Patch, run, restore and classify one mutant."""
        start = time.monotonic()
        options = self.runner_options
        path = source_file.path
        guard: contextlib.AbstractContextManager[object] = lock_for(path)
        if self.isolation == "sandbox":
            root = self._sandbox(slot)
            tests = [self._relocate(t, root) for t in tests]
            options = replace(options, cwd=root, env=self._sandbox_env(source_file, root))
            if self._inside_root(path):
                path = self._relocate(path, root)
                guard = contextlib.nullcontext()
            else:
                logger.warning("%s is outside %s; patching it in place", path, self.project_root)

        def finish(classification: str, error: str | None = None) -> MutationResult:
            return MutationResult(mutation, classification, time.monotonic() - start, error)

        try:
            with guard:
                with patched_file(mutation, source_file, adapter, path=path, strict=self.strict) as patched:
                    invalidate_bytecode(patched)
                    outcome = run_tests(tests, self.timeout, options)
        except (InvalidMutation, PatchMismatch) as exc:
            return finish(INVALID, str(exc))
        except RunnerTimeout as exc:
            return finish(TIMEOUT, str(exc))
        except RunnerError as exc:
            return finish(ERROR, str(exc))
        return finish(classify(outcome))

    # -- sandboxes ---------------------------------------------------------

    def _sandbox(self, slot: int) -> str:
        with self._sandboxes_guard:
            existing = self._sandboxes.get(slot)
        if existing is not None:
            return existing
        parent = tempfile.mkdtemp(prefix=f"mutascope-{slot}-")
        root = os.path.join(parent, os.path.basename(self.project_root) or "project")
        shutil.copytree(self.project_root, root, ignore=_SANDBOX_IGNORE, symlinks=True)
        logger.debug("slot %d sandbox at %s", slot, root)
        with self._sandboxes_guard:
            self._sandboxes[slot] = root
        return root

    def _inside_root(self, path: str) -> bool:
        relative = os.path.relpath(os.path.abspath(path), self.project_root)
        return not relative.startswith(os.pardir)

    def _relocate(self, path: str, root: str) -> str:
        """Map a path under the project root into a sandbox copy."""
        absolute = os.path.abspath(path)
        if not self._inside_root(absolute):
            return absolute
        return os.path.normpath(os.path.join(root, os.path.relpath(absolute, self.project_root)))

    def _sandbox_env(self, source_file: SourceFile, root: str) -> dict[str, str]:
        """Child environment that imports the sandbox copy ahead of any install."""
        env = dict(self.runner_options.env)
        inherited = env.get("PYTHONPATH", os.environ.get("PYTHONPATH", ""))
        import_root = self._relocate(_import_root(source_file), root)
        paths = [import_root] + [p for p in inherited.split(os.pathsep) if p and p != import_root]
        env["PYTHONPATH"] = os.pathsep.join(paths)
        return env


def _import_root(source_file: SourceFile) -> str:
    """Directory the file's module is imported from."""
    directory = os.path.dirname(os.path.abspath(source_file.path))
    if not source_file.module_id:
        return directory
    depth = source_file.module_id.count(".")
    if os.path.splitext(os.path.basename(source_file.path))[0] == "__init__":
        depth += 1
    for _ in range(depth):
        directory = os.path.dirname(directory)
    return directory
