"""Mutation testing orchestrator."""

from __future__ import annotations

import logging
import os
import time

from mutascope.config import RunConfig
from mutascope.dependencies import analyze, find_test_files
from mutascope.language import LanguageAdapter, PythonAdapter
from mutascope.loader import load
from mutascope.models import MutationResult, OptimizedMutation, RunResult, SourceFile
from mutascope.optimizer import optimization_report, optimize
from mutascope.scheduler import WorkerPool
from mutascope.strategies import resolve_strategies
from mutascope.walker import mutations_for_file

logger = logging.getLogger(__name__)


def _under(root: str | None, path: str) -> str:
    if root is None or os.path.isabs(path):
        return path
    return os.path.join(root, path)


class Engine:
    """Orchestrates a full mutation testing run."""

    def __init__(self, config: RunConfig | None = None, adapter: LanguageAdapter | None = None) -> None:
        self.config = config or RunConfig()
        self.adapter = adapter or PythonAdapter()

    def load(self, paths: list[str] | None = None, root: str | None = None) -> list[SourceFile]:
        seen: dict[str, SourceFile] = {}
        exclude = [_under(root, pattern) for pattern in self.config.exclude]
        for pattern in paths or self.config.paths:
            for source_file in load(_under(root, pattern), self.adapter, root=root, exclude=exclude):
                seen.setdefault(source_file.path, source_file)
        return list(seen.values())

    def run(self, paths: list[str] | None = None, root: str | None = None) -> RunResult:
        """Load, mutate, optimize, map tests and run every selected mutant.

        ``root`` is the project directory: relative paths, module ids and
        the child test process all resolve against it (default: CWD).
        """
        config = self.config
        # configuration problems surface before any file is touched
        strategies = resolve_strategies(config.strategies)
        optimizer_options = config.optimizer_options()
        start = time.monotonic()

        files = self.load(paths, root)
        candidates = []
        for source_file in files:
            candidates.extend(mutations_for_file(source_file, strategies))
        logger.info("%d candidate mutations in %d files", len(candidates), len(files))

        selected = optimize(candidates, optimizer_options)
        report = optimization_report(candidates, selected) if optimizer_options.enabled else None
        if config.max_mutations is not None:
            selected = selected[: config.max_mutations]

        test_dir = _under(root, config.test_dir)
        test_files = (
            [os.path.abspath(t) for t in find_test_files(test_dir, self.adapter)]
            if os.path.isdir(test_dir)
            else []
        )
        if not test_files:
            logger.warning("no test files found under %s", test_dir)
        file_to_module = {f.path: f.module_id for f in files}
        dependency_map = analyze(
            test_files,
            self.adapter,
            known_modules=[m for m in file_to_module.values() if m],
        )

        by_file: dict[str, list[OptimizedMutation]] = {}
        for m in selected:
            by_file.setdefault(m.file_path, []).append(m)

        results: list[MutationResult] = []
        for source_file in files:
            batch = by_file.get(source_file.path)
            if not batch:
                continue
            with WorkerPool(
                max_workers=config.concurrency,
                timeout=config.timeout,
                runner_options=config.runner_options(cwd=root),
                isolation=config.isolation,
            ) as pool:
                results.extend(
                    pool.run_mutations(
                        batch,
                        source_file,
                        self.adapter,
                        dependency_map,
                        file_to_module,
                        fallback_tests=test_files,
                    )
                )

        run_result = RunResult(
            files=[f.path for f in files],
            total_mutations=len(candidates),
            mutations_tested=len(results),
            results=results,
            wall_time=time.monotonic() - start,
            optimization=report,
        )
        logger.info(
            "mutation score %.2f%% (%d/%d killed)",
            run_result.mutation_score,
            run_result.killed,
            len(results),
        )
        return run_result
