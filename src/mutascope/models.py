"""Data models for mutation testing."""

from __future__ import annotations

import ast
from dataclasses import dataclass, field
from typing import Union

# Outcome classifications of a single mutant run
KILLED = "killed"
SURVIVED = "survived"
INVALID = "invalid"
TIMEOUT = "timeout"
ERROR = "error"

CLASSIFICATIONS = (KILLED, SURVIVED, INVALID, TIMEOUT, ERROR)

# A conditional forced onto one branch is replaced by that branch's statements
Replacement = Union[ast.AST, list[ast.stmt]]


@dataclass(frozen=True)
class SourceFile:
    """A parsed file handed to the engine by the loader."""

    path: str
    tree: ast.Module
    module_id: str | None
    source: str = ""


@dataclass(frozen=True)
class Mutation:
    """One syntactic alteration proposed by a strategy."""

    strategy: str  # "Arithmetic", "Comparison", ...
    original: ast.AST
    replacement: Replacement
    description: str  # "Arithmetic: + to -"
    file_path: str
    lineno: int

    @property
    def location(self) -> tuple[str, int]:
        return (self.file_path, self.lineno)


@dataclass(frozen=True)
class OptimizedMutation:
    """A mutation ranked by the optimizer."""

    mutation: Mutation
    impact_score: int

    @property
    def strategy(self) -> str:
        return self.mutation.strategy

    @property
    def file_path(self) -> str:
        return self.mutation.file_path

    @property
    def lineno(self) -> int:
        return self.mutation.lineno

    @property
    def description(self) -> str:
        return self.mutation.description


@dataclass
class DependencyMap:
    """Maps module ids to the test files that reference them."""

    module_to_tests: dict[str, set[str]] = field(default_factory=dict)

    def add(self, module_id: str, test_file: str) -> None:
        if module_id not in self.module_to_tests:
            self.module_to_tests[module_id] = set()
        self.module_to_tests[module_id].add(test_file)

    def tests_for(self, module_id: str) -> set[str]:
        return set(self.module_to_tests.get(module_id, set()))

    @property
    def modules(self) -> list[str]:
        return sorted(self.module_to_tests)


@dataclass(frozen=True)
class TestOutcome:
    """Result of one isolated test process."""

    __test__ = False  # not a pytest test class

    failures: int
    output: str
    exit_code: int
    duration: float


@dataclass(frozen=True)
class MutationResult:
    """Terminal record for a single mutant."""

    mutation: Mutation
    classification: str
    duration: float
    error: str | None = None


@dataclass
class RunResult:
    """Complete result of a mutation testing run."""

    files: list[str]
    total_mutations: int
    mutations_tested: int
    results: list[MutationResult]
    wall_time: float
    optimization: dict[str, object] | None = None

    def _count(self, classification: str) -> int:
        return sum(1 for r in self.results if r.classification == classification)

    @property
    def killed(self) -> int:
        return self._count(KILLED)

    @property
    def survived(self) -> list[MutationResult]:
        return [r for r in self.results if r.classification == SURVIVED]

    @property
    def counts(self) -> dict[str, int]:
        return {c: self._count(c) for c in CLASSIFICATIONS}

    @property
    def mutation_score(self) -> float:
        if not self.results:
            return 0.0
        return round(self.killed / len(self.results) * 100.0, 2)
