"""Mutant optimizer: filter, score, cluster and cap candidate mutations.

The pipeline trades completeness for run time. Every stage is a pure
function over a list and the whole pipeline is deterministic: identical input
and options always give an identical output list, order included.

1. equivalent-mutant filter
2. impact scoring
3. complexity filter
4. cluster-and-sample
5. per-function cap
6. boundary preservation
"""

from __future__ import annotations

import ast
import logging
import math
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Sequence, TypeVar

from mutascope.errors import ConfigurationError
from mutascope.models import Mutation, OptimizedMutation, Replacement

logger = logging.getLogger(__name__)

T = TypeVar("T")

BASE_SCORES: dict[str, int] = {
    "Conditional": 4,
    "Comparison": 3,
    "Boolean": 3,
    "Arithmetic": 2,
    "FunctionCall": 2,
    "Literal": 1,
}

BOUNDARY_OPS: tuple[type, ...] = (ast.Eq, ast.NotEq, ast.GtE, ast.LtE, ast.Is, ast.IsNot)

# Lines per function-proxy bucket
FUNCTION_BUCKET = 50

_ITERATION_CALLEES = frozenset({"map", "filter", "reduce", "sorted", "sum", "any", "all", "zip", "enumerate"})

_CONDITIONALS: tuple[type, ...] = (ast.If, ast.IfExp, ast.Match, ast.While)


@dataclass(frozen=True)
class OptimizerOptions:
    """Optimizer knobs. Disabled by default."""

    enabled: bool = False
    min_complexity: int = 2
    max_mutations_per_function: int = 20
    keep_boundary_mutations: bool = True

    @classmethod
    def preset(cls, level: str = "balanced", **overrides: object) -> OptimizerOptions:
        """Named optimization level with optional overrides (``None`` ignored)."""
        try:
            base = PRESETS[level]
        except KeyError:
            raise ConfigurationError(
                f"unknown optimization level {level!r}; use conservative, balanced or aggressive"
            ) from None
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(base, **changes)


PRESETS: dict[str, OptimizerOptions] = {
    "conservative": OptimizerOptions(enabled=True, min_complexity=1, max_mutations_per_function=50),
    "balanced": OptimizerOptions(enabled=True, min_complexity=2, max_mutations_per_function=20),
    "aggressive": OptimizerOptions(enabled=True, min_complexity=3, max_mutations_per_function=10),
}


def optimize(
    mutations: Sequence[Mutation],
    options: OptimizerOptions | None = None,
) -> list[OptimizedMutation]:
    """Run the pipeline; when disabled, score only and keep input order."""
    options = options or OptimizerOptions()
    scored = score_by_impact(mutations)
    if not options.enabled:
        return scored

    result = filter_equivalent_mutants(scored)
    result = filter_by_complexity(result, options.min_complexity)
    result = cluster_and_sample(result)
    result = limit_per_function(result, options.max_mutations_per_function)
    if options.keep_boundary_mutations:
        result = prioritize_boundary_mutations(result, preserved=scored)

    logger.info(
        "optimizer kept %d of %d mutations", len(result), len(mutations)
    )
    return result


# -- stage 1: equivalent mutants -------------------------------------------


def _is_constant(node: ast.AST, value: object) -> bool:
    return (
        isinstance(node, ast.Constant)
        and type(node.value) is type(value)
        and node.value == value
    )


def is_equivalent_mutant(mutation: Mutation) -> bool:
    """Syntactically detectable no-op replacements."""
    replacement = mutation.replacement
    if mutation.strategy == "Arithmetic" and isinstance(replacement, ast.BinOp):
        if isinstance(replacement.op, (ast.Add, ast.Sub)):
            return _is_constant(replacement.right, 0)
        if isinstance(replacement.op, (ast.Mult, ast.Div)):
            return _is_constant(replacement.right, 1)
    if mutation.strategy == "Boolean" and isinstance(replacement, ast.BoolOp):
        first = replacement.values[0]
        if isinstance(replacement.op, ast.And):
            return _is_constant(first, True)
        return _is_constant(first, False)
    if mutation.strategy == "Literal" and isinstance(replacement, ast.List):
        return not replacement.elts
    return False


def filter_equivalent_mutants(mutations: Iterable[T]) -> list[T]:
    return [m for m in mutations if not is_equivalent_mutant(_unwrap(m))]


# -- stage 2: impact scoring -----------------------------------------------


def _children(node: ast.AST) -> list[ast.AST]:
    return [
        child
        for child in ast.iter_child_nodes(node)
        if not isinstance(child, (ast.expr_context, ast.operator, ast.boolop, ast.cmpop, ast.unaryop))
    ]


def _contains_conditional(node: ast.AST) -> bool:
    return any(isinstance(n, _CONDITIONALS) for n in ast.walk(node) if n is not node)


def _has_nested_conditionals(node: ast.AST) -> bool:
    return isinstance(node, _CONDITIONALS) and _contains_conditional(node)


def _has_iteration(node: ast.AST) -> bool:
    if isinstance(node, (ast.For, ast.AsyncFor, ast.While, ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp)):
        return True
    if isinstance(node, ast.Call):
        func = node.func
        name = func.attr if isinstance(func, ast.Attribute) else getattr(func, "id", None)
        return name in _ITERATION_CALLEES
    return False


def _has_complex_pattern_matching(node: ast.AST) -> bool:
    if isinstance(node, ast.Match):
        return len(node.cases) > 2
    return isinstance(node, ast.match_case)


def _has_multiple_operations(node: ast.AST) -> bool:
    return len(_children(node)) > 1


def complexity_bonus(replacement: Replacement) -> int:
    """First matching bonus of the replacement subtree, not cumulative."""
    if isinstance(replacement, list):
        if len(replacement) == 1:
            return complexity_bonus(replacement[0])
        # a multi-statement block counts as a multi-operand expression
        return max([2] + [complexity_bonus(stmt) for stmt in replacement])
    if _has_nested_conditionals(replacement):
        return 5
    if _has_iteration(replacement):
        return 4
    if _has_complex_pattern_matching(replacement):
        return 3
    if _has_multiple_operations(replacement):
        return 2
    return 0


def location_bonus(lineno: int) -> int:
    return 1 if lineno < 100 else 0


def impact_score(mutation: Mutation) -> int:
    return (
        BASE_SCORES.get(mutation.strategy, 1)
        + complexity_bonus(mutation.replacement)
        + location_bonus(mutation.lineno)
    )


def score_by_impact(mutations: Iterable[Mutation | OptimizedMutation]) -> list[OptimizedMutation]:
    scored = []
    for m in mutations:
        mutation = _unwrap(m)
        scored.append(OptimizedMutation(mutation=mutation, impact_score=impact_score(mutation)))
    return scored


# -- stage 3: complexity ---------------------------------------------------


def _decision_points(node: ast.AST) -> int:
    if isinstance(node, (ast.If, ast.IfExp, ast.While, ast.For, ast.AsyncFor, ast.Match, ast.ExceptHandler)):
        own = 1
    elif isinstance(node, ast.BoolOp):
        own = len(node.values) - 1
    elif isinstance(node, ast.comprehension):
        own = len(node.ifs)
    else:
        own = 0
    return own + sum(_decision_points(child) for child in ast.iter_child_nodes(node))


def estimate_complexity(mutation: Mutation) -> int:
    """Cyclomatic approximation: decision points in the replacement, plus one."""
    replacement = mutation.replacement
    nodes = replacement if isinstance(replacement, list) else [replacement]
    return sum(_decision_points(n) for n in nodes) + 1


def filter_by_complexity(mutations: Iterable[T], min_complexity: int) -> list[T]:
    return [m for m in mutations if estimate_complexity(_unwrap(m)) >= min_complexity]


# -- stages 4 & 5: grouping ------------------------------------------------


def function_key(mutation: Mutation | OptimizedMutation) -> tuple[str, int]:
    """(file, line bucket) stands in for the enclosing function."""
    return (mutation.file_path, mutation.lineno // FUNCTION_BUCKET)


def _group_by(items: Iterable[T], key: Callable[[T], object]) -> list[tuple[object, list[T]]]:
    groups: dict[object, list[T]] = {}
    for item in items:
        groups.setdefault(key(item), []).append(item)
    return sorted(groups.items(), key=lambda kv: kv[0])


def _by_score(mutations: list[OptimizedMutation]) -> list[OptimizedMutation]:
    return sorted(mutations, key=lambda m: m.impact_score, reverse=True)


def sample_diverse(mutations: list[OptimizedMutation]) -> list[OptimizedMutation]:
    if len(mutations) <= 3:
        return list(mutations)
    size = max(2, math.ceil(len(mutations) / 3))
    return _by_score(mutations)[:size]


def cluster_and_sample(mutations: Iterable[OptimizedMutation]) -> list[OptimizedMutation]:
    sampled: list[OptimizedMutation] = []
    for _, group in _group_by(mutations, function_key):
        for _, cluster in _group_by(group, lambda m: m.strategy):
            sampled.extend(sample_diverse(cluster))
    return sampled


def limit_per_function(
    mutations: Iterable[OptimizedMutation], max_per_function: int
) -> list[OptimizedMutation]:
    limited: list[OptimizedMutation] = []
    for _, group in _group_by(mutations, function_key):
        limited.extend(_by_score(group)[:max_per_function])
    return limited


# -- stage 6: boundaries ---------------------------------------------------


def _changed_position(original: ast.Compare, replacement: ast.Compare) -> int | None:
    for position, (a, b) in enumerate(zip(original.ops, replacement.ops)):
        if type(a) is not type(b):
            return position
    return None


def is_boundary_mutation(mutation: Mutation | OptimizedMutation) -> bool:
    """Comparison mutations whose mutated operator is ==, !=, >=, <=, is, is not."""
    mutation = _unwrap(mutation)
    if mutation.strategy != "Comparison":
        return False
    original, replacement = mutation.original, mutation.replacement
    if not isinstance(original, ast.Compare) or not isinstance(replacement, ast.Compare):
        return False
    position = _changed_position(original, replacement)
    if position is None:
        return any(isinstance(op, BOUNDARY_OPS) for op in replacement.ops)
    return isinstance(original.ops[position], BOUNDARY_OPS) or isinstance(
        replacement.ops[position], BOUNDARY_OPS
    )


def prioritize_boundary_mutations(
    mutations: Sequence[OptimizedMutation],
    preserved: Sequence[OptimizedMutation] | None = None,
) -> list[OptimizedMutation]:
    """Move boundary mutations to the front.

    ``preserved`` is the pre-filter list: boundary mutations dropped by an
    earlier stage are restored from it, in its order.
    """
    source = preserved if preserved is not None else mutations
    boundary = [m for m in source if is_boundary_mutation(m)]
    kept = {id(m.mutation) for m in boundary}
    regular = [m for m in mutations if id(m.mutation) not in kept]
    return boundary + regular


# -- reporting -------------------------------------------------------------


def optimization_report(
    original: Sequence[Mutation | OptimizedMutation],
    optimized: Sequence[OptimizedMutation],
) -> dict[str, object]:
    """Summary of what the optimizer removed."""
    original_count = len(original)
    optimized_count = len(optimized)
    reduction = original_count - optimized_count
    pct = reduction / original_count * 100 if original_count else 0.0

    counts: dict[str, int] = {}
    for m in optimized:
        counts[m.strategy] = counts.get(m.strategy, 0) + 1
    by_strategy = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))

    average = (
        round(sum(m.impact_score for m in optimized) / optimized_count, 2)
        if optimized_count
        else 0.0
    )
    return {
        "original_count": original_count,
        "optimized_count": optimized_count,
        "reduction": reduction,
        "reduction_percentage": round(pct, 1),
        "by_strategy": by_strategy,
        "average_impact_score": average,
    }


def _unwrap(m: Mutation | OptimizedMutation) -> Mutation:
    return m.mutation if isinstance(m, OptimizedMutation) else m
