"""Tree walk: apply every active strategy to every node of a file."""

from __future__ import annotations

import ast
import logging
from typing import Sequence

from mutascope.models import Mutation, SourceFile
from mutascope.strategies import MutationContext, Strategy, resolve_strategies

logger = logging.getLogger(__name__)


class _MutationCollector(ast.NodeVisitor):
    """Pre-order walk that keeps the ancestor chain of the current node."""

    def __init__(self, strategies: Sequence[Strategy], file_path: str) -> None:
        self.strategies = strategies
        self.file_path = file_path
        self.parents: list[ast.AST] = []
        self.mutations: list[Mutation] = []

    def generic_visit(self, node: ast.AST) -> None:
        context = MutationContext(self.file_path, tuple(self.parents))
        for strategy in self.strategies:
            self.mutations.extend(strategy.mutate(node, context))
        self.parents.append(node)
        try:
            super().generic_visit(node)
        finally:
            self.parents.pop()


def walk(
    tree: ast.AST,
    strategies: Sequence[Strategy],
    context: MutationContext,
) -> list[Mutation]:
    """Visit each node once and concatenate the strategies' mutations."""
    collector = _MutationCollector(strategies, context.file_path)
    collector.parents = list(context.parents)
    collector.visit(tree)
    return collector.mutations


def mutations_for_file(
    source_file: SourceFile,
    strategies: Sequence[Strategy] | None = None,
) -> list[Mutation]:
    """Convenience: walk a loaded file with the given (or default) strategies."""
    if strategies is None:
        strategies = resolve_strategies()
    mutations = walk(source_file.tree, strategies, MutationContext(source_file.path))
    logger.debug("%s: %d candidate mutations", source_file.path, len(mutations))
    return mutations
