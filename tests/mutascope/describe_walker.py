"""Tests for mutascope.walker."""

import ast

from mutascope.models import SourceFile
from mutascope.strategies import Literal, MutationContext, resolve_strategies
from mutascope.walker import mutations_for_file, walk

SOURCE = "def f(a, b):\n    return a + b if a > b else a - b\n"


def describe_walk():
    def it_visits_nodes_in_pre_order_with_every_strategy():
        mutations = walk(ast.parse(SOURCE), resolve_strategies(), MutationContext("f.py"))
        assert [m.description for m in mutations] == [
            "Conditional: invert if condition",
            "Conditional: always take if branch",
            "Conditional: always take else branch",
            "Comparison: > to <",
            "Comparison: > to >=",
            "Arithmetic: + to -",
            "Arithmetic: + to 0 (remove)",
            "Arithmetic: - to +",
            "Arithmetic: - to 0 (remove)",
        ]

    def it_is_deterministic():
        first = walk(ast.parse(SOURCE), resolve_strategies(), MutationContext("f.py"))
        second = walk(ast.parse(SOURCE), resolve_strategies(), MutationContext("f.py"))
        assert [m.description for m in first] == [m.description for m in second]

    def it_returns_nothing_without_strategies():
        assert walk(ast.parse(SOURCE), [], MutationContext("f.py")) == []


def describe_mutations_for_file():
    def it_uses_the_default_strategies():
        tree = ast.parse("x = 1 + 2\n")
        source_file = SourceFile("m.py", tree, "m", "x = 1 + 2\n")
        descriptions = [m.description for m in mutations_for_file(source_file)]
        assert descriptions == ["Arithmetic: + to -", "Arithmetic: + to 0 (remove)"]

    def it_accepts_explicit_strategies():
        tree = ast.parse("x = 1\n")
        source_file = SourceFile("m.py", tree, "m")
        mutations = mutations_for_file(source_file, [Literal()])
        assert len(mutations) == 2
        assert all(m.file_path == "m.py" for m in mutations)
