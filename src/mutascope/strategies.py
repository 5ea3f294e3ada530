"""Mutation catalog: one strategy class per family of syntactic defects."""

from __future__ import annotations

import ast
import copy
from dataclasses import dataclass
from typing import Iterable

from mutascope.errors import ConfigurationError
from mutascope.models import Mutation, Replacement


@dataclass(frozen=True)
class MutationContext:
    """Where a node sits: its file and the chain of ancestors above it."""

    file_path: str
    parents: tuple[ast.AST, ...] = ()

    @property
    def parent(self) -> ast.AST | None:
        return self.parents[-1] if self.parents else None

    @property
    def grandparent(self) -> ast.AST | None:
        return self.parents[-2] if len(self.parents) > 1 else None


def _located(replacement: Replacement, node: ast.AST) -> Replacement:
    if isinstance(replacement, list):
        return replacement
    if hasattr(node, "lineno"):
        ast.copy_location(replacement, node)
    return ast.fix_missing_locations(replacement)


class Strategy:
    """Base class: recognise a pattern, return candidate mutations."""

    name = "Strategy"
    description = ""

    def mutate(self, node: ast.AST, context: MutationContext) -> list[Mutation]:
        raise NotImplementedError

    def _build(
        self,
        node: ast.AST,
        replacement: Replacement,
        description: str,
        context: MutationContext,
    ) -> Mutation:
        return Mutation(
            strategy=self.name,
            original=node,
            replacement=_located(replacement, node),
            description=f"{self.name}: {description}",
            file_path=context.file_path,
            lineno=getattr(node, "lineno", 0),
        )

    def __repr__(self) -> str:
        return f"<{self.name} strategy>"


# op class -> (symbol, inverse op class, inverse symbol, identity literal, suffix)
_ARITHMETIC: dict[type, tuple[str, type, str, int, str]] = {
    ast.Add: ("+", ast.Sub, "-", 0, "remove"),
    ast.Sub: ("-", ast.Add, "+", 0, "remove"),
    ast.Mult: ("*", ast.Div, "/", 1, "identity"),
    ast.Div: ("/", ast.Mult, "*", 1, "identity"),
}


class Arithmetic(Strategy):
    """``+``/``-`` and ``*``/``/`` swaps plus replacement by the identity literal."""

    name = "Arithmetic"
    description = "Mutates arithmetic operators (+, -, *, /)"

    def mutate(self, node: ast.AST, context: MutationContext) -> list[Mutation]:
        if not isinstance(node, ast.BinOp):
            return []
        entry = _ARITHMETIC.get(type(node.op))
        if entry is None:
            return []
        symbol, inverse, inverse_symbol, identity, suffix = entry
        swapped = ast.BinOp(
            left=copy.deepcopy(node.left),
            op=inverse(),
            right=copy.deepcopy(node.right),
        )
        return [
            self._build(node, swapped, f"{symbol} to {inverse_symbol}", context),
            self._build(
                node,
                ast.Constant(value=identity),
                f"{symbol} to {identity} ({suffix})",
                context,
            ),
        ]


CMPOP_SYMBOLS: dict[type, str] = {
    ast.Eq: "==",
    ast.NotEq: "!=",
    ast.Gt: ">",
    ast.Lt: "<",
    ast.GtE: ">=",
    ast.LtE: "<=",
    ast.Is: "is",
    ast.IsNot: "is not",
}

_COMPARISON: dict[type, list[type]] = {
    ast.Eq: [ast.NotEq],
    ast.NotEq: [ast.Eq],
    ast.Gt: [ast.Lt, ast.GtE],
    ast.Lt: [ast.Gt, ast.LtE],
    ast.GtE: [ast.LtE, ast.Gt],
    ast.LtE: [ast.GtE, ast.Lt],
    ast.Is: [ast.IsNot],
    ast.IsNot: [ast.Is],
}


class Comparison(Strategy):
    """Relational flips and boundary shifts, one operator position at a time."""

    name = "Comparison"
    description = "Mutates comparison operators (==, !=, >, <, >=, <=, is, is not)"

    def mutate(self, node: ast.AST, context: MutationContext) -> list[Mutation]:
        if not isinstance(node, ast.Compare):
            return []
        mutations: list[Mutation] = []
        for position, op in enumerate(node.ops):
            for replacement_op in _COMPARISON.get(type(op), []):
                ops = [type(o)() for o in node.ops]
                ops[position] = replacement_op()
                replaced = ast.Compare(
                    left=copy.deepcopy(node.left),
                    ops=ops,
                    comparators=copy.deepcopy(node.comparators),
                )
                mutations.append(
                    self._build(
                        node,
                        replaced,
                        f"{CMPOP_SYMBOLS[type(op)]} to {CMPOP_SYMBOLS[replacement_op]}",
                        context,
                    )
                )
        return mutations


class Boolean(Strategy):
    """``and``/``or`` swap, ``True``/``False`` swap, negation removal."""

    name = "Boolean"
    description = "Mutates boolean operators (and, or, not) and literals (True, False)"

    def mutate(self, node: ast.AST, context: MutationContext) -> list[Mutation]:
        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                op, label = ast.Or(), "and to or"
            else:
                op, label = ast.And(), "or to and"
            swapped = ast.BoolOp(op=op, values=copy.deepcopy(node.values))
            return [self._build(node, swapped, label, context)]
        if isinstance(node, ast.Constant) and isinstance(node.value, bool):
            if node.value:
                return [self._build(node, ast.Constant(value=False), "True to False", context)]
            return [self._build(node, ast.Constant(value=True), "False to True", context)]
        if isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.Not):
            return [
                self._build(
                    node, copy.deepcopy(node.operand), "remove not (not x to x)", context
                )
            ]
        return []


def _is_docstring(node: ast.AST, context: MutationContext) -> bool:
    parent, owner = context.parent, context.grandparent
    if not isinstance(parent, ast.Expr) or owner is None:
        return False
    if not isinstance(owner, (ast.Module, ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
        return False
    return bool(owner.body) and owner.body[0] is parent


class Literal(Strategy):
    """Numbers ±1, string emptying and growing, empty-list filling."""

    name = "Literal"
    description = "Mutates literal values (numbers, strings, lists)"

    def mutate(self, node: ast.AST, context: MutationContext) -> list[Mutation]:
        if isinstance(node, ast.List):
            if not node.elts and isinstance(node.ctx, ast.Load):
                filled = ast.List(elts=[ast.Constant(value="mutated")], ctx=ast.Load())
                return [self._build(node, filled, '[] to ["mutated"]', context)]
            return []
        if not isinstance(node, ast.Constant):
            return []
        if any(isinstance(p, (ast.JoinedStr, ast.FormattedValue)) for p in context.parents):
            return []
        value = node.value
        # None/True/False and Ellipsis are sentinels, bools are Boolean's business
        if value is None or value is Ellipsis or isinstance(value, bool):
            return []
        if isinstance(value, int):
            return [
                self._build(node, ast.Constant(value=value + 1), f"{value} to {value + 1} (increment)", context),
                self._build(node, ast.Constant(value=value - 1), f"{value} to {value - 1} (decrement)", context),
            ]
        if isinstance(value, float):
            return [
                self._build(node, ast.Constant(value=value + 1.0), f"{value} to {value + 1.0} (increment)", context),
                self._build(node, ast.Constant(value=value - 1.0), f"{value} to {value - 1.0} (decrement)", context),
            ]
        if isinstance(value, str):
            if _is_docstring(node, context):
                return []
            if value == "":
                return [self._build(node, ast.Constant(value="x"), '"" to "x" (add char)', context)]
            return [
                self._build(node, ast.Constant(value=""), f'"{value}" to "" (empty string)', context),
                self._build(node, ast.Constant(value=value + "x"), f'"{value}" to "{value}x" (append char)', context),
            ]
        return []


# Callees whose removal or reordering only breaks definitions or introspection
SPECIAL_FORMS = frozenset({
    "super",
    "isinstance",
    "issubclass",
    "type",
    "globals",
    "locals",
    "vars",
    "__import__",
    "exec",
    "eval",
    "compile",
    "setattr",
    "delattr",
    "property",
    "staticmethod",
    "classmethod",
    "dataclass",
    "field",
    "TypeVar",
    "NamedTuple",
    "cast",
})


def _callee_name(func: ast.expr) -> str:
    return ast.unparse(func)


class FunctionCall(Strategy):
    """Call removal (replaced by ``None``) and first-two-argument swap."""

    name = "FunctionCall"
    description = "Mutates function calls (remove calls, swap arguments)"

    def mutate(self, node: ast.AST, context: MutationContext) -> list[Mutation]:
        if not isinstance(node, ast.Call):
            return []
        if not node.args and not node.keywords:
            return []
        callee = _callee_name(node.func)
        if callee.rsplit(".", 1)[-1] in SPECIAL_FORMS:
            return []
        parent = context.parent
        if any(d is node for d in getattr(parent, "decorator_list", [])):
            return []

        mutations = [
            self._build(node, ast.Constant(value=None), f"remove {callee}() call", context)
        ]
        if len(node.args) >= 2:
            swapped = copy.deepcopy(node)
            swapped.args[0], swapped.args[1] = swapped.args[1], swapped.args[0]
            mutations.append(
                self._build(node, swapped, f"swap arguments in {callee}()", context)
            )
        return mutations


def _negated(test: ast.expr) -> ast.expr:
    return ast.UnaryOp(op=ast.Not(), operand=copy.deepcopy(test))


class Conditional(Strategy):
    """Condition inversion, branch forcing, ``if`` removal.

    ``if not x:`` is treated as an *unless* block: it is rewritten to the
    plain ``if x:`` form and its branches are forced instead of inverted.
    """

    name = "Conditional"
    description = "Mutates conditional expressions (if, if not, conditional expressions)"

    def mutate(self, node: ast.AST, context: MutationContext) -> list[Mutation]:
        if isinstance(node, ast.If):
            if isinstance(node.test, ast.UnaryOp) and isinstance(node.test.op, ast.Not):
                return self._mutate_unless(node, context)
            return self._mutate_if(node, context)
        if isinstance(node, ast.IfExp):
            inverted = ast.IfExp(
                test=_negated(node.test),
                body=copy.deepcopy(node.body),
                orelse=copy.deepcopy(node.orelse),
            )
            return [
                self._build(node, inverted, "invert if condition", context),
                self._build(node, copy.deepcopy(node.body), "always take if branch", context),
                self._build(node, copy.deepcopy(node.orelse), "always take else branch", context),
            ]
        return []

    def _mutate_if(self, node: ast.If, context: MutationContext) -> list[Mutation]:
        inverted = ast.If(
            test=_negated(node.test),
            body=copy.deepcopy(node.body),
            orelse=copy.deepcopy(node.orelse),
        )
        mutations = [
            self._build(node, inverted, "invert if condition", context),
            self._build(node, copy.deepcopy(node.body), "always take if branch", context),
        ]
        if node.orelse:
            mutations.append(
                self._build(node, copy.deepcopy(node.orelse), "always take else branch", context)
            )
        else:
            mutations.append(self._build(node, ast.Pass(), "remove if statement", context))
        return mutations

    def _mutate_unless(self, node: ast.If, context: MutationContext) -> list[Mutation]:
        assert isinstance(node.test, ast.UnaryOp)
        as_if = ast.If(
            test=copy.deepcopy(node.test.operand),
            body=copy.deepcopy(node.body),
            orelse=copy.deepcopy(node.orelse),
        )
        mutations = [
            self._build(node, as_if, "unless to if", context),
            self._build(node, copy.deepcopy(node.body), "always execute unless body", context),
        ]
        if node.orelse:
            mutations.append(
                self._build(node, copy.deepcopy(node.orelse), "always execute unless else", context)
            )
        return mutations


STRATEGIES: dict[str, type[Strategy]] = {
    "arithmetic": Arithmetic,
    "comparison": Comparison,
    "boolean": Boolean,
    "literal": Literal,
    "function_call": FunctionCall,
    "conditional": Conditional,
}

# Literal is opt-in: it multiplies the mutant count for little signal
DEFAULT_STRATEGIES: tuple[type[Strategy], ...] = (
    Arithmetic,
    Comparison,
    Boolean,
    FunctionCall,
    Conditional,
)


def resolve_strategies(names: Iterable[str] | None = None) -> list[Strategy]:
    """Instantiate strategies by registry name; ``None`` means the default set."""
    if names is None:
        return [cls() for cls in DEFAULT_STRATEGIES]
    strategies: list[Strategy] = []
    for raw in names:
        key = raw.strip().lower()
        if not key:
            continue
        cls = STRATEGIES.get(key)
        if cls is None:
            raise ConfigurationError(
                f"unknown strategy {raw!r}; expected one of {', '.join(sorted(STRATEGIES))}"
            )
        strategies.append(cls())
    return strategies
