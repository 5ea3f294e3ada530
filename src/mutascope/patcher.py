"""Apply one mutation to a tree and materialise it in memory or on disk."""

from __future__ import annotations

import ast
import contextlib
import copy
import glob
import logging
import os
import sys
import types
from typing import Iterator

from mutascope.errors import InvalidMutation, PatchMismatch
from mutascope.language import LanguageAdapter, PythonAdapter
from mutascope.models import Mutation, SourceFile

logger = logging.getLogger(__name__)

_MISSING = object()


def node_shape(node: ast.AST) -> str:
    """Structural fingerprint: the node's dump without positions."""
    return ast.dump(node, include_attributes=False)


class MutationApplier(ast.NodeTransformer):
    """Replace the first node matching the mutation's line and shape.

    Matching is line + structure, not identity: two structurally identical
    expressions on the same line are indistinguishable and the first one in
    pre-order wins.
    """

    def __init__(self, mutation: Mutation) -> None:
        self.mutation = mutation
        self.target_shape = node_shape(mutation.original)
        self.applied = False

    def _matches(self, node: ast.AST) -> bool:
        return (
            getattr(node, "lineno", None) == self.mutation.lineno
            and node_shape(node) == self.target_shape
        )

    def visit(self, node: ast.AST) -> ast.AST | list[ast.AST]:
        if not self.applied and self._matches(node):
            self.applied = True
            return copy.deepcopy(self.mutation.replacement)
        return self.generic_visit(node)


def apply_mutation(tree: ast.AST, mutation: Mutation) -> tuple[ast.AST, bool]:
    """Return (patched copy of tree, was_applied). The input tree is untouched."""
    applier = MutationApplier(mutation)
    patched = applier.visit(copy.deepcopy(tree))
    ast.fix_missing_locations(patched)
    return patched, applier.applied


def render_mutant(
    mutation: Mutation,
    source_file: SourceFile,
    adapter: LanguageAdapter | None = None,
    strict: bool = False,
) -> str:
    """Patched source text, checked to compile.

    Raises InvalidMutation when rendering or compiling fails, and
    PatchMismatch when ``strict`` and no node matched.
    """
    adapter = adapter or PythonAdapter()
    tree, applied = apply_mutation(source_file.tree, mutation)
    if not applied:
        mismatch = PatchMismatch(mutation.file_path, mutation.lineno, mutation.description)
        if strict:
            raise mismatch
        logger.warning("%s; running unmodified code", mismatch)
    source = adapter.unparse(tree)
    adapter.compile(source, source_file.path)
    return source


def _unit_name(source_file: SourceFile) -> str:
    if source_file.module_id:
        return source_file.module_id
    return os.path.splitext(os.path.basename(source_file.path))[0]


@contextlib.contextmanager
def patched_module(
    mutation: Mutation,
    source_file: SourceFile,
    adapter: LanguageAdapter | None = None,
    strict: bool = False,
) -> Iterator[types.ModuleType]:
    """Load the mutant in place of its module in ``sys.modules``.

    The previously loaded module object is put back verbatim on exit (or the
    entry removed if there was none).
    """
    adapter = adapter or PythonAdapter()
    name = _unit_name(source_file)
    source = render_mutant(mutation, source_file, adapter, strict=strict)
    code = adapter.compile(source, source_file.path)

    module = types.ModuleType(name)
    module.__file__ = source_file.path
    module.__package__ = name.rpartition(".")[0]
    try:
        exec(code, module.__dict__)
    except Exception as exc:
        raise InvalidMutation(f"mutant failed to load: {exc!r}") from exc

    previous = sys.modules.get(name, _MISSING)
    sys.modules[name] = module
    try:
        yield module
    finally:
        if previous is _MISSING:
            sys.modules.pop(name, None)
        else:
            sys.modules[name] = previous  # type: ignore[assignment]


def invalidate_bytecode(path: str) -> list[str]:
    """Remove cached ``.pyc`` files for ``path``; return what was removed.

    Bytecode validation keys on mtime (whole seconds) and size, so a same-size
    mutant written in the same second would otherwise run the stale cache.
    """
    directory, filename = os.path.split(os.path.abspath(path))
    stem = os.path.splitext(filename)[0]
    pattern = os.path.join(glob.escape(directory), "__pycache__", f"{glob.escape(stem)}.*.pyc")
    removed = []
    for pyc in glob.glob(pattern):
        with contextlib.suppress(FileNotFoundError):
            os.remove(pyc)
            removed.append(pyc)
    return removed


@contextlib.contextmanager
def patched_file(
    mutation: Mutation,
    source_file: SourceFile,
    adapter: LanguageAdapter | None = None,
    path: str | None = None,
    strict: bool = False,
) -> Iterator[str]:
    """Overwrite the file with the mutant for the duration of the block.

    The mutant is rendered before the file is touched. The original bytes are
    kept in memory and in ``<path>.backup`` and restored on every exit path.
    """
    target = path or source_file.path
    mutated = render_mutant(mutation, source_file, adapter, strict=strict)

    with open(target, "rb") as f:
        original = f.read()
    backup = target + ".backup"
    with open(backup, "wb") as f:
        f.write(original)

    try:
        with open(target, "w", encoding="utf-8") as f:
            f.write(mutated)
        yield target
    finally:
        with open(target, "wb") as f:
            f.write(original)
        with contextlib.suppress(FileNotFoundError):
            os.remove(backup)
        invalidate_bytecode(target)
