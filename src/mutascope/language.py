"""Language adapter: parse, render and compile source for a target language."""

from __future__ import annotations

import ast
import os
import re
import sys
from types import CodeType
from typing import Protocol

from mutascope.errors import InvalidMutation, ParseError


class LanguageAdapter(Protocol):
    """What the walker, patcher and dependency mapper need from a language."""

    def parse(self, source: str, path: str = "<unknown>") -> ast.Module: ...

    def unparse(self, tree: ast.AST) -> str: ...

    def compile(self, source: str, unit_id: str) -> CodeType: ...

    def file_extensions(self) -> list[str]: ...

    def test_file_pattern(self) -> re.Pattern[str]: ...

    def module_id(self, path: str, root: str | None = None) -> str | None: ...


_TEST_FILE = re.compile(r"(^|/)(test_[^/]*|[^/]*_test|describe_[^/]*|conftest)\.py$")


class PythonAdapter:
    """Adapter for Python source backed by the ``ast`` module."""

    def parse(self, source: str, path: str = "<unknown>") -> ast.Module:
        try:
            return ast.parse(source, filename=path)
        except (SyntaxError, ValueError) as exc:
            raise ParseError(path, exc) from exc

    def unparse(self, tree: ast.AST) -> str:
        try:
            return ast.unparse(ast.fix_missing_locations(tree))
        except (AttributeError, TypeError, ValueError, RecursionError) as exc:
            raise InvalidMutation(f"cannot render mutated tree: {exc}") from exc

    def compile(self, source: str, unit_id: str) -> CodeType:
        try:
            return compile(source, unit_id, "exec")
        except (SyntaxError, ValueError) as exc:
            raise InvalidMutation(f"mutant does not compile: {exc}") from exc

    def file_extensions(self) -> list[str]:
        return [".py"]

    def test_file_pattern(self) -> re.Pattern[str]:
        return _TEST_FILE

    def module_id(self, path: str, root: str | None = None) -> str | None:
        """Convert a file path to a dotted module name.

        With ``root`` the name is relative to it, or to ``root/src`` for files
        under a ``src/`` layout. Otherwise the longest matching ``sys.path``
        entry wins, falling back to a CWD-relative name.
        """
        abs_path = os.path.abspath(path)
        if root is not None:
            base = os.path.abspath(root)
            source_root = os.path.join(base, "src")
            if abs_path.startswith(source_root + os.sep):
                base = source_root
        else:
            candidates = sorted(
                (
                    os.path.abspath(entry)
                    for entry in sys.path
                    if entry and abs_path.startswith(os.path.abspath(entry) + os.sep)
                ),
                key=len,
                reverse=True,
            )
            base = candidates[0] if candidates else os.getcwd()
        rel = os.path.relpath(abs_path, base)
        if rel.startswith(os.pardir):
            return None
        rel, ext = os.path.splitext(rel)
        if ext not in self.file_extensions():
            return None
        parts = rel.split(os.sep)
        if parts[-1] == "__init__":
            parts = parts[:-1]
        if not parts or not all(p.isidentifier() for p in parts):
            return None
        return ".".join(parts)
