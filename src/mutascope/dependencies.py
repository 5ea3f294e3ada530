"""Map production modules to the test files that reference them."""

from __future__ import annotations

import ast
import glob
import logging
import os
import re
from typing import Iterable, Mapping

from mutascope.errors import ParseError
from mutascope.language import LanguageAdapter, PythonAdapter
from mutascope.models import DependencyMap, Mutation

logger = logging.getLogger(__name__)

# "Calculator.add returns the sum" -> "Calculator"
_LABEL_MODULE = re.compile(r"^([A-Z][A-Za-z0-9_]*(?:\.[A-Z][A-Za-z0-9_]*)*)")

_LABEL_CALLEES = frozenset({"describe", "context", "it", "test"})


def _dotted(node: ast.expr) -> str | None:
    """``a.b.c`` attribute chain rooted at a name, else None."""
    parts: list[str] = []
    while isinstance(node, ast.Attribute):
        parts.append(node.attr)
        node = node.value
    if not isinstance(node, ast.Name):
        return None
    parts.append(node.id)
    return ".".join(reversed(parts))


class _ModuleReferenceCollector(ast.NodeVisitor):
    """Collect module ids a test file refers to."""

    def __init__(self) -> None:
        self.modules: set[str] = set()
        self.labels: list[str] = []
        self.aliases: dict[str, str] = {}

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            self.modules.add(alias.name)
            if alias.asname:
                self.aliases[alias.asname] = alias.name
            else:
                # ``import a.b`` binds ``a``
                root = alias.name.split(".", 1)[0]
                self.aliases.setdefault(root, root)
        self.generic_visit(node)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        if node.module and node.level == 0:
            self.modules.add(node.module)
            for alias in node.names:
                if alias.name == "*":
                    continue
                # the imported name may itself be a submodule
                qualified = f"{node.module}.{alias.name}"
                self.modules.add(qualified)
                self.aliases[alias.asname or alias.name] = qualified
        self.generic_visit(node)

    def visit_Call(self, node: ast.Call) -> None:
        if isinstance(node.func, ast.Attribute):
            target = _dotted(node.func.value)
            if target is not None:
                self.modules.add(self._resolve(target))
        elif isinstance(node.func, ast.Name) and node.func.id in _LABEL_CALLEES:
            if node.args and isinstance(node.args[0], ast.Constant) and isinstance(node.args[0].value, str):
                self.labels.append(node.args[0].value)
        self.generic_visit(node)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._docstring_label(node)
        self.generic_visit(node)

    visit_AsyncFunctionDef = visit_FunctionDef  # type: ignore[assignment]

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self._docstring_label(node)
        self.generic_visit(node)

    def _docstring_label(self, node: ast.AST) -> None:
        doc = ast.get_docstring(node)  # type: ignore[arg-type]
        if doc:
            self.labels.append(doc)

    def _resolve(self, dotted: str) -> str:
        head, _, rest = dotted.partition(".")
        base = self.aliases.get(head, head)
        return f"{base}.{rest}" if rest else base


def modules_from_label(label: str, known_modules: set[str] | None = None) -> set[str]:
    """Best-effort module id from a description string."""
    match = _LABEL_MODULE.match(label.strip())
    if match is None:
        return set()
    candidate = match.group(1)
    if known_modules is not None and candidate not in known_modules:
        return set()
    return {candidate}


def extract_module_references(
    tree: ast.AST, known_modules: set[str] | None = None
) -> set[str]:
    """Module ids referenced by imports, qualified calls and test labels."""
    collector = _ModuleReferenceCollector()
    collector.visit(tree)
    modules = set(collector.modules)
    for label in collector.labels:
        modules |= modules_from_label(label, known_modules)
    return modules


def find_test_files(test_dir: str, adapter: LanguageAdapter | None = None) -> list[str]:
    """Every file under ``test_dir`` matching the adapter's test pattern."""
    adapter = adapter or PythonAdapter()
    pattern = adapter.test_file_pattern()
    found: set[str] = set()
    for ext in adapter.file_extensions():
        for path in glob.glob(os.path.join(test_dir, "**", f"*{ext}"), recursive=True):
            normalized = path.replace(os.sep, "/")
            if pattern.search(normalized) and not os.path.basename(path).startswith("conftest"):
                found.add(path)
    return sorted(found)


def analyze(
    test_files: Iterable[str],
    adapter: LanguageAdapter | None = None,
    known_modules: Iterable[str] | None = None,
) -> DependencyMap:
    """Parse each test file and build the module -> test files map."""
    adapter = adapter or PythonAdapter()
    known = set(known_modules) if known_modules is not None else None
    dependency_map = DependencyMap()
    for test_file in test_files:
        try:
            with open(test_file, encoding="utf-8") as f:
                source = f.read()
            tree = adapter.parse(source, test_file)
        except (OSError, UnicodeDecodeError, ParseError) as exc:
            logger.warning("skipping test file %s: %s", test_file, exc)
            continue
        for module_id in extract_module_references(tree, known):
            dependency_map.add(module_id, test_file)
    logger.debug(
        "dependency map: %d modules across test files", len(dependency_map.modules)
    )
    return dependency_map


def get_dependent_tests(module_id: str, dependency_map: DependencyMap) -> set[str]:
    return dependency_map.tests_for(module_id)


def get_tests_for_mutation(
    mutation: Mutation,
    dependency_map: DependencyMap,
    file_to_module: Mapping[str, str | None],
) -> set[str]:
    """Test files for the mutated file's module; empty set when unknown."""
    module_id = file_to_module.get(mutation.file_path)
    if module_id is None:
        return set()
    return get_dependent_tests(module_id, dependency_map)
