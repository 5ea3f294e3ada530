"""Tests for mutascope.dependencies: module to test-file mapping."""

import ast
import logging

from mutascope.dependencies import (
    analyze,
    extract_module_references,
    find_test_files,
    get_dependent_tests,
    get_tests_for_mutation,
    modules_from_label,
)
from mutascope.models import DependencyMap, Mutation


def _mutation(file_path):
    node = ast.parse("a + b", mode="eval").body
    return Mutation("Arithmetic", node, node, "Arithmetic: + to -", file_path, 1)


def describe_extract_module_references():
    def it_reads_imports_and_aliases():
        tree = ast.parse(
            "import target.calculator as calc\n"
            "from pkg.mod import thing\n"
            "import os.path\n"
        )
        modules = extract_module_references(tree)
        assert {"target.calculator", "pkg.mod", "pkg.mod.thing", "os.path"} <= modules

    def it_resolves_qualified_calls_through_aliases():
        tree = ast.parse("import shop.cart as c\n\ndef test_total():\n    c.pricing.total(1)\n")
        assert "shop.cart.pricing" in extract_module_references(tree)

    def it_ignores_relative_imports():
        tree = ast.parse("from . import helpers\n")
        assert extract_module_references(tree) == set()

    def it_reads_capitalised_labels():
        tree = ast.parse('describe("Billing.Invoice totals", lambda: None)\n')
        assert "Billing.Invoice" in extract_module_references(tree)

    def it_reads_docstring_labels():
        tree = ast.parse('def test_x():\n    """Billing handles refunds."""\n')
        assert "Billing" in extract_module_references(tree)


def describe_modules_from_label():
    def it_takes_the_leading_dotted_capitalised_name():
        assert modules_from_label("Calculator.Ops adds numbers") == {"Calculator.Ops"}

    def it_returns_nothing_for_lowercase_labels():
        assert modules_from_label("adds numbers") == set()

    def it_respects_known_modules():
        assert modules_from_label("Calculator adds", {"other"}) == set()
        assert modules_from_label("Calculator adds", {"Calculator"}) == {"Calculator"}


def describe_find_test_files():
    def it_matches_test_file_names_and_skips_conftest(tmp_path):
        tests = tmp_path / "tests"
        (tests / "unit").mkdir(parents=True)
        for name in ("describe_a.py", "test_b.py", "helpers.py", "conftest.py"):
            (tests / name).write_text("")
        (tests / "unit" / "c_test.py").write_text("")
        found = find_test_files(str(tests))
        assert [p.replace(str(tests), "") for p in found] == [
            "/describe_a.py",
            "/test_b.py",
            "/unit/c_test.py",
        ]


def describe_analyze():
    def it_maps_modules_to_test_files(tmp_path):
        test_file = tmp_path / "describe_calc.py"
        test_file.write_text("from target.calculator import add\n")
        dependency_map = analyze([str(test_file)])
        assert dependency_map.tests_for("target.calculator") == {str(test_file)}

    def it_deduplicates_test_files(tmp_path):
        test_file = tmp_path / "test_calc.py"
        test_file.write_text("import calc\nimport calc\ncalc.add(1, 2)\n")
        dependency_map = analyze([str(test_file), str(test_file)])
        assert dependency_map.tests_for("calc") == {str(test_file)}

    def it_skips_unparsable_files(tmp_path, caplog):
        broken = tmp_path / "test_broken.py"
        broken.write_text("def (:\n")
        good = tmp_path / "test_good.py"
        good.write_text("import calc\n")
        with caplog.at_level(logging.WARNING, logger="mutascope.dependencies"):
            dependency_map = analyze([str(broken), str(good)])
        assert dependency_map.tests_for("calc") == {str(good)}
        assert "test_broken.py" in caplog.text


def describe_get_tests_for_mutation():
    def it_returns_the_test_files_of_the_owning_module():
        dependency_map = DependencyMap()
        dependency_map.add("M", "tests/describe_m.py")
        file_to_module = {"lib/m.py": "M"}
        assert get_tests_for_mutation(_mutation("lib/m.py"), dependency_map, file_to_module) == {
            "tests/describe_m.py"
        }

    def it_returns_an_empty_set_for_unmapped_files():
        dependency_map = DependencyMap()
        dependency_map.add("M", "tests/describe_m.py")
        assert get_tests_for_mutation(_mutation("lib/other.py"), dependency_map, {}) == set()

    def it_returns_an_empty_set_for_modules_without_tests():
        assert get_dependent_tests("Nope", DependencyMap()) == set()
