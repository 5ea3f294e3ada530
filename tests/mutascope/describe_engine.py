"""End-to-end tests for mutascope.engine against a copy of the sample project."""

import shutil
from pathlib import Path
from unittest.mock import patch

import pytest

from mutascope.config import RunConfig
from mutascope.engine import Engine
from mutascope.errors import ConfigurationError
from mutascope.models import KILLED, SURVIVED, TestOutcome

REPO = Path(__file__).resolve().parents[2]


@pytest.fixture
def project(tmp_path):
    shutil.copytree(REPO / "target", tmp_path / "target", ignore=shutil.ignore_patterns("__pycache__"))
    tests = tmp_path / "tests" / "target"
    tests.mkdir(parents=True)
    shutil.copy(REPO / "tests" / "target" / "describe_calculator.py", tests)
    (tmp_path / "pyproject.toml").write_text(
        '[tool.pytest.ini_options]\npython_files = ["describe_*.py"]\n'
    )
    return tmp_path


def _config(**overrides):
    options = {
        "paths": ["target/calculator.py"],
        "test_dir": "tests",
        "concurrency": 2,
        "timeout": 60.0,
    }
    options.update(overrides)
    return RunConfig(**options)


def _by_description(run):
    return {r.mutation.description: r for r in run.results}


def describe_Engine():
    def it_rejects_unknown_strategies_before_touching_files(project):
        engine = Engine(_config(strategies=["teleport"]))
        with pytest.raises(ConfigurationError):
            engine.run(root=str(project))

    def it_kills_an_operator_swap_caught_by_a_test(project):
        run = Engine(_config(strategies=["arithmetic"])).run(root=str(project))
        swap = next(
            r for r in run.results
            if r.mutation.description == "Arithmetic: + to -" and r.mutation.lineno == 13
        )
        assert swap.classification == KILLED
        assert run.mutations_tested == run.total_mutations == 4
        assert run.mutation_score == 100.0

    def it_lets_an_unobserved_call_removal_survive(project):
        original = (project / "target" / "calculator.py").read_bytes()
        run = Engine(_config(strategies=["function_call"])).run(root=str(project))
        results = _by_description(run)
        assert results["FunctionCall: remove record() call"].classification == SURVIVED
        assert results["FunctionCall: remove sum() call"].classification == KILLED
        assert (project / "target" / "calculator.py").read_bytes() == original
        assert not (project / "target" / "calculator.py.backup").exists()

    def it_runs_in_sandboxes_without_touching_the_project(project):
        original = (project / "target" / "calculator.py").read_bytes()
        config = _config(strategies=["arithmetic"], isolation="sandbox")
        run = Engine(config).run(root=str(project))
        assert run.counts[KILLED] == 4
        assert (project / "target" / "calculator.py").read_bytes() == original

    def it_caps_the_number_of_mutants(project):
        run = Engine(_config(strategies=["arithmetic"], max_mutations=1)).run(root=str(project))
        assert run.total_mutations == 4
        assert run.mutations_tested == 1

    def it_reports_optimization(project):
        config = _config(strategies=["comparison"], optimize=True, optimize_level="aggressive")
        run = Engine(config).run(root=str(project))
        assert run.optimization is not None
        assert run.optimization["original_count"] == run.total_mutations
        # clamp's strict comparisons are dropped, their >= / <= variants kept
        assert {r.mutation.description for r in run.results} == {
            "Comparison: < to <=",
            "Comparison: > to >=",
        }


def describe_Engine_load():
    def it_assigns_module_ids_relative_to_the_root(project):
        files = Engine(_config()).load(root=str(project))
        assert [f.module_id for f in files] == ["target.calculator"]

    def it_skips_excluded_files(project):
        (project / "target" / "generated_tables.py").write_text("TABLE = 1 + 2\n")
        config = _config(paths=["target"], exclude=["target/generated_*.py"])
        files = Engine(config).load(root=str(project))
        assert [f.module_id for f in files] == ["target.calculator"]


@pytest.fixture
def src_project(tmp_path):
    package = tmp_path / "src" / "pkg"
    package.mkdir(parents=True)
    (package / "__init__.py").write_text("")
    (package / "calc.py").write_text("def add(a, b):\n    return a + b\n")
    tests = tmp_path / "tests"
    tests.mkdir()
    (tests / "test_calc.py").write_text(
        "from pkg.calc import add\n\n\ndef test_add():\n    assert add(1, 2) == 3\n"
    )
    (tests / "test_other.py").write_text("def test_nothing():\n    pass\n")
    return tmp_path


def describe_src_layout():
    def it_names_modules_by_their_import_path(src_project):
        files = Engine(_config(paths=["src"])).load(root=str(src_project))
        assert sorted(f.module_id for f in files) == ["pkg", "pkg.calc"]

    def it_runs_only_the_tests_that_import_the_module(src_project):
        outcome = TestOutcome(failures=1, output="", exit_code=1, duration=0.0)
        config = _config(paths=["src"], strategies=["arithmetic"])
        with patch("mutascope.scheduler.run_tests", return_value=outcome) as run:
            result = Engine(config).run(root=str(src_project))
        assert result.mutations_tested == 2
        selected = {tuple(call.args[0]) for call in run.call_args_list}
        assert selected == {(str(src_project / "tests" / "test_calc.py"),)}
