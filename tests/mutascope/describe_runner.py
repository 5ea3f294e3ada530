"""Tests for mutascope.runner: the isolated test process."""

import os
import subprocess
import sys
from unittest.mock import patch

import pytest

from mutascope.errors import RunnerError, RunnerTimeout
from mutascope.runner import (
    RunnerOptions,
    build_command,
    build_env,
    count_failures,
    run_tests,
)


def describe_count_failures():
    def it_reads_the_summary_count():
        assert count_failures("3 tests, 1 failure\n") == 1
        assert count_failures("5 tests, 2 failures\n") == 2

    def it_reads_zero_failures():
        assert count_failures("4 tests, 0 failures\n") == 0

    def it_ignores_counts_quoted_in_failure_messages():
        output = (
            "4 tests, 1 failure\n"
            "=========================== short test summary info ============================\n"
            "FAILED tests/t.py::test_x - AssertionError: 0 failures\n"
        )
        assert count_failures(output) == 1

    def it_treats_output_without_a_summary_line_as_failing():
        assert count_failures("ERROR tests/t.py - 0 failures expected\n") == 1
        assert count_failures("ImportError: no module named calc") == 1
        assert count_failures("") == 1


def describe_build_command():
    def it_runs_pytest_with_the_summary_plugin():
        command = build_command(["tests/describe_calc.py"])
        assert command[:3] == [sys.executable, "-m", "pytest"]
        assert "mutascope.pytest_summary" in command
        assert command[-1] == "tests/describe_calc.py"

    def it_appends_test_files_to_a_custom_command():
        options = RunnerOptions(command=["make", "test"])
        assert build_command(["a.py", "b.py"], options) == ["make", "test", "a.py", "b.py"]


def describe_build_env():
    def it_marks_the_environment_and_disables_bytecode():
        env = build_env(RunnerOptions(env_name="mutation", env={"EXTRA": "1"}))
        assert env["MUTASCOPE_ENV"] == "mutation"
        assert env["PYTHONDONTWRITEBYTECODE"] == "1"
        assert env["EXTRA"] == "1"

    def it_lets_the_child_import_the_summary_plugin():
        import mutascope

        package_root = os.path.dirname(os.path.dirname(os.path.abspath(mutascope.__file__)))
        env = build_env(RunnerOptions(env={"PYTHONPATH": "/opt/extra"}))
        assert env["PYTHONPATH"].split(os.pathsep) == ["/opt/extra", package_root]


def describe_run_tests():
    def it_returns_the_parsed_outcome():
        completed = subprocess.CompletedProcess(args=[], returncode=1, stdout=b"2 tests, 1 failure\n")
        with patch("mutascope.runner.subprocess.run", return_value=completed) as run:
            outcome = run_tests(["t.py"], timeout=3.0, options=RunnerOptions(cwd="/project"))
        assert outcome.failures == 1
        assert outcome.exit_code == 1
        assert outcome.output == "2 tests, 1 failure\n"
        kwargs = run.call_args.kwargs
        assert kwargs["timeout"] == 3.0
        assert kwargs["cwd"] == "/project"
        assert kwargs["stderr"] == subprocess.STDOUT

    def it_raises_on_timeout():
        expired = subprocess.TimeoutExpired(cmd="pytest", timeout=2.0, output=b"partial")
        with patch("mutascope.runner.subprocess.run", side_effect=expired):
            with pytest.raises(RunnerTimeout) as info:
                run_tests(["t.py"], timeout=2.0)
        assert info.value.timeout == 2.0
        assert info.value.output == "partial"

    def it_raises_when_the_process_cannot_start():
        with patch("mutascope.runner.subprocess.run", side_effect=FileNotFoundError("nope")):
            with pytest.raises(RunnerError):
                run_tests(["t.py"])

    def it_runs_a_real_child_process():
        options = RunnerOptions(command=[sys.executable, "-c", "print('4 tests, 0 failures')"])
        outcome = run_tests([], timeout=30.0, options=options)
        assert outcome.failures == 0
        assert outcome.exit_code == 0

    def it_kills_a_child_that_overruns():
        options = RunnerOptions(command=[sys.executable, "-c", "import time; time.sleep(30)"])
        with pytest.raises(RunnerTimeout):
            run_tests([], timeout=0.5, options=options)

    def it_counts_a_failure_whose_message_mentions_zero_failures(tmp_path):
        test_file = tmp_path / "test_report.py"
        test_file.write_text('def test_report():\n    assert False, "0 failures"\n')
        outcome = run_tests([str(test_file)], timeout=60.0, options=RunnerOptions(cwd=str(tmp_path)))
        assert outcome.exit_code == 1
        assert outcome.failures == 1
