"""pytest plugin loaded in the child process: prints ``N tests, M failures``.

Enabled with ``-p mutascope.pytest_summary``. Setup and teardown errors and
collection errors count as failures so a mutant that breaks imports is
killed rather than surviving with zero tests run.
"""

from __future__ import annotations

from typing import Any


class _ResultCollector:
    def __init__(self) -> None:
        self.total = 0
        self.failed: list[str] = []
        self.errors: list[str] = []

    def pytest_runtest_logreport(self, report: Any) -> None:
        if report.when == "call":
            self.total += 1
            if report.failed:
                self.failed.append(report.nodeid)
        elif report.when in ("setup", "teardown") and report.failed:
            self.errors.append(report.nodeid)

    def pytest_collectreport(self, report: Any) -> None:
        if report.failed:
            self.errors.append(report.nodeid)

    @property
    def failures(self) -> int:
        return len(self.failed) + len(self.errors)

    def summary(self) -> str:
        noun = "failure" if self.failures == 1 else "failures"
        return f"{self.total} tests, {self.failures} {noun}"

    def pytest_terminal_summary(self, terminalreporter: Any) -> None:
        terminalreporter.write_line(self.summary())


def pytest_configure(config: Any) -> None:
    config.pluginmanager.register(_ResultCollector(), "mutascope-summary")
