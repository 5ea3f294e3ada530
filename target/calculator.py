"""Sample module mutated by the end-to-end runs."""

from __future__ import annotations

history: list[str] = []


def record(operation: str, result: float) -> None:
    history.append(f"{operation}={result}")


def add(a: int, b: int) -> int:
    return a + b


def clamp(value: int, low: int, high: int) -> int:
    if value < low:
        return low
    if value > high:
        return high
    return value


def average(values: list[float]) -> float:
    total = sum(values)
    record("average", total)
    return total / len(values)
