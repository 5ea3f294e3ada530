"""Tests for target.calculator module."""

from target.calculator import add, average, clamp


def describe_add():
    def it_adds_two_positive_integers():
        assert add(2, 3) == 5

    def it_adds_negative_numbers():
        assert add(-1, -2) == -3


def describe_clamp():
    def it_returns_value_inside_range():
        assert clamp(5, 0, 10) == 5

    def it_raises_to_low():
        assert clamp(-3, 0, 10) == 0

    def it_lowers_to_high():
        assert clamp(12, 0, 10) == 10


def describe_average():
    def it_averages_values():
        assert average([2.0, 4.0]) == 3.0

    def it_handles_a_single_value():
        assert average([7.0]) == 7.0
