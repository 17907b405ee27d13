"""
Measure percentage helpers.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal


def calculate_percentage(pass_filter: int, exclude_filter: int, pass_target: int) -> int:
    """
    Whole-number percentage of `pass_target` over the eligible count.

    The eligible count is `pass_filter - exclude_filter`. When it is zero or
    negative the result is 0; the function never divides by zero.
    """
    eligible = pass_filter - exclude_filter
    if eligible <= 0:
        return 0
    value = Decimal(pass_target) * 100 / Decimal(eligible)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_percentage(value: int) -> str:
    return f"{value}%"
