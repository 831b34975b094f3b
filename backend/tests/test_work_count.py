from __future__ import annotations

import pytest

from pomo.timer import IntervalType, apply_work_count, next_interval_type, suggest_long_break


@pytest.mark.parametrize(
    "interval_type, before, after",
    [
        (IntervalType.WORK, 0, 1),
        (IntervalType.WORK, 3, 4),
        (IntervalType.SHORT_BREAK, 3, 3),
        (IntervalType.SHORT_BREAK, 0, 0),
        (IntervalType.LONG_BREAK, 4, 0),
        (IntervalType.LONG_BREAK, 0, 0),
    ],
)
def test_apply_work_count(interval_type: IntervalType, before: int, after: int) -> None:
    assert apply_work_count(interval_type, before) == after


def test_work_count_sequence() -> None:
    count = 0
    for kind in ["work", "short_break", "work", "short_break", "work", "work"]:
        count = apply_work_count(IntervalType(kind), count)
    assert count == 4
    assert apply_work_count(IntervalType.LONG_BREAK, count) == 0


@pytest.mark.parametrize(
    "count, frequency, expected",
    [
        (3, 4, False),
        (4, 4, True),
        (5, 4, True),
        (0, 0, False),
        (1, 0, True),
    ],
)
def test_suggest_long_break(count: int, frequency: int, expected: bool) -> None:
    assert suggest_long_break(count, frequency) is expected


@pytest.mark.parametrize(
    "last_completed, count, expected",
    [
        (None, 0, IntervalType.WORK),
        (IntervalType.WORK, 1, IntervalType.SHORT_BREAK),
        (IntervalType.WORK, 4, IntervalType.LONG_BREAK),
        (IntervalType.SHORT_BREAK, 2, IntervalType.WORK),
        (IntervalType.LONG_BREAK, 0, IntervalType.WORK),
    ],
)
def test_next_interval_type(last_completed, count: int, expected: IntervalType) -> None:
    assert next_interval_type(last_completed, count, 4) is expected


def test_break_types_flagged() -> None:
    assert IntervalType.WORK.is_break is False
    assert IntervalType.SHORT_BREAK.is_break is True
    assert IntervalType.LONG_BREAK.is_break is True
