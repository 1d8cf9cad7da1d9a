from __future__ import annotations

import pytest

from learnpath.services.progress_calculator import (
    is_complete,
    module_progress,
    percentage,
)
from tests.conftest import make_course


def test_zero_lessons_is_zero_percent() -> None:
    assert percentage(0, 0) == 0
    assert percentage(3, 0) == 0


@pytest.mark.parametrize(
    ("done", "total", "expected"),
    [
        (0, 3, 0),
        (1, 3, 33),
        (2, 3, 67),
        (3, 3, 100),
        (1, 8, 13),  # 12.5 rounds half up
        (1, 2, 50),
    ],
)
def test_percentage_rounds_half_up(done: int, total: int, expected: int) -> None:
    assert percentage(done, total) == expected


def test_percentage_is_capped_at_100() -> None:
    assert percentage(5, 3) == 100


def test_percentage_stays_in_range() -> None:
    for total in range(1, 12):
        for done in range(total + 1):
            assert 0 <= percentage(done, total) <= 100


def test_is_complete_threshold() -> None:
    assert is_complete(100)
    assert not is_complete(99)


def test_module_progress_per_module() -> None:
    assert module_progress(make_course(), ["L1"]) == {"M1": 50, "M2": 0}
    assert module_progress(make_course(), ["L1", "L2", "L3"]) == {"M1": 100, "M2": 100}
