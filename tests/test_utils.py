"""
Tests for utility functions.
"""

import pytest

from watchme.utils import minutes_to_human


@pytest.mark.parametrize("minutes,expected", [
    (148, "2 h 28 min"),
    (120, "2 h"),
    (45, "45 min"),
    (60, "1 h"),
    (0, ""),
    (None, ""),
    (-5, ""),
])
def test_minutes_to_human(minutes, expected):
    assert minutes_to_human(minutes) == expected
