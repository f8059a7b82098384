from __future__ import annotations
from goodgrid.services.leveling import (
    history_quality, level_for, quality_multiplier, rating_from_score, round_half_up, running_average,
)


def test_level_boundaries():
    assert level_for(0) == 1
    assert level_for(99) == 1
    assert level_for(100) == 2
    assert level_for(149) == 2
    assert level_for(150) == 3
    assert level_for(2550) == 51


def test_level_is_monotonic():
    levels = [level_for(xp) for xp in range(0, 5000, 7)]
    assert levels == sorted(levels)


def test_multiplier_is_clamped():
    assert quality_multiplier(0) == 0.5
    assert quality_multiplier(50) == 1.0
    assert quality_multiplier(100) == 1.5
    # out-of-range scores never escape [0.5, 1.5]
    assert quality_multiplier(-40) == 0.5
    assert quality_multiplier(250) == 1.5


def test_round_half_up_not_bankers():
    assert round_half_up(2.5) == 3
    assert round_half_up(7.5) == 8
    assert round_half_up(7.49) == 7
    assert round_half_up(-2.5) == -2


def test_running_average():
    assert running_average(0.0, 0, 4.5) == 4.5
    assert running_average(4.0, 1, 5.0) == 4.5
    assert running_average(3.0, 3, 5.0) == 3.5


def test_score_to_rating_scales():
    assert rating_from_score(100) == 5
    assert rating_from_score(70) == 3.5
    assert history_quality(0) == 1
    assert history_quality(70) == 4
    assert history_quality(100) == 5
