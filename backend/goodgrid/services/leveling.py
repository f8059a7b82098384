from __future__ import annotations
import math

MIN_MULTIPLIER = 0.5
MAX_MULTIPLIER = 1.5


def level_for(xp: int) -> int:
    """100 XP reaches level 2, then one level per 50 XP."""
    if xp < 100:
        return 1
    return (xp - 50) // 50 + 1


def quality_multiplier(quality_score: float) -> float:
    return max(MIN_MULTIPLIER, min(MAX_MULTIPLIER, quality_score / 100 + 0.5))


def round_half_up(x: float) -> int:
    # round() is banker's rounding; 2.5 must become 3
    return int(math.floor(x + 0.5))


def running_average(current: float, previous_count: int, new_value: float) -> float:
    if previous_count <= 0:
        return new_value
    return (current * previous_count + new_value) / (previous_count + 1)


def rating_from_score(score: float) -> float:
    """0-100 quality score onto the 1-5 rating scale."""
    return score / 20


def history_quality(score: float) -> int:
    # work_history stores a whole 1..5 rating
    return max(1, min(5, round_half_up(score / 20)))
