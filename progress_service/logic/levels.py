"""
Level table: maps a point total to a reader level label.

Thresholds are fixed and ascending; the level for a total is the label of
the highest threshold not above it.
"""
from bisect import bisect_right
from typing import Dict, Any, List, Tuple

LEVELS: List[Tuple[int, str]] = [
    (0, "Novizio"),
    (500, "Apprendista"),
    (1500, "Lettore"),
    (3000, "Esperto"),
    (6000, "Maestro"),
]

_THRESHOLDS = [threshold for threshold, _ in LEVELS]


def level_index(points: int) -> int:
    """Position of the level for ``points`` in LEVELS (negative totals clamp to 0)"""
    return bisect_right(_THRESHOLDS, max(points, 0)) - 1


def level_for(points: int) -> str:
    """
    Calculate level label based on total points

    Args:
        points: Total points

    Returns:
        Level label, e.g. "Novizio"
    """
    return LEVELS[level_index(points)][1]


def level_rank(label: str) -> int:
    """Position of a level label in table order"""
    for index, (_, name) in enumerate(LEVELS):
        if name == label:
            return index
    raise ValueError(f"Unknown level: {label}")


def level_progress(points: int) -> Dict[str, Any]:
    """
    Calculate progress towards the next level

    Args:
        points: Total points

    Returns:
        Dict with current_level, next_level, next_level_at and points_to_next_level
        (the last three are None at the top level)
    """
    index = level_index(points)
    current = LEVELS[index][1]

    if index + 1 >= len(LEVELS):
        return {
            'current_level': current,
            'next_level': None,
            'next_level_at': None,
            'points_to_next_level': None,
        }

    next_threshold, next_label = LEVELS[index + 1]
    return {
        'current_level': current,
        'next_level': next_label,
        'next_level_at': next_threshold,
        'points_to_next_level': next_threshold - max(points, 0),
    }
