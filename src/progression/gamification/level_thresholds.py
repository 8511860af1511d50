"""Level curve and level computation.

T(L) is the cumulative XP needed to reach level L:

  L = 1:        0
  2 <= L <= 5:  floor(100 * 1.5^(L-1))
  6 <= L <= 20: T(5) + (L - 5) * 200
  L > 20:       T(20) + (L - 20) * 500

This module is the only place levels are derived from XP.
"""

from __future__ import annotations

RANK_NAMES: list[str] = [
    "Novice",
    "Learner",
    "Student",
    "Scholar",
    "Expert",
    "Master",
    "Grandmaster",
    "Legend",
]

LEVELS_PER_RANK = 4

_T5 = 100 * 3**4 // 2**4  # 506
_T20 = _T5 + 15 * 200  # 3506


def xp_threshold(level: int) -> int:
    """Cumulative XP required to reach `level`."""
    if level < 1:
        msg = f"level must be >= 1, got {level}"
        raise ValueError(msg)
    if level == 1:
        return 0
    if level <= 5:
        # floor(100 * 1.5^(L-1)) in exact integer arithmetic
        return 100 * 3 ** (level - 1) // 2 ** (level - 1)
    if level <= 20:
        return _T5 + (level - 5) * 200
    return _T20 + (level - 20) * 500


def level_from_xp(total_xp: int) -> int:
    """Largest level L with T(L) <= total_xp. Monotonic non-decreasing in XP."""
    if total_xp >= _T20:
        return 20 + (total_xp - _T20) // 500
    if total_xp >= _T5:
        return 5 + (total_xp - _T5) // 200
    for level in (4, 3, 2):
        if total_xp >= xp_threshold(level):
            return level
    return 1


def rank_name(level: int) -> str:
    """Rank title for a level: one rank per four levels, capped at the last."""
    index = min(max(level - 1, 0) // LEVELS_PER_RANK, len(RANK_NAMES) - 1)
    return RANK_NAMES[index]


def compute_level(total_xp: int) -> dict:
    """Compute level info from total XP."""
    level = level_from_xp(total_xp)
    current_threshold = xp_threshold(level)
    next_threshold = xp_threshold(level + 1)

    return {
        "level": level,
        "title": rank_name(level),
        "xp_into_level": max(total_xp - current_threshold, 0),
        "xp_for_level": next_threshold - current_threshold,
        "next_level": level + 1,
        "next_title": rank_name(level + 1),
    }


def level_table(max_level: int = 30) -> list[dict]:
    """Thresholds for levels 1..max_level, for display."""
    return [
        {
            "level": level,
            "title": rank_name(level),
            "xp_required": xp_threshold(level) - (xp_threshold(level - 1) if level > 1 else 0),
            "cumulative": xp_threshold(level),
        }
        for level in range(1, max_level + 1)
    ]
