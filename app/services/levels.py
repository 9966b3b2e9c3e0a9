"""
Level ladder and ranks derived from lifetime points.

Threshold for reaching level i+1 is 50 + 50*i + 25*i*(i+1)/2, so the
ladder runs 50, 125, 225, ... up to 200000 at level 125.
"""
from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from typing import Optional

MAX_LEVEL = 125

LEVEL_THRESHOLDS: list[int] = [
    50 + 50 * i + (25 * i * (i + 1)) // 2 for i in range(MAX_LEVEL)
]

# (min_level, key, display name, colour, icon)
RANKS: list[tuple[int, str, str, str, str]] = [
    (0,   "wood",      "Wood",      "#8B4513", "🌳"),
    (10,  "bronze",    "Bronze",    "#CD7F32", "🥉"),
    (25,  "silver",    "Silver",    "#C0C0C0", "🥈"),
    (50,  "gold",      "Gold",      "#FFD700", "🥇"),
    (100, "diamond",   "Diamond",   "#B9F2FF", "💎"),
    (200, "legendary", "Legendary", "#FF6B6B", "👑"),
]


@dataclass(frozen=True)
class LevelInfo:
    level: int
    rank: str
    rank_name: str
    color: str
    icon: str
    points: int
    current_threshold: int
    next_threshold: Optional[int]   # None at max level

    @property
    def points_in_current_level(self) -> int:
        return self.points - self.current_threshold

    @property
    def points_to_next_level(self) -> int:
        if self.next_threshold is None:
            return 0
        return self.next_threshold - self.points

    @property
    def progress(self) -> float:
        if self.next_threshold is None:
            return 1.0
        span = self.next_threshold - self.current_threshold
        return round((self.points - self.current_threshold) / span, 4)


def rank_for_level(level: int) -> tuple[str, str, str, str]:
    current = RANKS[0]
    for rank in RANKS:
        if level >= rank[0]:
            current = rank
    return current[1:]


def level_for_points(points: int) -> LevelInfo:
    points = max(0, int(points))
    level = bisect_right(LEVEL_THRESHOLDS, points)
    key, name, color, icon = rank_for_level(level)
    return LevelInfo(
        level=level,
        rank=key,
        rank_name=name,
        color=color,
        icon=icon,
        points=points,
        current_threshold=LEVEL_THRESHOLDS[level - 1] if level > 0 else 0,
        next_threshold=LEVEL_THRESHOLDS[level] if level < MAX_LEVEL else None,
    )
