"""
Compliance score.

score = 100 - 20 x critical - 10 x high - 5 x (medium + low), floored at 0,
over an entity's violations in a trailing window of calendar months.
"""

from typing import Mapping

from regwatch.schemas.enums import ViolationSeverity

MAX_SCORE: int = 100

SEVERITY_PENALTY: dict[ViolationSeverity, int] = {
    ViolationSeverity.CRITICAL: 20,
    ViolationSeverity.HIGH: 10,
    ViolationSeverity.MEDIUM: 5,
    ViolationSeverity.LOW: 5,
}

# (minimum score, rating), checked top-down
RATING_BANDS: tuple[tuple[int, str], ...] = (
    (90, "Excellent"),
    (75, "Good"),
    (50, "Fair"),
    (0, "Poor"),
)


def compute_score(counts: Mapping[ViolationSeverity, int]) -> int:
    penalty = sum(SEVERITY_PENALTY[severity] * n for severity, n in counts.items())
    return max(0, MAX_SCORE - penalty)


def rating_for(score: int) -> str:
    for minimum, rating in RATING_BANDS:
        if score >= minimum:
            return rating
    return RATING_BANDS[-1][1]
