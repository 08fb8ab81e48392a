"""
Score Combination

Folds the grader's MQM dimensions and a format score (placeholder / ICU
structure checks done by the caller) into one 0-100 quality score.
"""

import math

from quality_gauge_core.domain.value_objects import MQMScore

# Weights sum to 1.0
SCORE_WEIGHTS = {
    "accuracy": 0.40,
    "fluency": 0.25,
    "terminology": 0.15,
    "format": 0.20,
}


def calculate_combined_score(score: MQMScore, format_score: float = 100.0) -> int:
    """
    Weighted combination of MQM dimensions and the format score

    Rounds half up. format_score is not clamped.

    Args:
        score: MQM score from the grader
        format_score: Structural score from heuristic checks (default: 100, no format issues)

    Returns:
        Combined score
    """
    total = (
        score.accuracy * SCORE_WEIGHTS["accuracy"]
        + score.fluency * SCORE_WEIGHTS["fluency"]
        + score.terminology * SCORE_WEIGHTS["terminology"]
        + format_score * SCORE_WEIGHTS["format"]
    )
    # Absorb float noise such as 84.99999999 before rounding
    return int(math.floor(round(total, 6) + 0.5))
