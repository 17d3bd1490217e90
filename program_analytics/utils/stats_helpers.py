"""
Statistical helper functions for Program Analytics

Low-level calculations used by the pipeline steps. Every helper follows the
same zero-data contract: an empty sample reports 0, never NaN.
"""

from typing import Iterable, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from .. import config


def coerce_scores(values) -> pd.Series:
    """Numeric view of raw score values; non-numeric entries become NaN."""
    return pd.to_numeric(pd.Series(values, dtype=object), errors="coerce").astype(float)


def in_score_range(scores: pd.Series) -> pd.Series:
    """Boolean mask of scores inside [MIN_SCORE, MAX_SCORE] (NaN is outside)."""
    return scores.between(config.MIN_SCORE, config.MAX_SCORE)


def valid_score_mask(frame: pd.DataFrame) -> pd.Series:
    """
    Rows of an answer frame that take part in numeric aggregation.

    Only likert/rating answers with a numeric value in the score range count.

    Args:
        frame: Answer frame with ``question_type`` and ``numeric_value`` columns

    Returns:
        Boolean Series aligned with the frame
    """
    if frame.empty:
        return pd.Series(False, index=frame.index, dtype=bool)
    scores = coerce_scores(frame["numeric_value"].to_numpy())
    scores.index = frame.index
    numeric_type = frame["question_type"].isin(config.NUMERIC_QUESTION_TYPES)
    return numeric_type & in_score_range(scores)


def describe_scores(values: Iterable[float]) -> Tuple[float, float, int]:
    """
    Mean, standard deviation and count of a set of valid scores.

    The standard deviation divides by n (ddof=0) so that per-question
    figures stay comparable when they are averaged later.

    Args:
        values: Scores already filtered to the valid range

    Returns:
        Tuple of (mean, std_dev, count); (0.0, 0.0, 0) for an empty sample
    """
    series = pd.Series(list(values), dtype=float)
    count = len(series)
    if count == 0:
        return (0.0, 0.0, 0)
    return (float(series.mean()), float(series.std(ddof=0)), count)


def mean_of_means(means: Iterable[float]) -> float:
    """
    Unweighted mean of per-entity means; 0.0 when there are none.

    Callers drop entities without data beforehand.
    """
    means = [float(m) for m in means]
    if not means:
        return 0.0
    return float(np.mean(means))


def round_mean(value: float, decimal_places: Optional[int] = None) -> float:
    if decimal_places is None:
        decimal_places = config.DECIMAL_PLACES
    return round(float(value), decimal_places)


def satisfaction_rate(mean: float) -> float:
    """Mean score as a percentage of the top score, one decimal place."""
    return round(mean / config.MAX_SCORE * 100, config.PERCENTAGE_DECIMAL_PLACES)


def mean_level(mean: float) -> str:
    """Neutral level label for a mean score."""
    for lower_bound, label in config.MEAN_LEVEL_BANDS:
        if mean >= lower_bound:
            return label
    return config.LOWEST_MEAN_LEVEL


def welch_confidence(sample_a: Iterable[float], sample_b: Iterable[float]) -> Optional[float]:
    """
    Confidence that two score samples have different means.

    Uses Welch's two-sample t-test (unequal variances).

    Returns:
        Confidence level (1 - p_value) clamped to [0, 1], or None if either
        sample has fewer than two scores or the test is undefined
    """
    a = np.asarray(list(sample_a), dtype=float)
    b = np.asarray(list(sample_b), dtype=float)
    if len(a) < 2 or len(b) < 2:
        return None

    if a.std() == 0 and b.std() == 0:
        # both samples constant: identical means are indistinguishable,
        # different ones are certain
        return 0.0 if a.mean() == b.mean() else 1.0

    result = stats.ttest_ind(a, b, equal_var=False)
    p_value = float(result.pvalue)
    if np.isnan(p_value):
        return None
    return max(0.0, min(1.0, 1 - p_value))


def format_average(value: float, decimal_places: Optional[int] = None) -> str:
    """
    Format an average value with consistent decimal places.

    Returns:
        Formatted average string, "N/A" for missing values
    """
    if pd.isna(value):
        return "N/A"

    if decimal_places is None:
        decimal_places = config.DECIMAL_PLACES

    return f"{value:.{decimal_places}f}"
