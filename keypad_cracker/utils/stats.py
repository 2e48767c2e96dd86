"""
Statistical utility functions for timing analysis.

Reduces raw scope buffers to a processing time and summarises repeated
measurements of the same candidate.
"""

import statistics
from typing import List, Sequence, Tuple

import numpy as np
from scipy import stats


AGGREGATE_METHODS = ("max", "mean", "median")


def high_time(samples: Sequence[int], threshold: float, scale: float) -> float:
    """
    Convert a raw capture buffer into a processing time.

    The target holds a GPIO line high while it compares, so the number of
    samples above the threshold is proportional to the time spent comparing.
    The divisor is an instrument-specific calibration value.

    Args:
        samples: Raw sample buffer from the scope
        threshold: Raw level above which the line counts as high
        scale: Calibration divisor (raw samples per time unit)

    Returns:
        Processing time in calibrated units

    Example:
        >>> high_time([0, 200, 200, 10], threshold=128, scale=2.0)
        1.0
    """
    if scale <= 0:
        raise ValueError(f"scale must be positive, got {scale}")
    buffer = np.asarray(samples)
    return float(np.count_nonzero(buffer > threshold)) / scale


def aggregate(values: Sequence[float], method: str = "max") -> float:
    """
    Collapse repeated measurements of one candidate into a single score.

    Args:
        values: Measurements, at least one
        method: One of "max", "mean", "median"

    Returns:
        Aggregated score
    """
    if not values:
        raise ValueError("Cannot aggregate an empty list of measurements")
    if method == "max":
        return max(values)
    if method == "mean":
        return statistics.mean(values)
    if method == "median":
        return statistics.median(values)
    raise ValueError(f"Unknown aggregate method '{method}', expected one of {AGGREGATE_METHODS}")


def remove_outliers(data: List[float], std_dev_threshold: float = 3.0) -> List[float]:
    """
    Remove outliers using the Z-score method.

    Args:
        data: List of numerical values
        std_dev_threshold: Number of standard deviations for outlier detection

    Returns:
        List with outliers removed
    """
    if len(data) < 3:
        return data

    mean = statistics.mean(data)
    std_dev = statistics.stdev(data)

    if std_dev == 0:
        return data

    return [
        x for x in data
        if abs((x - mean) / std_dev) <= std_dev_threshold
    ]


def calculate_confidence_interval(
    data: List[float],
    confidence: float = 0.95
) -> Tuple[float, float]:
    """
    Confidence interval for the mean, using the t-distribution.

    Returns (0.0, 0.0) with fewer than two samples.
    """
    if len(data) < 2:
        return (0.0, 0.0)

    n = len(data)
    mean = float(np.mean(data))
    std_err = stats.sem(data)

    if std_err == 0:
        return (mean, mean)

    t_value = stats.t.ppf((1 + confidence) / 2, n - 1)
    margin_of_error = float(t_value * std_err)

    return (mean - margin_of_error, mean + margin_of_error)


def is_significantly_different(
    data1: List[float],
    data2: List[float],
    alpha: float = 0.05
) -> Tuple[bool, float]:
    """
    Welch's t-test between two sets of measurements.

    Example:
        >>> fast = [3.0, 3.1, 2.9, 3.0]
        >>> slow = [4.0, 4.1, 3.9, 4.0]
        >>> is_significantly_different(fast, slow)[0]
        True
    """
    if len(data1) < 2 or len(data2) < 2:
        return False, 1.0

    _, p_value = stats.ttest_ind(data1, data2, equal_var=False)
    p_value = float(p_value)
    if np.isnan(p_value):
        return False, 1.0

    return p_value < alpha, p_value
