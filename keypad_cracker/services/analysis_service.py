"""
Scoring of per-symbol timing measurements.

Turns the measurements gathered for each symbol at one position into
SymbolScore records and picks the winner.
"""

import statistics
from typing import List, Optional, Sequence, Tuple

from keypad_cracker.core.interfaces import SymbolScore
from keypad_cracker.utils.logger import Logger
from keypad_cracker.utils.stats import (
    aggregate,
    calculate_confidence_interval,
    is_significantly_different,
    remove_outliers,
)


class AnalysisService:
    """
    Selects the symbol that kept the target busy the longest.

    A correct symbol makes the early-exit comparison run one step further,
    so its processing time is longer than every wrong symbol's. Exact ties
    are resolved in favour of the symbol tried first, which keeps runs
    reproducible when the timing signal is flat.

    Example:
        >>> analyzer = AnalysisService(logger=logger)
        >>> scores = [analyzer.analyze_measurements(s, m) for s, m in results.items()]
        >>> best, margin = analyzer.compare_candidates(scores)
    """

    def __init__(
        self,
        confidence_level: float = 0.95,
        min_score_difference: float = 0.5,
        outlier_threshold: float = 3.0,
        min_confidence: float = 0.5,
        logger: Optional[Logger] = None
    ):
        """
        Initialize analysis service.

        Args:
            confidence_level: Confidence level for the interval-based confidence score
            min_score_difference: Margin below which a selection is reported as unreliable
            outlier_threshold: Standard deviations for outlier detection (repeated samples only)
            min_confidence: Confidence below which a repeated-sample winner is reported as noisy
            logger: Logger instance
        """
        self.confidence_level = confidence_level
        self.min_score_difference = min_score_difference
        self.outlier_threshold = outlier_threshold
        self.min_confidence = min_confidence
        self.logger = logger or Logger()

    def analyze_measurements(
        self,
        symbol: str,
        measurements: Sequence[float],
        method: str = "max"
    ) -> SymbolScore:
        """
        Summarise the measurements taken for one symbol.

        The score is computed from all measurements with the given aggregate;
        the descriptive statistics use the outlier-filtered set.

        Args:
            symbol: Symbol that was appended to the prefix
            measurements: Measurements in query order, at least one
            method: Aggregate method of the sampling policy

        Returns:
            SymbolScore for the symbol
        """
        values = [float(m) for m in measurements]
        if not values:
            raise ValueError(f"No measurements for symbol '{symbol}'")

        score = aggregate(values, method)
        cleaned = remove_outliers(values, self.outlier_threshold)

        mean_time = statistics.mean(cleaned)
        median_time = statistics.median(cleaned)
        std_dev = statistics.stdev(cleaned) if len(cleaned) > 1 else 0.0

        result = SymbolScore(
            symbol=symbol,
            score=score,
            measurements=values,
            mean_time=mean_time,
            median_time=median_time,
            std_dev=std_dev,
            confidence_score=self._calculate_confidence(cleaned, std_dev)
        )

        self.logger.debug(
            f"'{symbol}': score={score:.3f}, mean={mean_time:.3f}, "
            f"median={median_time:.3f}, sd={std_dev:.3f}, n={len(values)}"
        )

        return result

    def _calculate_confidence(self, times: List[float], std_dev: float) -> float:
        """
        Heuristic confidence (0-1) from sample count, spread and CI width.

        A single sample has no spread information and scores 0.
        """
        if len(times) < 2:
            return 0.0

        sample_factor = min(len(times) / 10.0, 1.0)

        mean_time = statistics.mean(times)
        if mean_time > 0:
            consistency_factor = 1.0 / (1.0 + std_dev / mean_time)
        else:
            consistency_factor = 0.0

        ci_lower, ci_upper = calculate_confidence_interval(times, self.confidence_level)
        ci_factor = 1.0 / (1.0 + (ci_upper - ci_lower))

        return 0.4 * sample_factor + 0.4 * consistency_factor + 0.2 * ci_factor

    def compare_candidates(self, scores: List[SymbolScore]) -> Tuple[str, float]:
        """
        Select the best symbol.

        The symbol with the strictly greatest score wins; on an exact tie the
        earliest entry in `scores` wins, so callers pass scores in alphabet order.

        Args:
            scores: Symbol scores in alphabet order

        Returns:
            Tuple of (best_symbol, margin over the runner-up)

        Raises:
            ValueError: If no scores are provided
        """
        if not scores:
            raise ValueError("No symbol scores provided")

        best = scores[0]
        for candidate in scores[1:]:
            if candidate.score > best.score:
                best = candidate

        others = [s for s in scores if s is not best]
        if not others:
            return best.symbol, 0.0

        runner_up = max(others, key=lambda s: s.score)
        margin = best.score - runner_up.score

        self.logger.info(
            f"Top candidate: '{best.symbol}' ({best.score:.3f}, conf={best.confidence_score:.3f}), "
            f"runner-up '{runner_up.symbol}' ({runner_up.score:.3f}, margin={margin:.3f})"
        )

        if margin < self.min_score_difference:
            self.logger.warning(
                f"Small timing difference ({margin:.3f}, conf={best.confidence_score:.3f}), "
                "result may be unreliable"
            )
        elif best.sample_size > 1 and best.confidence_score < self.min_confidence:
            self.logger.warning(
                f"Low confidence ({best.confidence_score:.3f}) in '{best.symbol}', "
                "measurements are noisy"
            )
        elif best.sample_size > 1 and runner_up.sample_size > 1:
            different, p_value = is_significantly_different(
                best.measurements, runner_up.measurements
            )
            if not different:
                self.logger.warning(
                    f"'{best.symbol}' vs '{runner_up.symbol}' not significant (p={p_value:.3f})"
                )

        return best.symbol, margin
