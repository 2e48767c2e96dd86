"""
Unit tests for the recovery loop and timing analysis.

Run with: pytest tests/test_timing_attacker.py -v
"""

import pytest
from unittest.mock import Mock

from keypad_cracker.attack.timing_attacker import (
    AttackConfig, AttackState, TimingAttacker, recover
)
from keypad_cracker.core.exceptions import ConfigurationError, RecoveryFailed
from keypad_cracker.core.interfaces import ITimingOracle, OracleResult, SymbolScore
from keypad_cracker.services.analysis_service import AnalysisService
from keypad_cracker.services.simulation import KeypadLock, SimulatedTimingOracle
from keypad_cracker.services.timing_service import SamplingPolicy
from keypad_cracker.utils.logger import Logger
from keypad_cracker.utils.stats import (
    aggregate, high_time, is_significantly_different, remove_outliers
)


DIGITS = "0123456789"


class PrefixOracle(ITimingOracle):
    """Scores a candidate by its matching-prefix length, accepts exact matches."""

    def __init__(self, secret: str):
        self.secret = secret
        self.queries = []

    def query(self, candidate):
        self.queries.append(candidate)
        if candidate == self.secret:
            return OracleResult.accept(candidate)
        matched = 0
        for a, b in zip(candidate, self.secret):
            if a != b:
                break
            matched += 1
        return OracleResult.reject(candidate, float(matched))


class FlatOracle(ITimingOracle):
    """No timing signal at all."""

    def __init__(self):
        self.queries = []

    def query(self, candidate):
        self.queries.append(candidate)
        return OracleResult.reject(candidate, 1.0)


@pytest.fixture
def logger():
    return Logger(console=False)


def make_attacker(oracle, logger, alphabet=DIGITS, length=6, **kwargs):
    return TimingAttacker(
        oracle,
        config=AttackConfig(alphabet=alphabet, secret_length=length, **kwargs),
        logger=logger
    )


class TestStatisticalFunctions:
    """Test suite for statistical utility functions."""

    def test_high_time_counts_samples_above_threshold(self):
        assert high_time([0, 200, 250, 128, 10, 129], threshold=128, scale=1.0) == 3.0
        assert high_time([255] * 24, threshold=128, scale=12.0) == 2.0

    def test_high_time_rejects_bad_scale(self):
        with pytest.raises(ValueError):
            high_time([0, 255], threshold=128, scale=0)

    def test_aggregate_methods(self):
        values = [1.0, 4.0, 2.0]
        assert aggregate(values, "max") == 4.0
        assert aggregate(values, "mean") == pytest.approx(7.0 / 3)
        assert aggregate(values, "median") == 2.0

    def test_aggregate_unknown_method(self):
        with pytest.raises(ValueError):
            aggregate([1.0], "mode")

    def test_remove_outliers_basic(self):
        data = [1.0, 1.1, 1.0, 1.2, 10.0, 1.1]
        cleaned = remove_outliers(data, std_dev_threshold=2.0)

        assert 10.0 not in cleaned
        assert len(cleaned) == 5

    def test_is_significantly_different(self):
        fast = [3.0, 3.1, 2.9, 3.0, 3.1]
        slow = [4.0, 4.1, 3.9, 4.0, 4.1]

        is_different, p_value = is_significantly_different(fast, slow)

        assert is_different is True
        assert p_value < 0.05


class TestAnalysisService:
    """Test suite for timing analysis service."""

    @pytest.fixture
    def analyzer(self, logger):
        return AnalysisService(logger=logger)

    def test_analyze_single_measurement(self, analyzer):
        score = analyzer.analyze_measurements('4', [3.0])

        assert score.symbol == '4'
        assert score.score == 3.0
        assert score.sample_size == 1
        assert score.std_dev == 0.0
        assert score.confidence_score == 0.0

    def test_analyze_repeated_measurements(self, analyzer):
        score = analyzer.analyze_measurements('7', [2.0, 2.2, 1.8], method="median")

        assert score.score == 2.0
        assert score.sample_size == 3
        assert 0.0 < score.confidence_score <= 1.0

    def test_analyze_requires_measurements(self, analyzer):
        with pytest.raises(ValueError):
            analyzer.analyze_measurements('1', [])

    def test_compare_candidates_longest_wins(self, analyzer):
        scores = [
            SymbolScore('a', 1.0),
            SymbolScore('b', 2.0),
            SymbolScore('c', 1.5),
        ]

        best, margin = analyzer.compare_candidates(scores)

        assert best == 'b'
        assert margin == pytest.approx(0.5)

    def test_compare_candidates_tie_goes_to_first(self, analyzer):
        scores = [
            SymbolScore('0', 1.0),
            SymbolScore('5', 3.0),
            SymbolScore('8', 3.0),
        ]

        best, margin = analyzer.compare_candidates(scores)

        assert best == '5'
        assert margin == 0.0

    def test_compare_candidates_reports_low_confidence(self):
        logger = Mock(spec=Logger)
        analyzer = AnalysisService(logger=logger)
        steady = analyzer.analyze_measurements('1', [1.0, 1.0])
        noisy = analyzer.analyze_measurements('9', [1.0, 19.0])

        best, margin = analyzer.compare_candidates([steady, noisy])

        assert best == '9'
        assert margin == pytest.approx(18.0)
        assert noisy.confidence_score < analyzer.min_confidence
        assert f"conf={noisy.confidence_score:.3f}" in logger.info.call_args.args[0]
        assert any("Low confidence" in c.args[0] for c in logger.warning.call_args_list)

    def test_compare_candidates_empty(self, analyzer):
        with pytest.raises(ValueError):
            analyzer.compare_candidates([])


class TestTimingAttacker:
    """Recovery loop against deterministic oracles."""

    def test_recovers_424344(self, logger):
        oracle = PrefixOracle("424344")
        attacker = make_attacker(oracle, logger)

        assert attacker.recover() == "424344"
        assert attacker.state is AttackState.RECOVERED
        assert attacker.stats.rounds == 6
        assert attacker.stats.selections == ['4', '2', '4', '3', '4']
        assert oracle.queries[-1] == "424344"

    def test_round_zero_tries_every_digit_in_order(self, logger):
        oracle = PrefixOracle("424344")
        make_attacker(oracle, logger).recover()

        assert oracle.queries[:10] == list(DIGITS)
        assert oracle.queries[10:20] == ["4" + d for d in DIGITS]

    @pytest.mark.parametrize("secret", ["000000", "999999", "123456", "909090"])
    def test_query_bound(self, logger, secret):
        oracle = PrefixOracle(secret)
        attacker = make_attacker(oracle, logger)

        assert attacker.recover() == secret
        assert attacker.stats.rounds == len(secret)
        assert attacker.stats.queries == len(oracle.queries)
        assert attacker.stats.queries <= len(secret) * len(DIGITS)

    def test_accepted_only_in_final_round(self, logger):
        inner = PrefixOracle("5173")
        results = []

        def record(candidate):
            result = inner.query(candidate)
            results.append(result)
            return result

        oracle = Mock()
        oracle.query.side_effect = record
        make_attacker(oracle, logger, length=4).recover()

        accepted = [r for r in results if r.accepted]
        assert len(accepted) == 1
        assert accepted[0] is results[-1]
        assert accepted[0].candidate == "5173"

    def test_tie_break_picks_earliest_symbol(self, logger):
        oracle = Mock()

        def side_effect(candidate):
            # '3' and '6' tie at every position
            return OracleResult.reject(candidate, 2.0 if candidate[-1] in "36" else 1.0)

        oracle.query.side_effect = side_effect
        attacker = make_attacker(oracle, logger, length=3)

        with pytest.raises(RecoveryFailed) as exc_info:
            attacker.recover()

        assert attacker.stats.selections == ['3', '3', '3']
        assert exc_info.value.candidate == "333"

    def test_flat_oracle_exhausts(self, logger):
        oracle = FlatOracle()
        attacker = make_attacker(oracle, logger)

        with pytest.raises(RecoveryFailed) as exc_info:
            attacker.recover()

        assert attacker.state is AttackState.EXHAUSTED
        assert exc_info.value.candidate == "000000"
        assert exc_info.value.rounds == 6
        assert exc_info.value.queries == 60
        assert len(oracle.queries) == 60

    def test_longer_secret_fails(self, logger):
        oracle = PrefixOracle("4243441")

        with pytest.raises(RecoveryFailed) as exc_info:
            make_attacker(oracle, logger).recover()

        assert exc_info.value.candidate == "424344"
        assert exc_info.value.queries == 60

    def test_early_acceptance_stops_immediately(self, logger):
        # Demo-mode target accepting a prefix
        oracle = PrefixOracle("42")
        attacker = make_attacker(oracle, logger)

        assert attacker.recover() == "42"
        assert attacker.stats.rounds == 2
        assert attacker.stats.queries == 10 + 3

    def test_padding(self, logger):
        oracle = PrefixOracle("4243")
        attacker = make_attacker(oracle, logger, length=4, pad_symbol="0")

        assert attacker.recover() == "4243"
        assert all(len(q) == 4 for q in oracle.queries)

    def test_sampling_policy_repeats_queries(self, logger):
        oracle = PrefixOracle("42")
        attacker = TimingAttacker(
            oracle,
            sampling_policy=SamplingPolicy(samples=3, aggregate="median"),
            config=AttackConfig(alphabet=DIGITS, secret_length=2),
            logger=logger
        )

        assert attacker.recover() == "42"
        assert oracle.queries[:3] == ["0", "0", "0"]
        # '40' and '41' sampled three times each, '42' accepted on its first query
        assert attacker.stats.queries == 30 + 7

    def test_noisy_lock_with_median_sampling(self, logger):
        lock = KeypadLock("8675", cycles_per_match=10, base_cycles=5, noise=4, seed=7)
        oracle = SimulatedTimingOracle(lock)
        attacker = TimingAttacker(
            oracle,
            sampling_policy=SamplingPolicy(samples=3, aggregate="median"),
            config=AttackConfig(alphabet=DIGITS, secret_length=4),
            logger=logger
        )

        assert attacker.recover() == "8675"

    @pytest.mark.parametrize("config", [
        AttackConfig(alphabet="", secret_length=6),
        AttackConfig(alphabet="0012", secret_length=6),
        AttackConfig(alphabet=DIGITS, secret_length=0),
        AttackConfig(alphabet=DIGITS, secret_length=6, pad_symbol="00"),
    ])
    def test_invalid_config(self, logger, config):
        oracle = FlatOracle()
        attacker = TimingAttacker(oracle, config=config, logger=logger)

        with pytest.raises(ConfigurationError):
            attacker.recover()
        assert oracle.queries == []

    def test_recover_function(self, logger):
        assert recover(DIGITS, 6, PrefixOracle("424344"), logger=logger) == "424344"


class TestSamplingPolicy:

    def test_defaults_to_single_sample(self):
        policy = SamplingPolicy()
        assert policy.samples == 1
        assert policy.aggregate == "max"

    @pytest.mark.parametrize("kwargs", [{"samples": 0}, {"aggregate": "mode"}])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            SamplingPolicy(**kwargs)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
