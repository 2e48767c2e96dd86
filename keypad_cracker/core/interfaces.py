"""
Abstract interfaces for the keypad cracker.

The recovery loop only talks to an ITimingOracle. The instrument-backed
oracle in turn is built from an IMeasurementInstrument and an ISecretTarget,
so a different scope or link can be dropped in without touching the attack.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence

import numpy as np


@dataclass(frozen=True)
class OracleResult:
    """
    Outcome of one oracle query.

    Attributes:
        candidate: The candidate that was submitted
        accepted: True when the target reported a full match
        measurement: Processing time measured for the query (0.0 if unknown)
    """
    candidate: str
    accepted: bool
    measurement: float = 0.0

    @classmethod
    def accept(cls, candidate: str, measurement: float = 0.0) -> "OracleResult":
        return cls(candidate, True, measurement)

    @classmethod
    def reject(cls, candidate: str, measurement: float) -> "OracleResult":
        return cls(candidate, False, measurement)


@dataclass
class SymbolScore:
    """
    Timing summary for one symbol tried at one position.

    Attributes:
        symbol: The symbol appended to the confirmed prefix
        score: Aggregated measurement used for selection
        measurements: Raw measurements, in query order
        mean_time: Mean of the measurements
        median_time: Median of the measurements
        std_dev: Standard deviation (0.0 for a single sample)
        confidence_score: Heuristic confidence in the score (0-1)
    """
    symbol: str
    score: float
    measurements: List[float] = field(default_factory=list)
    mean_time: float = 0.0
    median_time: float = 0.0
    std_dev: float = 0.0
    confidence_score: float = 0.0

    @property
    def sample_size(self) -> int:
        return len(self.measurements)


class ScopeStatus(Enum):
    """Trigger state reported by the measurement instrument."""
    WAIT = "WAIT"
    STOP = "STOP"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, text: str) -> "ScopeStatus":
        text = text.strip().upper()
        for status in (cls.WAIT, cls.STOP):
            if text == status.value:
                return status
        return cls.OTHER


class ITimingOracle(ABC):
    """
    Anything that can judge a candidate and report how long it took.
    """

    @abstractmethod
    def query(self, candidate: str) -> OracleResult:
        """
        Submit a candidate and measure the processing time.

        Args:
            candidate: Candidate string (a prefix is enough for timing)

        Returns:
            OracleResult, accepted or rejected with a measurement

        Raises:
            TimingOracleUnavailable: If a bounded wait expired
            MalformedResponse: If the target answered with an unknown line
        """
        pass


class IMeasurementInstrument(ABC):
    """
    Capture device: configure, arm, poll, read.
    """

    @abstractmethod
    def configure(self, commands: Sequence[str]) -> None:
        """Send textual setup commands (timebase, trigger, waveform format)."""
        pass

    @abstractmethod
    def arm_single(self) -> None:
        """Arm a single-shot capture."""
        pass

    @abstractmethod
    def status(self) -> ScopeStatus:
        """Return the current trigger state."""
        pass

    @abstractmethod
    def read_samples(self) -> np.ndarray:
        """Read the raw sample buffer of the last capture."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the connection."""
        pass


class ISecretTarget(ABC):
    """
    Device under test: takes a candidate line, answers with one line.
    """

    @abstractmethod
    def submit(self, candidate: str) -> str:
        """
        Send one candidate and return the single response line.

        Raises:
            TimingOracleUnavailable: If no complete line arrived in time
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the connection."""
        pass


class IAttackStrategy(ABC):
    """Interface for password recovery strategies."""

    @abstractmethod
    def recover(self) -> str:
        """
        Run the attack and return the accepted secret.

        Raises:
            RecoveryFailed: If the target never accepted a candidate
        """
        pass


class ILogger(ABC):
    """Interface for logging functionality."""

    @abstractmethod
    def debug(self, message: str) -> None:
        """Log debug message."""
        pass

    @abstractmethod
    def info(self, message: str) -> None:
        """Log info message."""
        pass

    @abstractmethod
    def warning(self, message: str) -> None:
        """Log warning message."""
        pass

    @abstractmethod
    def error(self, message: str) -> None:
        """Log error message."""
        pass
