"""
Instrument-backed timing oracle.

Couples a capture instrument and the device under test into one
ITimingOracle: arm the scope, send the candidate, wait for the capture,
and reduce the buffer to a processing time.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from keypad_cracker.core.exceptions import MalformedResponse, TimingOracleUnavailable
from keypad_cracker.core.interfaces import (
    IMeasurementInstrument, ISecretTarget, ITimingOracle, OracleResult, ScopeStatus
)
from keypad_cracker.utils.logger import Logger
from keypad_cracker.utils.stats import AGGREGATE_METHODS, high_time


GOOD_RESPONSE = "Good password"
WRONG_RESPONSE = "Wrong password"


@dataclass
class SamplingPolicy:
    """
    How many times each trial candidate is queried and how the
    measurements are combined.

    One sample per symbol is the baseline; more samples trade speed for
    noise tolerance.
    """
    samples: int = 1
    aggregate: str = "max"

    def __post_init__(self):
        if self.samples < 1:
            raise ValueError(f"samples must be at least 1, got {self.samples}")
        if self.aggregate not in AGGREGATE_METHODS:
            raise ValueError(
                f"Unknown aggregate '{self.aggregate}', expected one of {AGGREGATE_METHODS}"
            )


class InstrumentTimingOracle(ITimingOracle):
    """
    Timing oracle built from a scope and a line-oriented target.

    One query:
    1. A worker arms a single capture and polls until the trigger is WAIT
    2. Only then the candidate is written to the target
    3. Meanwhile the worker polls until STOP and reads the buffer
    4. The response line decides accepted/rejected, the buffer gives the time

    The instrument has a single capture buffer, so queries are serialized
    with a lock and every wait is bounded.

    Example:
        >>> oracle = InstrumentTimingOracle(scope, target, threshold=128, scale=12.0)
        >>> oracle.configure([":WAV:FORM BYTE"])
        >>> result = oracle.query("4")
        >>> print(result.measurement)
    """

    def __init__(
        self,
        instrument: IMeasurementInstrument,
        target: ISecretTarget,
        threshold: float = 128,
        scale: float = 1.0,
        arm_timeout: float = 2.0,
        capture_timeout: float = 2.0,
        poll_interval: float = 0.01,
        logger: Optional[Logger] = None
    ):
        """
        Initialize the oracle.

        Args:
            instrument: Capture instrument adapter
            target: Device under test
            threshold: Raw sample level counted as "busy"
            scale: Calibration divisor applied to the busy sample count
            arm_timeout: Max seconds to wait for the trigger to be armed
            capture_timeout: Max seconds to wait for the capture to stop
            poll_interval: Seconds between status polls
            logger: Logger instance
        """
        if scale <= 0:
            raise ValueError(f"scale must be positive, got {scale}")

        self.instrument = instrument
        self.target = target
        self.threshold = threshold
        self.scale = scale
        self.arm_timeout = arm_timeout
        self.capture_timeout = capture_timeout
        self.poll_interval = poll_interval
        self.logger = logger or Logger()

        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="capture")

    def configure(self, commands: Sequence[str]) -> None:
        """Send the instrument setup commands once before a run."""
        self.logger.info(f"Configuring instrument ({len(commands)} commands)")
        for command in commands:
            self.logger.debug(f"Instrument setup: {command}")
        self.instrument.configure(list(commands))

    def query(self, candidate: str) -> OracleResult:
        with self._lock:
            self._await(
                self._executor.submit(self._arm),
                self.arm_timeout,
                "waiting for trigger to arm"
            )

            capture = self._executor.submit(self._collect)
            response = self.target.submit(candidate)
            samples = self._await(capture, self.capture_timeout, "waiting for capture to stop")

        measurement = high_time(samples, self.threshold, self.scale)

        if response == GOOD_RESPONSE:
            self.logger.debug(f"'{candidate}' accepted ({measurement:.3f})")
            return OracleResult.accept(candidate, measurement)
        if response == WRONG_RESPONSE:
            self.logger.debug(f"'{candidate}' rejected ({measurement:.3f})")
            return OracleResult.reject(candidate, measurement)

        raise MalformedResponse(response)

    def _await(self, future, timeout: float, action: str):
        # Workers enforce their own deadlines; the slack here only covers
        # a worker that is stuck inside a blocking instrument call.
        try:
            return future.result(timeout=timeout + 1.0)
        except FutureTimeoutError:
            raise TimingOracleUnavailable("instrument", f"timed out {action}")

    def _arm(self) -> None:
        self.instrument.arm_single()
        self._wait_for_status(ScopeStatus.WAIT, self.arm_timeout)

    def _collect(self) -> np.ndarray:
        self._wait_for_status(ScopeStatus.STOP, self.capture_timeout)
        return self.instrument.read_samples()

    def _wait_for_status(self, expected: ScopeStatus, timeout: float) -> None:
        deadline = time.monotonic() + timeout
        while True:
            status = self.instrument.status()
            if status is expected:
                return
            if time.monotonic() >= deadline:
                raise TimingOracleUnavailable(
                    "instrument",
                    f"status stayed {status.value} for {timeout:.2f}s, expected {expected.value}"
                )
            time.sleep(self.poll_interval)

    def close(self) -> None:
        """Stop the capture worker and release both connections."""
        self._executor.shutdown(wait=True)
        self.instrument.close()
        self.target.close()
        self.logger.info("Timing oracle closed")
