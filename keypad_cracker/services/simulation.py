"""
Simulated keypad lock for dry runs and tests.

The lock compares the entered code digit by digit and bails out on the
first mismatch, holding its "busy" line high for the whole comparison.
Each matched digit therefore lengthens the busy pulse by a fixed number
of cycles, which is exactly the leak the attack measures.
"""

import random
import threading
from typing import List, Optional, Sequence, Tuple

import numpy as np

from keypad_cracker.core.interfaces import (
    IMeasurementInstrument, ISecretTarget, ITimingOracle, OracleResult, ScopeStatus
)
from keypad_cracker.services.timing_service import GOOD_RESPONSE, WRONG_RESPONSE


class KeypadLock:
    """
    Early-exit password check with a cycle count per comparison.

    Args:
        secret: The stored code
        cycles_per_match: Extra busy cycles for every matched leading digit
        base_cycles: Busy cycles spent before the first comparison
        noise: Max random jitter (cycles) added to each check
        seed: Seed for the jitter generator
    """

    def __init__(
        self,
        secret: str,
        cycles_per_match: int = 10,
        base_cycles: int = 5,
        noise: int = 0,
        seed: Optional[int] = None
    ):
        self.secret = secret
        self.cycles_per_match = cycles_per_match
        self.base_cycles = base_cycles
        self.noise = noise
        self._rng = random.Random(seed)

    def matched_prefix(self, candidate: str) -> int:
        matched = 0
        for entered, stored in zip(candidate, self.secret):
            if entered != stored:
                break
            matched += 1
        return matched

    def check(self, candidate: str) -> Tuple[bool, int]:
        """Return (accepted, busy_cycles) for one entered code."""
        cycles = self.base_cycles + self.cycles_per_match * self.matched_prefix(candidate)
        if self.noise:
            cycles += self._rng.randint(0, self.noise)
        return candidate == self.secret, cycles


class SimulatedTimingOracle(ITimingOracle):
    """Oracle that reads the busy cycle count straight from a KeypadLock."""

    def __init__(self, lock: KeypadLock):
        self.lock = lock
        self.queries: List[str] = []

    def query(self, candidate: str) -> OracleResult:
        self.queries.append(candidate)
        accepted, cycles = self.lock.check(candidate)
        if accepted:
            return OracleResult.accept(candidate, float(cycles))
        return OracleResult.reject(candidate, float(cycles))


class SimulatedBench:
    """
    Shared state between a simulated scope and serial target: the scope
    triggers when the target starts a comparison.
    """

    def __init__(self, lock: KeypadLock, buffer_size: int = 1200, high_level: int = 200):
        self.lock = lock
        self.buffer_size = buffer_size
        self.high_level = high_level
        self.armed = False
        self.last_cycles = 0
        self.triggered = threading.Event()


class SimulatedScope(IMeasurementInstrument):
    """
    Scope attached to the lock's busy line.

    With `hang=True` the trigger never fires and the status stays WAIT,
    like a scope whose probe fell off.
    """

    def __init__(self, bench: SimulatedBench, hang: bool = False):
        self.bench = bench
        self.hang = hang
        self.commands: List[str] = []
        self.closed = False

    def configure(self, commands: Sequence[str]) -> None:
        self.commands.extend(commands)

    def arm_single(self) -> None:
        self.bench.triggered.clear()
        self.bench.armed = True

    def status(self) -> ScopeStatus:
        triggered = self.bench.triggered.is_set()
        if triggered and not self.hang:
            return ScopeStatus.STOP
        if self.bench.armed or triggered:
            return ScopeStatus.WAIT
        return ScopeStatus.OTHER

    def read_samples(self) -> np.ndarray:
        samples = np.zeros(self.bench.buffer_size, dtype=np.uint8)
        samples[:min(self.bench.last_cycles, self.bench.buffer_size)] = self.bench.high_level
        return samples

    def close(self) -> None:
        self.closed = True


class SimulatedSerialTarget(ISecretTarget):
    """Serial side of the lock: one code in, one verdict line out."""

    def __init__(self, bench: SimulatedBench):
        self.bench = bench
        self.closed = False

    def submit(self, candidate: str) -> str:
        accepted, cycles = self.bench.lock.check(candidate)
        if self.bench.armed:
            self.bench.last_cycles = cycles
            self.bench.armed = False
            self.bench.triggered.set()
        return GOOD_RESPONSE if accepted else WRONG_RESPONSE

    def close(self) -> None:
        self.closed = True
