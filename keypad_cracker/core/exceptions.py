"""
Custom exceptions for the keypad cracker.

Each failure mode of a recovery run has its own exception so the driver
can report it to the operator without guessing.
"""


class KeypadCrackerException(Exception):
    """Base exception for all keypad cracker errors."""
    pass


class RecoveryFailed(KeypadCrackerException):
    """Raised when every position was tried and the target never accepted."""

    def __init__(self, candidate: str, rounds: int, queries: int):
        self.candidate = candidate
        self.rounds = rounds
        self.queries = queries
        super().__init__(
            f"Recovery failed after {rounds} rounds ({queries} queries), "
            f"last candidate '{candidate}' was not accepted"
        )


class TimingOracleUnavailable(KeypadCrackerException):
    """Raised when the instrument or the target did not respond in time."""

    def __init__(self, component: str, reason: str):
        self.component = component
        self.reason = reason
        super().__init__(f"{component} unavailable: {reason}")


class MalformedResponse(KeypadCrackerException):
    """Raised when the target answers with an unexpected line."""

    def __init__(self, response: str):
        self.response = response
        super().__init__(f"Unexpected response from target: {response!r}")


class ConfigurationError(KeypadCrackerException):
    """Raised when configuration is invalid or missing."""
    pass
