"""
SCPI oscilloscope adapter over a raw LXI socket.

Speaks the Rigol DS1000Z style command set: `:SING` to arm, `:TRIG:STAT?`
to poll, `:WAV:DATA?` to read the screen buffer as unsigned bytes.
Other instruments can be supported by another IMeasurementInstrument.
"""

import socket
from typing import Optional, Sequence

import numpy as np

from keypad_cracker.core.exceptions import TimingOracleUnavailable
from keypad_cracker.core.interfaces import IMeasurementInstrument, ScopeStatus
from keypad_cracker.utils.logger import Logger


DEFAULT_PORT = 5555


def parse_block(data: bytes) -> np.ndarray:
    """
    Decode an IEEE 488.2 definite length block into raw samples.

    Format: `#` + one digit N + N digits of payload length + payload.

    Example:
        >>> parse_block(b"#13abc\\n")
        array([97, 98, 99], dtype=uint8)
    """
    if len(data) < 2 or data[:1] != b"#":
        raise ValueError(f"Not a definite length block: {data[:16]!r}")

    digits = int(data[1:2])
    if digits == 0:
        raise ValueError("Indefinite length blocks are not supported")

    header_end = 2 + digits
    length = int(data[2:header_end])
    payload = data[header_end:header_end + length]
    if len(payload) != length:
        raise ValueError(f"Truncated block: expected {length} bytes, got {len(payload)}")

    return np.frombuffer(payload, dtype=np.uint8)


class ScpiScope(IMeasurementInstrument):
    """
    Oscilloscope reached over TCP with plain SCPI strings.

    Example:
        >>> scope = ScpiScope("192.168.1.50")
        >>> scope.configure([":WAV:SOUR CHAN1", ":WAV:FORM BYTE"])
        >>> scope.arm_single()
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        timeout: float = 2.0,
        logger: Optional[Logger] = None
    ):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.logger = logger or Logger()
        self._buffer = b""

        try:
            self.sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as e:
            raise TimingOracleUnavailable("scope", f"cannot connect to {host}:{port}: {e}")

        self.logger.info(f"Scope connected at {host}:{port}")

    def write(self, command: str) -> None:
        try:
            self.sock.sendall(command.encode("ascii") + b"\n")
        except OSError as e:
            raise TimingOracleUnavailable("scope", f"write '{command}' failed: {e}")

    def query(self, command: str) -> str:
        self.write(command)
        return self._read_line().decode("ascii", errors="replace").strip()

    def configure(self, commands: Sequence[str]) -> None:
        for command in commands:
            self.write(command)

    def arm_single(self) -> None:
        self.write(":SING")

    def status(self) -> ScopeStatus:
        return ScopeStatus.parse(self.query(":TRIG:STAT?"))

    def read_samples(self) -> np.ndarray:
        self.write(":WAV:DATA?")
        try:
            header = self._read_exact(2)
            if header[:1] != b"#" or not header[1:2].isdigit() or header[1:2] == b"0":
                raise ValueError(f"expected a definite length block, got {header!r}")
            length_field = self._read_exact(int(header[1:2]))
            payload = self._read_exact(int(length_field))
            # Trailing newline after the block
            self._read_line()
            return parse_block(header + length_field + payload)
        except ValueError as e:
            # Whatever is left of the reply is unusable
            self._buffer = b""
            raise TimingOracleUnavailable("scope", f"unreadable waveform data: {e}")

    def _recv(self) -> bytes:
        try:
            chunk = self.sock.recv(4096)
        except socket.timeout:
            raise TimingOracleUnavailable("scope", f"no reply within {self.timeout}s")
        except OSError as e:
            raise TimingOracleUnavailable("scope", str(e))
        if not chunk:
            raise TimingOracleUnavailable("scope", "connection closed")
        return chunk

    def _read_line(self) -> bytes:
        while b"\n" not in self._buffer:
            self._buffer += self._recv()
        line, self._buffer = self._buffer.split(b"\n", 1)
        return line

    def _read_exact(self, size: int) -> bytes:
        while len(self._buffer) < size:
            self._buffer += self._recv()
        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def close(self) -> None:
        self.sock.close()
        self.logger.info("Scope connection closed")
