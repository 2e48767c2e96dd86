"""
Serial link to the keypad lock under test.
"""

from typing import Optional

import serial

from keypad_cracker.core.exceptions import TimingOracleUnavailable
from keypad_cracker.core.interfaces import ISecretTarget
from keypad_cracker.utils.logger import Logger


class SerialTarget(ISecretTarget):
    """
    Line-oriented target on a serial port.

    Every candidate is written as one line and exactly one line is read
    back. A read that ends without a newline means the read timeout
    expired before the device answered.

    Example:
        >>> target = SerialTarget("/dev/ttyUSB0", baudrate=115200)
        >>> target.submit("424344")
        'Good password'
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 115200,
        timeout: float = 2.0,
        logger: Optional[Logger] = None,
        connection: Optional[serial.Serial] = None
    ):
        """
        Open the serial port.

        Args:
            port: Serial device, e.g. /dev/ttyUSB0 or COM3
            baudrate: Line speed
            timeout: Read timeout in seconds
            logger: Logger instance
            connection: Already opened port (skips opening `port`)
        """
        self.port = port
        self.timeout = timeout
        self.logger = logger or Logger()

        if connection is not None:
            self.ser = connection
        else:
            try:
                self.ser = serial.Serial(port, baudrate, timeout=timeout)
            except serial.SerialException as e:
                raise TimingOracleUnavailable("target", f"cannot open {port}: {e}")

        self.logger.info(f"Target connected on {port} @ {baudrate} baud")

    def submit(self, candidate: str) -> str:
        try:
            self.ser.reset_input_buffer()
            self.ser.write(candidate.encode("ascii") + b"\n")
            self.ser.flush()
            line = self.ser.readline()
        except serial.SerialException as e:
            raise TimingOracleUnavailable("target", str(e))

        if not line.endswith(b"\n"):
            raise TimingOracleUnavailable(
                "target", f"no response line within {self.timeout}s (got {line!r})"
            )

        return line.decode("ascii", errors="replace").strip()

    def close(self) -> None:
        self.ser.close()
        self.logger.info("Target connection closed")
